"""Image compression and durable upload."""

from __future__ import annotations

import asyncio
import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol

from PIL import Image, ImageOps, UnidentifiedImageError

from .errors import ClassificationError
from .utils import fs

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PreparedImage:
    """A photograph normalised for upload and classification."""

    data: bytes
    preview: Optional[bytes]
    width: int
    height: int
    mime_type: str = "image/jpeg"


@dataclass(frozen=True, slots=True)
class UploadResult:
    public_url: str
    preview_url: Optional[str] = None


class ImageUploader(Protocol):
    async def upload(self, image: PreparedImage, name: str) -> UploadResult:
        ...


def _resize(img: Image.Image, max_edge: int) -> Image.Image:
    width, height = img.size
    scale = max(width, height)
    if scale > max_edge:
        ratio = max_edge / float(scale)
        new_size = (max(1, int(width * ratio)), max(1, int(height * ratio)))
        img = img.resize(new_size, Image.LANCZOS)
    return img


def _encode(img: Image.Image, quality: int) -> bytes:
    buffer = io.BytesIO()
    img.save(buffer, format="JPEG", quality=quality, optimize=True)
    return buffer.getvalue()


def compress_image(
    data: bytes,
    *,
    max_edge: int = 1200,
    quality: int = 85,
    preview_edge: Optional[int] = 320,
) -> PreparedImage:
    """Orient, downscale and re-encode a photograph as JPEG."""

    try:
        with Image.open(io.BytesIO(data)) as opened:
            img = ImageOps.exif_transpose(opened)
            img = img.convert("RGB") if img.mode != "RGB" else img
            img = _resize(img, max_edge)
            main = _encode(img, quality)
            preview = _encode(_resize(img, preview_edge), quality) if preview_edge else None
            width, height = img.size
    except (UnidentifiedImageError, OSError) as exc:
        raise ClassificationError("Could not read image") from exc
    LOGGER.debug("Compressed %d bytes to %d (%dx%d)", len(data), len(main), width, height)
    return PreparedImage(data=main, preview=preview, width=width, height=height)


async def compress_image_async(data: bytes, **kwargs) -> PreparedImage:
    return await asyncio.to_thread(compress_image, data, **kwargs)


class LocalImageStore:
    """Stores uploads under a directory and serves them from a base URL."""

    def __init__(self, root: Path, public_base_url: Optional[str] = None) -> None:
        self._root = Path(root)
        self._base_url = public_base_url.rstrip("/") if public_base_url else None

    def _url_for(self, path: Path) -> str:
        if self._base_url:
            return f"{self._base_url}/{path.relative_to(self._root).as_posix()}"
        return path.resolve().as_uri()

    def _write(self, image: PreparedImage, name: str) -> UploadResult:
        digest = fs.checksum(image.data)[:10]
        target = self._root / f"{name}-{digest}.jpg"
        fs.atomic_write(str(target), image.data)
        preview_url = None
        if image.preview is not None:
            preview_target = self._root / "previews" / f"{name}-{digest}.jpg"
            fs.atomic_write(str(preview_target), image.preview)
            preview_url = self._url_for(preview_target)
        return UploadResult(public_url=self._url_for(target), preview_url=preview_url)

    async def upload(self, image: PreparedImage, name: str) -> UploadResult:
        try:
            return await asyncio.to_thread(self._write, image, name)
        except OSError as exc:
            raise ClassificationError(f"Upload failed: {exc}") from exc
