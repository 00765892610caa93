import asyncio
import io
from typing import Dict, List

import pytest
from PIL import Image

from grailscan.batch import ScanBatch
from grailscan.errors import ClassificationError, PersistenceError
from grailscan.images import UploadResult
from grailscan.models import ScanStatus
from grailscan.utils import log


def make_image(width: int, color: str = "white") -> bytes:
    """PNG bytes whose width identifies the photograph after compression."""
    img = Image.new("RGB", (width, 40), color=color)
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


def candidate(cid: str, score: float, title: str = "Fantastic Four", **extra) -> Dict[str, object]:
    payload = {"id": cid, "title": title, "score": score}
    payload.update(extra)
    return payload


class FakeSource:
    def __init__(self, responses=None):
        self.responses = responses or {}
        self.gates: Dict[int, asyncio.Event] = {}
        self.calls: List[int] = []
        self.finished: List[int] = []
        self.active = 0
        self.max_active = 0

    async def classify(self, image):
        self.calls.append(image.width)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            gate = self.gates.get(image.width)
            if gate is not None:
                await gate.wait()
            else:
                await asyncio.sleep(0)
            result = self.responses.get(image.width, [])
            if isinstance(result, Exception):
                raise result
            return result
        finally:
            self.active -= 1
            self.finished.append(image.width)


class FakeUploader:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.names: List[str] = []

    async def upload(self, image, name):
        self.names.append(name)
        if self.fail:
            raise ClassificationError("storage unavailable")
        return UploadResult(public_url=f"https://img.test/{name}.jpg", preview_url=f"https://img.test/p/{name}.jpg")


class FakeStore:
    def __init__(self, failures: int = 0):
        self.failures = failures
        self.requests = []
        self.gate = None

    async def create_record(self, request):
        if self.gate is not None:
            await self.gate.wait()
        if self.failures:
            self.failures -= 1
            raise PersistenceError("database unavailable")
        self.requests.append(request)
        return f"rec-{len(self.requests)}"


@pytest.fixture(autouse=True)
def _event_log(tmp_path, monkeypatch):
    monkeypatch.setattr(log, "LOG_PATH", str(tmp_path / "logs" / "events.jsonl"))


@pytest.fixture
def batch():
    return ScanBatch()


@pytest.fixture
def processing_watch(batch):
    """Records the largest number of simultaneously processing items."""
    seen = {"max": 0}

    def _listener(change):
        seen["max"] = max(seen["max"], batch.count(ScanStatus.PROCESSING))

    batch.subscribe(_listener)
    return seen


async def wait_until(predicate, timeout: float = 5.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)
