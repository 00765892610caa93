"""Sequential processing of queued scan items."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Tuple

from .batch import ScanBatch
from .clients import CandidateSource
from .confidence import ConfidenceTier, tier_for_score
from .errors import ClassificationError
from .images import ImageUploader, UploadResult, compress_image_async
from .models import ScanItem, ScanStatus
from .reprints import split_reprints
from .schemas.candidate import Candidate, parse_candidates
from .utils import log

LOGGER = logging.getLogger(__name__)

FAILURE_MESSAGE = "Failed to analyze image"


@dataclass(frozen=True, slots=True)
class TriageResult:
    status: ScanStatus
    candidates: Tuple[Candidate, ...]
    tier: Optional[ConfidenceTier]
    suppressed_count: int
    rejected_count: int


def triage(raw: Iterable[Any], *, exclude_reprints: bool = True, max_candidates: int = 5) -> TriageResult:
    """Validate, filter, truncate and tier one classifier response.

    Filtering happens before truncation and tiering, so the tier reflects the
    best surviving candidate and reprints never crowd out originals.
    """

    parsed, rejected = parse_candidates(raw)
    kept, suppressed = split_reprints(parsed, exclude_reprints)
    retained = tuple(kept[:max_candidates])
    if not retained:
        return TriageResult(ScanStatus.NO_MATCH, (), None, len(suppressed), rejected)
    tier = tier_for_score(retained[0].score)
    status = ScanStatus.MATCH_FOUND if tier is ConfidenceTier.HIGH else ScanStatus.NEEDS_REVIEW
    return TriageResult(status, retained, tier, len(suppressed), rejected)


class QueueProcessor:
    """Claims one queued item at a time and classifies it.

    A single drain task runs while queued items remain. ``kick`` is safe to
    call any number of times; it returns the running drain rather than
    starting a second one.
    """

    def __init__(
        self,
        batch: ScanBatch,
        source: CandidateSource,
        uploader: ImageUploader,
        *,
        max_candidates: int = 5,
        image_max_edge: int = 1200,
        image_quality: int = 85,
        preview_max_edge: Optional[int] = 320,
    ) -> None:
        self._batch = batch
        self._source = source
        self._uploader = uploader
        self._max_candidates = max_candidates
        self._image_options = {
            "max_edge": image_max_edge,
            "quality": image_quality,
            "preview_edge": preview_max_edge,
        }
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def kick(self) -> asyncio.Task:
        if not self.is_running:
            self._task = asyncio.get_running_loop().create_task(self.drain(), name="grailscan-queue")
        assert self._task is not None
        return self._task

    async def wait_idle(self) -> None:
        while self.is_running:
            assert self._task is not None
            await self._task

    async def drain(self) -> int:
        processed = 0
        while True:
            item = self._batch.claim_next()
            if item is None:
                break
            await self._process(item, self._batch.generation)
            processed += 1
        if processed:
            LOGGER.info("Queue drained after %d item(s)", processed)
        return processed

    async def _process(self, item: ScanItem, generation: int) -> None:
        LOGGER.info("Processing scan item %s", item.id)
        upload: Optional[UploadResult] = None
        try:
            prepared = await compress_image_async(item.image_data, **self._image_options)
            upload = await self._uploader.upload(prepared, item.id)
            raw = await self._source.classify(prepared)
            result = triage(raw, exclude_reprints=item.exclude_reprints, max_candidates=self._max_candidates)
        except Exception as exc:
            LOGGER.warning("Scan item %s failed: %s", item.id, exc)
            message = f"{FAILURE_MESSAGE}: {exc}" if isinstance(exc, ClassificationError) else FAILURE_MESSAGE
            written = self._batch.transition(
                item.id,
                ScanStatus.NO_MATCH,
                generation=generation,
                candidates=(),
                error=message,
                uploaded_image_url=upload.public_url if upload else None,
                preview_url=upload.preview_url if upload else None,
            )
            if written is not None:
                log.event("item_classified", item.id, status="error", message=str(exc))
            return

        written = self._batch.transition(
            item.id,
            result.status,
            generation=generation,
            candidates=result.candidates,
            confidence_tier=result.tier,
            suppressed_count=result.suppressed_count,
            rejected_count=result.rejected_count,
            uploaded_image_url=upload.public_url,
            preview_url=upload.preview_url,
        )
        if written is None:
            return
        log.event(
            "item_classified",
            item.id,
            status=result.status.value,
            tier=result.tier.value if result.tier else None,
            candidate_count_bucket=log.count_bucket(len(result.candidates)),
            suppressed=result.suppressed_count,
        )
