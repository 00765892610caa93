"""Scan session: batch submission, review and confirmation."""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Dict, List, Optional, Sequence, Tuple

from .batch import ScanBatch
from .clients import CandidateSource, VisionCandidateClient
from .config import ScannerConfig
from .confirmation import ConfirmationGate
from .errors import BatchSizeError, StaleSelectionError
from .feedback import FeedbackEntry, FeedbackRecorder
from .history import HistoryEntry, ScanHistory
from .images import ImageUploader, LocalImageStore
from .models import ItemChange, ScanItem, ScanStatus
from .pricing import PriceGuide, PriceQuote, PricingLookup
from .queue_processor import QueueProcessor
from .schemas.candidate import Candidate
from .selection import ReviewView, build_review
from .storage import CatalogStore, JsonCatalogStore
from .utils import log

LOGGER = logging.getLogger(__name__)


class ScanSession:
    """Coordinates a batch of photographs from submission to catalog records.

    Submission is the only way scan items are created. Records are only
    written through :meth:`confirm` and :meth:`fast_confirm`.
    """

    def __init__(
        self,
        config: ScannerConfig,
        *,
        source: Optional[CandidateSource] = None,
        uploader: Optional[ImageUploader] = None,
        store: Optional[CatalogStore] = None,
        pricing: Optional[PricingLookup] = None,
        feedback: Optional[FeedbackRecorder] = None,
        history: Optional[ScanHistory] = None,
    ) -> None:
        self.config = config
        log.configure(config.events_path)
        if source is None:
            source = VisionCandidateClient(
                model=config.api_model,
                api_key=None if config.dry_run else _read_env("OPENAI_API_KEY"),
                organization=None if config.dry_run else _read_env("OPENAI_ORG"),
                timeout=config.request_timeout,
                dry_run=config.dry_run,
            )
        if pricing is None and config.price_guide_path:
            pricing = PriceGuide.from_file(config.price_guide_path)
        self.batch = ScanBatch()
        self.processor = QueueProcessor(
            self.batch,
            source,
            uploader or LocalImageStore(config.images_dir, config.public_base_url),
            max_candidates=config.max_candidates,
            image_max_edge=config.image_max_edge,
            image_quality=config.image_quality,
            preview_max_edge=config.preview_max_edge,
        )
        self.gate = ConfirmationGate(self.batch, store or JsonCatalogStore(config.records_dir))
        self.feedback = feedback or FeedbackRecorder(config.feedback_path, config.max_feedback_entries)
        self.history = history or ScanHistory(config.history_path, config.max_history_entries)
        self._pricing = pricing
        self._changed = asyncio.Event()
        self.batch.subscribe(self._on_change)

    @property
    def items(self) -> Tuple[ScanItem, ...]:
        return self.batch.items

    @property
    def is_complete(self) -> bool:
        return self.batch.is_complete

    @property
    def progress(self) -> Tuple[int, int]:
        return self.batch.done_count, len(self.batch)

    async def submit(self, images: Sequence[bytes], *, exclude_reprints: Optional[bool] = None) -> List[ScanItem]:
        if not images:
            raise BatchSizeError("A batch needs at least one photograph")
        if len(images) > self.config.max_batch_size:
            raise BatchSizeError(
                f"A batch accepts at most {self.config.max_batch_size} photographs, got {len(images)}"
            )
        if any(not data for data in images):
            raise BatchSizeError("Empty image payload in batch")
        if exclude_reprints is None:
            exclude_reprints = self.config.exclude_reprints
        created = self.batch.add(images, exclude_reprints=exclude_reprints)
        LOGGER.info("Queued %d photograph(s)", len(created))
        log.event("batch_started", None, image_count=len(created))
        return created

    async def wait_idle(self) -> None:
        await self.processor.wait_idle()

    async def next_for_review(self) -> Optional[ScanItem]:
        """Wait for the oldest item awaiting review.

        Returns ``None`` once nothing is awaiting review and nothing is left
        to classify.
        """

        while True:
            item = self.batch.next_for_review()
            if item is not None:
                return item
            if self.batch.next_queued() is None and self.batch.processing_item is None:
                return None
            self._changed.clear()
            await self._changed.wait()

    def review(self, item_id: str) -> ReviewView:
        return build_review(
            self.batch.get(item_id),
            pretty_confident_threshold=self.config.pretty_confident_threshold,
        )

    async def confirm(self, item_id: str, candidate: Candidate) -> str:
        record_id = await self.gate.confirm(item_id, candidate)
        await self._remember(item_id, record_id)
        return record_id

    async def confirm_by_id(self, item_id: str, candidate_id: str) -> str:
        item = self.batch.find(item_id)
        candidate = item.find_candidate(candidate_id) if item else None
        if candidate is None:
            raise StaleSelectionError(f"Candidate {candidate_id} is not offered for scan item {item_id}")
        return await self.confirm(item_id, candidate)

    async def fast_confirm(self, item_id: str) -> str:
        record_id = await self.gate.fast_confirm(item_id)
        await self._remember(item_id, record_id)
        return record_id

    def recent_scans(self, limit: int = 10) -> List[HistoryEntry]:
        return self.history.load(limit)

    async def _remember(self, item_id: str, record_id: str) -> None:
        item = self.batch.find(item_id)
        if item is None or item.persisted_record_id != record_id:
            return
        candidate = item.find_candidate(item.selected_candidate_id)
        if candidate is None:
            return
        await asyncio.to_thread(
            self.history.save,
            candidate,
            record_id=record_id,
            scan_item_id=item.id,
            image_url=item.uploaded_image_url,
        )

    async def skip(self, item_id: str) -> None:
        self.gate.skip(item_id)

    async def rescan(self, item_id: str, *, exclude_reprints: bool) -> ScanItem:
        """Skip a reviewed item and queue its photograph again as a new item."""

        original = self.batch.get(item_id)
        self.gate.skip(item_id)
        replacement = ScanItem(
            image_data=original.image_data,
            exclude_reprints=exclude_reprints,
            rescan_of=original.id,
        )
        self.batch.add_item(replacement)
        LOGGER.info("Re-scanning %s as %s (exclude_reprints=%s)", item_id, replacement.id, exclude_reprints)
        return replacement

    async def record_feedback(
        self,
        item_id: str,
        was_correct: bool,
        corrected: Optional[Dict[str, object]] = None,
    ) -> Optional[FeedbackEntry]:
        item = self.batch.find(item_id)
        if item is None:
            LOGGER.warning("Ignoring feedback for unknown scan item %s", item_id)
            return None
        return await self.feedback.record(item, was_correct, corrected)

    async def lookup_price(self, candidate: Candidate) -> Optional[PriceQuote]:
        if self._pricing is None:
            return None
        try:
            return await self._pricing.lookup(candidate)
        except Exception:
            LOGGER.debug("Price lookup failed for %s", candidate.id, exc_info=True)
            return None

    def reset(self) -> int:
        discarded = self.batch.reset()
        self._changed.set()
        return discarded

    def _on_change(self, change: ItemChange) -> None:
        self._changed.set()
        if change.generation != self.batch.generation:
            return
        item = change.item
        if item.status is ScanStatus.QUEUED or item.is_terminal:
            if self.batch.next_queued() is not None and not self.processor.is_running:
                self.processor.kick()
        if item.is_terminal and self.batch.is_complete:
            log.event(
                "batch_completed",
                None,
                confirmed_count=self.batch.count(ScanStatus.COMPLETED),
                skipped_count=self.batch.count(ScanStatus.SKIPPED),
            )


def _read_env(name: str) -> str | None:
    value = os.getenv(name)
    if value:
        LOGGER.debug("Using %s from environment", name)
    return value
