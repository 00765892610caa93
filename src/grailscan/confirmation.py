"""The only path from a scan item to a persisted catalog record."""

from __future__ import annotations

import logging
from typing import Optional, Set

from pydantic import ValidationError

from .batch import ScanBatch
from .errors import (
    ConfirmationInFlightError,
    FastConfirmUnavailable,
    InvalidTransitionError,
    PersistenceError,
    StaleSelectionError,
)
from .models import ScanStatus
from .schemas.candidate import Candidate
from .schemas.catalog_record import build_record_request
from .selection import fast_confirm_candidate
from .storage import CatalogStore
from .utils import log

LOGGER = logging.getLogger(__name__)


class ConfirmationGate:
    """Persists an explicitly chosen candidate and completes its scan item."""

    def __init__(self, batch: ScanBatch, store: CatalogStore) -> None:
        self._batch = batch
        self._store = store
        self._in_flight: Set[str] = set()

    async def confirm(self, item_id: str, candidate: Candidate) -> str:
        """Persist ``candidate`` for the item and mark it completed.

        The candidate must be one of the objects held in the item's
        ``candidates``; an equal-looking copy from another item or an earlier
        classification is rejected. Returns the created record id. On
        ``PersistenceError`` the item keeps its review status and the call may
        be retried.
        """

        item = self._batch.find(item_id)
        if item is None:
            raise StaleSelectionError(f"Scan item {item_id} is no longer part of the batch")
        if not item.awaiting_review:
            raise InvalidTransitionError(
                f"Scan item {item_id} cannot be confirmed while {item.status.value}"
            )
        if not any(existing is candidate for existing in item.candidates):
            raise StaleSelectionError(
                f"Candidate {candidate.id} does not belong to scan item {item_id}"
            )
        if item_id in self._in_flight:
            raise ConfirmationInFlightError(f"Scan item {item_id} is already being confirmed")

        try:
            request = build_record_request(
                candidate,
                scan_item_id=item.id,
                image_url=item.uploaded_image_url,
                preview_url=item.preview_url,
            )
        except ValidationError as exc:
            raise PersistenceError(f"Record rejected: {exc}") from exc

        generation = self._batch.generation
        self._in_flight.add(item_id)
        try:
            record_id = await self._store.create_record(request)
        except PersistenceError:
            LOGGER.warning("Persistence failed for %s", item_id, exc_info=True)
            raise
        finally:
            self._in_flight.discard(item_id)

        completed = self._batch.transition(
            item_id,
            ScanStatus.COMPLETED,
            generation=generation,
            selected_candidate_id=candidate.id,
            persisted_record_id=record_id,
        )
        if completed is None:
            LOGGER.warning("Batch reset while saving %s; record %s kept", item_id, record_id)
        else:
            log.event("item_confirmed", item_id, tier=item.confidence_tier.value if item.confidence_tier else None)
        return record_id

    async def fast_confirm(self, item_id: str) -> str:
        """Confirm the top candidate of a high-confidence match in one step."""

        item = self._batch.find(item_id)
        if item is None:
            raise StaleSelectionError(f"Scan item {item_id} is no longer part of the batch")
        candidate: Optional[Candidate] = fast_confirm_candidate(item)
        if candidate is None:
            raise FastConfirmUnavailable(f"Scan item {item_id} has no high-confidence top match")
        return await self.confirm(item_id, candidate)

    def skip(self, item_id: str) -> None:
        item = self._batch.get(item_id)
        if not item.awaiting_review:
            raise InvalidTransitionError(f"Scan item {item_id} cannot be skipped while {item.status.value}")
        if item_id in self._in_flight:
            raise ConfirmationInFlightError(f"Scan item {item_id} is being saved and cannot be skipped")
        self._batch.transition(item_id, ScanStatus.SKIPPED)
        log.event("item_skipped", item_id)
