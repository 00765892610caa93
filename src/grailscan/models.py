"""Data models used across the pipeline."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Tuple

from .confidence import ConfidenceTier
from .schemas.candidate import Candidate


class ScanStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    MATCH_FOUND = "match_found"
    NEEDS_REVIEW = "needs_review"
    NO_MATCH = "no_match"
    COMPLETED = "completed"
    SKIPPED = "skipped"


TRIAGE_STATES = frozenset({ScanStatus.MATCH_FOUND, ScanStatus.NEEDS_REVIEW, ScanStatus.NO_MATCH})
TERMINAL_STATES = frozenset({ScanStatus.COMPLETED, ScanStatus.SKIPPED})

TRANSITIONS: Dict[ScanStatus, frozenset] = {
    ScanStatus.QUEUED: frozenset({ScanStatus.PROCESSING}),
    ScanStatus.PROCESSING: TRIAGE_STATES,
    ScanStatus.MATCH_FOUND: TERMINAL_STATES,
    ScanStatus.NEEDS_REVIEW: TERMINAL_STATES,
    ScanStatus.NO_MATCH: TERMINAL_STATES,
    ScanStatus.COMPLETED: frozenset(),
    ScanStatus.SKIPPED: frozenset(),
}


def new_item_id() -> str:
    return f"scan-{uuid.uuid4().hex[:12]}"


@dataclass(frozen=True, slots=True)
class ScanItem:
    """One photograph moving from submission to a terminal outcome.

    Items are never edited in place; every transition produces a new item via
    ``dataclasses.replace`` so readers never see half-applied changes.
    """

    image_data: bytes = field(repr=False)
    id: str = field(default_factory=new_item_id)
    status: ScanStatus = ScanStatus.QUEUED
    candidates: Tuple[Candidate, ...] = ()
    confidence_tier: Optional[ConfidenceTier] = None
    selected_candidate_id: Optional[str] = None
    persisted_record_id: Optional[str] = None
    error: Optional[str] = None
    uploaded_image_url: Optional[str] = None
    preview_url: Optional[str] = None
    exclude_reprints: bool = True
    suppressed_count: int = 0
    rejected_count: int = 0
    rescan_of: Optional[str] = None

    def __post_init__(self) -> None:
        completed = self.status is ScanStatus.COMPLETED
        if completed != (self.persisted_record_id is not None):
            raise ValueError(
                f"Scan item {self.id}: persisted_record_id must be set exactly when completed"
            )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATES

    @property
    def awaiting_review(self) -> bool:
        return self.status in TRIAGE_STATES

    @property
    def top_candidate(self) -> Optional[Candidate]:
        return self.candidates[0] if self.candidates else None

    def find_candidate(self, candidate_id: str) -> Optional[Candidate]:
        for candidate in self.candidates:
            if candidate.id == candidate_id:
                return candidate
        return None

    def summary(self) -> Dict[str, object]:
        top = self.top_candidate
        return {
            "id": self.id,
            "status": self.status.value,
            "confidence_tier": self.confidence_tier.value if self.confidence_tier else None,
            "top_candidate": top.display_title if top else None,
            "top_score": top.score if top else None,
            "candidate_count": len(self.candidates),
            "suppressed_count": self.suppressed_count,
            "selected_candidate_id": self.selected_candidate_id,
            "persisted_record_id": self.persisted_record_id,
            "error": self.error,
            "uploaded_image_url": self.uploaded_image_url,
            "rescan_of": self.rescan_of,
        }


@dataclass(frozen=True, slots=True)
class ItemChange:
    """Notification sent to batch listeners after an item changed."""

    item: ScanItem
    previous_status: Optional[ScanStatus]
    generation: int
