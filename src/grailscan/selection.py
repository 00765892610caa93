"""Review presentation and selection policy for triaged scan items."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from .confidence import (
    CHECKPOINT_LABELS,
    DEFAULT_PRETTY_CONFIDENT_THRESHOLD,
    ConfidenceTier,
    ScanCheckpoint,
    checkpoint_for_score,
    confidence_label,
    score_percent,
    tier_for_score,
)
from .models import ScanItem, ScanStatus
from .schemas.candidate import Candidate


class ReviewReason(str, Enum):
    MATCHES = "matches"
    NO_RESULTS = "no_results"
    FILTERED_OUT = "filtered_out"
    FAILED = "failed"
    PENDING = "pending"
    CLOSED = "closed"


REVIEW_COPY = {
    ReviewReason.MATCHES: "Select the correct match for this comic.",
    ReviewReason.NO_RESULTS: "No confident matches found. Search manually or skip.",
    ReviewReason.FILTERED_OUT: "No original editions found. Try disabling the reprint filter.",
    ReviewReason.FAILED: "We couldn't analyze this photo. Try another photo or skip.",
    ReviewReason.PENDING: "Still identifying this comic.",
    ReviewReason.CLOSED: "This comic has already been handled.",
}


@dataclass(frozen=True, slots=True)
class TierSections:
    high: Tuple[Candidate, ...] = ()
    medium: Tuple[Candidate, ...] = ()
    low: Tuple[Candidate, ...] = ()

    def __iter__(self) -> Iterator[Tuple[ConfidenceTier, Tuple[Candidate, ...]]]:
        yield ConfidenceTier.HIGH, self.high
        yield ConfidenceTier.MEDIUM, self.medium
        yield ConfidenceTier.LOW, self.low

    def __len__(self) -> int:
        return len(self.high) + len(self.medium) + len(self.low)

    def non_empty(self) -> List[Tuple[ConfidenceTier, Tuple[Candidate, ...]]]:
        return [(tier, section) for tier, section in self if section]


def group_by_tier(candidates: Iterable[Candidate]) -> TierSections:
    """Bucket candidates by tier, keeping the classifier's order in each bucket."""

    buckets: Dict[ConfidenceTier, List[Candidate]] = {tier: [] for tier in ConfidenceTier}
    for candidate in candidates:
        buckets[tier_for_score(candidate.score)].append(candidate)
    return TierSections(
        high=tuple(buckets[ConfidenceTier.HIGH]),
        medium=tuple(buckets[ConfidenceTier.MEDIUM]),
        low=tuple(buckets[ConfidenceTier.LOW]),
    )


def preselect(candidates: Iterable[Candidate]) -> Optional[str]:
    """Id of the candidate to highlight, if any. Highlighting is not confirming."""

    sections = group_by_tier(candidates)
    return sections.high[0].id if sections.high else None


def fast_confirm_candidate(item: ScanItem) -> Optional[Candidate]:
    if item.status is not ScanStatus.MATCH_FOUND:
        return None
    if item.confidence_tier is not ConfidenceTier.HIGH or not item.candidates:
        return None
    top = item.candidates[0]
    if tier_for_score(top.score) is not ConfidenceTier.HIGH:
        return None
    return top


def describe_candidate(candidate: Candidate) -> str:
    details = [candidate.display_title]
    if candidate.publisher:
        details.append(candidate.publisher)
    if candidate.year:
        details.append(str(candidate.year))
    if candidate.variant_description:
        details.append(candidate.variant_description)
    label = confidence_label(candidate.score)
    return f"{' · '.join(details)} ({label} {score_percent(candidate.score)}%)"


@dataclass(frozen=True, slots=True)
class ReviewView:
    item_id: str
    status: ScanStatus
    reason: ReviewReason
    message: str
    sections: TierSections
    preselected_id: Optional[str]
    fast_confirm_available: bool
    offer_disable_filter: bool
    checkpoint: ScanCheckpoint
    checkpoint_label: str
    image_url: Optional[str] = None

    @property
    def can_skip(self) -> bool:
        return self.status in (ScanStatus.MATCH_FOUND, ScanStatus.NEEDS_REVIEW, ScanStatus.NO_MATCH)


def _reason_for(item: ScanItem) -> ReviewReason:
    if item.status in (ScanStatus.QUEUED, ScanStatus.PROCESSING):
        return ReviewReason.PENDING
    if item.is_terminal:
        return ReviewReason.CLOSED
    if item.candidates:
        return ReviewReason.MATCHES
    if item.error:
        return ReviewReason.FAILED
    if item.suppressed_count and item.exclude_reprints:
        return ReviewReason.FILTERED_OUT
    return ReviewReason.NO_RESULTS


def build_review(
    item: ScanItem,
    *,
    pretty_confident_threshold: float = DEFAULT_PRETTY_CONFIDENT_THRESHOLD,
) -> ReviewView:
    reason = _reason_for(item)
    reviewable = item.awaiting_review
    candidates = item.candidates if reviewable else ()
    top = item.top_candidate
    checkpoint = checkpoint_for_score(top.score if top else None, pretty_confident_threshold)
    return ReviewView(
        item_id=item.id,
        status=item.status,
        reason=reason,
        message=REVIEW_COPY[reason],
        sections=group_by_tier(candidates),
        preselected_id=preselect(candidates),
        fast_confirm_available=reviewable and fast_confirm_candidate(item) is not None,
        offer_disable_filter=reason is ReviewReason.FILTERED_OUT,
        checkpoint=checkpoint,
        checkpoint_label=CHECKPOINT_LABELS[checkpoint],
        image_url=item.preview_url or item.uploaded_image_url,
    )
