"""Score to confidence tier mapping.

Batch review uses three coarse tiers. The single-photo flow reads the same
score through finer checkpoints with different copy; neither re-derives the
score from anything else.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

HIGH_THRESHOLD = 0.80
MEDIUM_THRESHOLD = 0.50
LOCKED_IN_THRESHOLD = 0.90
DEFAULT_PRETTY_CONFIDENT_THRESHOLD = 0.70


class ConfidenceTier(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ScanCheckpoint(str, Enum):
    LOCKED_IN = "locked_in"
    PRETTY_CONFIDENT = "pretty_confident"
    MANUAL = "manual"


CHECKPOINT_LABELS = {
    ScanCheckpoint.LOCKED_IN: "Locked in",
    ScanCheckpoint.PRETTY_CONFIDENT: "Pretty confident",
    ScanCheckpoint.MANUAL: "Needs confirmation",
}

_SCORE_LABELS = (
    (0.90, "Excellent"),
    (0.75, "High"),
    (0.60, "Good"),
    (0.40, "Moderate"),
)


def tier_for_score(score: float) -> ConfidenceTier:
    """Return the review tier for a classifier score.

    Any value that is not at least ``MEDIUM_THRESHOLD`` (NaN included) is low.
    """

    if score >= HIGH_THRESHOLD:
        return ConfidenceTier.HIGH
    if score >= MEDIUM_THRESHOLD:
        return ConfidenceTier.MEDIUM
    return ConfidenceTier.LOW


def checkpoint_for_score(
    score: Optional[float],
    pretty_confident_threshold: float = DEFAULT_PRETTY_CONFIDENT_THRESHOLD,
) -> ScanCheckpoint:
    if score is None:
        return ScanCheckpoint.MANUAL
    if score >= LOCKED_IN_THRESHOLD:
        return ScanCheckpoint.LOCKED_IN
    if score >= pretty_confident_threshold:
        return ScanCheckpoint.PRETTY_CONFIDENT
    return ScanCheckpoint.MANUAL


def confidence_label(score: float) -> str:
    for threshold, label in _SCORE_LABELS:
        if score >= threshold:
            return label
    return "Low"


def score_percent(score: float) -> int:
    return int(round(score * 100))
