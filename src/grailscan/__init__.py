"""GrailScan photo identification and confirmation pipeline."""

from .batch import ScanBatch
from .confidence import ConfidenceTier, ScanCheckpoint, tier_for_score
from .config import ScannerConfig
from .confirmation import ConfirmationGate
from .models import ScanItem, ScanStatus
from .queue_processor import QueueProcessor
from .schemas.candidate import Candidate, Provenance
from .session import ScanSession

__all__ = [
    "ScanBatch",
    "ConfidenceTier",
    "ScanCheckpoint",
    "tier_for_score",
    "ScannerConfig",
    "ConfirmationGate",
    "ScanItem",
    "ScanStatus",
    "QueueProcessor",
    "Candidate",
    "Provenance",
    "ScanSession",
]
