"""Exception types raised by the scan pipeline."""

from __future__ import annotations


class GrailscanError(RuntimeError):
    """Base class for pipeline errors."""


class MissingAPIKey(GrailscanError):
    """Raised when the OpenAI API key cannot be located."""


class ClassificationError(GrailscanError):
    """The image could not be prepared, uploaded or classified."""


class PersistenceError(GrailscanError):
    """The catalog store rejected or failed to write a record."""


class StaleSelectionError(GrailscanError):
    """A candidate was confirmed against an item it does not belong to."""


class InvalidTransitionError(GrailscanError):
    """A scan item was asked to move to a status it cannot reach."""


class ConfirmationInFlightError(GrailscanError):
    """A confirmation for the same item is already being persisted."""


class FastConfirmUnavailable(GrailscanError):
    """Fast confirm was requested for an item without a high-tier top match."""


class BatchSizeError(ValueError):
    """A batch submission was empty or larger than the configured limit."""
