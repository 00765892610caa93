"""User feedback on delivered matches, kept for accuracy tuning."""

from __future__ import annotations

import asyncio
import json
import logging
import re
import time
import uuid
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .models import ScanItem
from .utils import fs, log

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_ENTRIES = 500


def normalize_text(value: object) -> Optional[str]:
    if value is None:
        return None
    text = re.sub(r"[^\w\s]", "", str(value).lower())
    text = re.sub(r"\s+", " ", text).strip()
    return text or None


class MatchDetails(BaseModel):
    title: Optional[str] = None
    issue: Optional[str] = None
    publisher: Optional[str] = None
    year: Optional[str] = None
    candidate_id: Optional[str] = None

    model_config = ConfigDict(extra="ignore")

    @field_validator("title", "issue", "publisher", "year", "candidate_id", mode="before")
    @classmethod
    def to_text(cls, value: object) -> Optional[str]:
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    def normalized_key(self) -> str:
        parts = (self.title, self.issue, self.publisher, self.year)
        return "|".join(normalize_text(part) or "" for part in parts)


class FeedbackEntry(BaseModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: float = Field(default_factory=time.time)
    scan_item_id: str
    key: str
    detected: MatchDetails
    corrected: Optional[MatchDetails] = None
    was_correct: bool
    score: Optional[float] = None


class AccuracyStats(BaseModel):
    total: int
    correct: int
    incorrect: int
    accuracy_rate: float


def detected_details(item: ScanItem) -> MatchDetails:
    top = item.top_candidate
    if top is None:
        return MatchDetails()
    return MatchDetails(
        title=top.series_name or top.title,
        issue=top.issue_label,
        publisher=top.publisher,
        year=str(top.year) if top.year else None,
        candidate_id=top.id,
    )


class FeedbackRecorder:
    """Stores agreement with the top match of a scan item.

    Recording is a side channel. It never changes the item and every failure
    is logged and swallowed.
    """

    def __init__(self, path: Path, max_entries: int = DEFAULT_MAX_ENTRIES) -> None:
        self._path = Path(path)
        self._max_entries = max_entries
        self._lock = asyncio.Lock()

    async def record(
        self,
        item: ScanItem,
        was_correct: bool,
        corrected: Optional[Dict[str, object]] = None,
    ) -> Optional[FeedbackEntry]:
        try:
            detected = detected_details(item)
            top = item.top_candidate
            entry = FeedbackEntry(
                scan_item_id=item.id,
                key=detected.normalized_key(),
                detected=detected,
                corrected=None if was_correct or not corrected else MatchDetails.model_validate(corrected),
                was_correct=was_correct,
                score=top.score if top else None,
            )
            async with self._lock:
                await asyncio.to_thread(self._append, entry)
        except (OSError, ValueError, ValidationError):
            LOGGER.warning("Failed to save scan feedback for %s", item.id, exc_info=True)
            return None
        log.event("feedback", item.id, status="correct" if was_correct else "incorrect")
        return entry

    def entries(self) -> List[FeedbackEntry]:
        if not self._path.exists():
            return []
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            LOGGER.warning("Ignoring unreadable feedback file %s", self._path, exc_info=True)
            return []
        entries = []
        for raw in data if isinstance(data, list) else []:
            try:
                entries.append(FeedbackEntry.model_validate(raw))
            except ValidationError:
                LOGGER.debug("Skipping malformed feedback entry")
        return entries

    def _append(self, entry: FeedbackEntry) -> None:
        entries = [entry] + self.entries()
        payload = [e.model_dump(mode="json") for e in entries[: self._max_entries]]
        fs.atomic_write_text(str(self._path), json.dumps(payload, ensure_ascii=False, indent=2))

    def accuracy_stats(self) -> AccuracyStats:
        entries = self.entries()
        correct = sum(1 for e in entries if e.was_correct)
        total = len(entries)
        return AccuracyStats(
            total=total,
            correct=correct,
            incorrect=total - correct,
            accuracy_rate=(correct / total) * 100 if total else 0.0,
        )

    def clear(self) -> None:
        if self._path.exists():
            self._path.unlink()
