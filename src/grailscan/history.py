"""Recently confirmed scans, newest first."""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field, ValidationError

from .schemas.candidate import Candidate
from .utils import fs

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_ENTRIES = 50


class HistoryEntry(BaseModel):
    record_id: str
    scan_item_id: str
    candidate_id: str
    title: str
    issue_number: Optional[str] = None
    publisher: Optional[str] = None
    year: Optional[int] = None
    image_url: Optional[str] = None
    cover_url: Optional[str] = None
    timestamp: float = Field(default_factory=time.time)


class ScanHistory:
    """A capped list of confirmed scans for quick recall.

    Saving is best effort: failures are logged and reported as ``False`` so a
    confirmed record is never undone by a history write.
    """

    def __init__(self, path: Path, max_entries: int = DEFAULT_MAX_ENTRIES) -> None:
        self._path = Path(path)
        self._max_entries = max_entries

    def save(
        self,
        candidate: Candidate,
        *,
        record_id: str,
        scan_item_id: str,
        image_url: Optional[str] = None,
    ) -> bool:
        entry = HistoryEntry(
            record_id=record_id,
            scan_item_id=scan_item_id,
            candidate_id=candidate.id,
            title=candidate.series_name or candidate.title,
            issue_number=candidate.issue_label,
            publisher=candidate.publisher,
            year=candidate.year,
            image_url=image_url,
            cover_url=candidate.cover_url,
        )
        try:
            entries = [entry] + self.load(self._max_entries)
            payload = [e.model_dump(mode="json") for e in entries[: self._max_entries]]
            fs.atomic_write_text(str(self._path), json.dumps(payload, ensure_ascii=False, indent=2))
        except OSError:
            LOGGER.warning("Failed to save scan %s to history", record_id, exc_info=True)
            return False
        return True

    def load(self, limit: int = 10) -> List[HistoryEntry]:
        if not self._path.exists():
            return []
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            LOGGER.warning("Ignoring unreadable scan history %s", self._path, exc_info=True)
            return []
        entries: List[HistoryEntry] = []
        for raw in data if isinstance(data, list) else []:
            try:
                entries.append(HistoryEntry.model_validate(raw))
            except ValidationError:
                continue
            if len(entries) >= limit:
                break
        return entries
