"""Read-only price hints for a chosen candidate."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Protocol

import yaml

from .schemas.candidate import Candidate

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PriceQuote:
    low: Optional[float]
    mid: Optional[float]
    high: Optional[float]
    currency: str = "USD"
    source: str = "price_guide"


class PricingLookup(Protocol):
    async def lookup(self, candidate: Candidate) -> Optional[PriceQuote]:
        ...


def price_key(series: Optional[str], issue: Optional[str]) -> str:
    name = re.sub(r"[^\w\s]", "", (series or "").lower())
    name = re.sub(r"\s+", " ", name).strip()
    number = (issue or "").strip().lstrip("#").lower()
    return f"{name}|{number}"


def load_price_guide(path: Path) -> Dict[str, Dict[str, object]]:
    """Load a price guide from JSON or YAML.

    The file maps ``"<series> #<issue>"`` (or ``series|issue``) to an object
    with ``low``/``mid``/``high`` and optional ``currency``.
    """

    if not path.exists():
        raise FileNotFoundError(path)
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() in {".yaml", ".yml"}:
        data = yaml.safe_load(text)
    else:
        data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError("Price guide file must define an object")
    guide: Dict[str, Dict[str, object]] = {}
    for label, entry in data.items():
        if not isinstance(entry, dict):
            raise ValueError(f"Price guide entry {label!r} must be an object")
        if "|" in str(label):
            series, _, issue = str(label).partition("|")
        else:
            series, _, issue = str(label).rpartition("#")
        guide[price_key(series, issue)] = entry
    return guide


def _to_float(value: object) -> Optional[float]:
    if value in (None, ""):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class PriceGuide:
    def __init__(self, entries: Dict[str, Dict[str, object]]) -> None:
        self._entries = entries

    @classmethod
    def from_file(cls, path: Path) -> "PriceGuide":
        return cls(load_price_guide(path))

    async def lookup(self, candidate: Candidate) -> Optional[PriceQuote]:
        entry = self._entries.get(price_key(candidate.series_name or candidate.title, candidate.issue_label))
        if entry is None:
            return None
        return PriceQuote(
            low=_to_float(entry.get("low")),
            mid=_to_float(entry.get("mid")),
            high=_to_float(entry.get("high")),
            currency=str(entry.get("currency") or "USD"),
        )
