"""Pydantic schema for classifier candidates."""
from __future__ import annotations

import logging
import math
from enum import Enum
from typing import Any, Iterable, List, Optional, Tuple

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_core import PydanticUndefined

LOGGER = logging.getLogger(__name__)


class Provenance(str, Enum):
    PRIMARY_CATALOG = "primary_catalog"
    VERIFIED_CACHE = "verified_cache"
    SECONDARY_CATALOG = "secondary_catalog"


PROVENANCE_ALIASES = {
    "primary": Provenance.PRIMARY_CATALOG,
    "primary_catalog": Provenance.PRIMARY_CATALOG,
    "comicvine": Provenance.PRIMARY_CATALOG,
    "catalog": Provenance.PRIMARY_CATALOG,
    "cache": Provenance.VERIFIED_CACHE,
    "local_cache": Provenance.VERIFIED_CACHE,
    "verified": Provenance.VERIFIED_CACHE,
    "verified_cache": Provenance.VERIFIED_CACHE,
    "secondary": Provenance.SECONDARY_CATALOG,
    "secondary_catalog": Provenance.SECONDARY_CATALOG,
    "gcd": Provenance.SECONDARY_CATALOG,
}

EARLIEST_YEAR = 1800
LATEST_YEAR = 2100

OPTIONAL_STR_FIELDS = (
    "series_name",
    "publisher",
    "variant_description",
    "thumbnail_url",
    "cover_url",
)


class Candidate(BaseModel):
    """One ranked identity match returned for a photograph."""

    id: str
    title: str
    series_name: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("series_name", "seriesName", "volumeName")
    )
    issue_label: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("issue_label", "issueLabel", "issue")
    )
    publisher: Optional[str] = None
    year: Optional[int] = None
    variant_description: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("variant_description", "variantDescription")
    )
    score: float
    is_reprint_flagged: bool = Field(
        default=False,
        validation_alias=AliasChoices("is_reprint_flagged", "isReprintFlagged", "isReprint"),
    )
    thumbnail_url: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("thumbnail_url", "thumbnailUrl", "thumbUrl")
    )
    cover_url: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("cover_url", "coverUrl")
    )
    provenance: Provenance = Field(
        default=Provenance.PRIMARY_CATALOG, validation_alias=AliasChoices("provenance", "source")
    )

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, value: object) -> str:
        if value is None or value is PydanticUndefined:
            raise ValueError("candidate id is required")
        text = str(value).strip()
        if not text:
            raise ValueError("candidate id is required")
        return text

    @field_validator("title", mode="before")
    @classmethod
    def require_title(cls, value: object) -> str:
        if value is None or value is PydanticUndefined:
            raise ValueError("candidate title is required")
        text = str(value).strip()
        if not text:
            raise ValueError("candidate title is required")
        return text

    @field_validator("year", mode="before")
    @classmethod
    def coerce_year(cls, value: object) -> Optional[int]:
        if value in (None, ""):
            return None
        try:
            year = int(str(value).strip()[:4])
        except (TypeError, ValueError):
            return None
        if not EARLIEST_YEAR <= year <= LATEST_YEAR:
            LOGGER.debug("Dropping implausible candidate year %r", value)
            return None
        return year

    @field_validator("score", mode="before")
    @classmethod
    def clamp_score(cls, value: object) -> float:
        if isinstance(value, bool):
            raise ValueError("score must be numeric")
        try:
            score = float(value)
        except (TypeError, ValueError) as exc:
            raise ValueError("score must be numeric") from exc
        if math.isnan(score):
            raise ValueError("score must be numeric")
        return min(max(score, 0.0), 1.0)

    @field_validator("is_reprint_flagged", mode="before")
    @classmethod
    def to_bool(cls, value: object) -> bool:
        if value in (None, "") or value is PydanticUndefined:
            return False
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        return text in {"1", "true", "yes", "y"}

    @field_validator("provenance", mode="before")
    @classmethod
    def validate_provenance(cls, value: object) -> Provenance:
        if value is None or (isinstance(value, str) and not value.strip()):
            return Provenance.PRIMARY_CATALOG
        if isinstance(value, Provenance):
            return value
        key = str(value).strip().lower()
        mapped = PROVENANCE_ALIASES.get(key)
        if mapped:
            return mapped
        return Provenance.SECONDARY_CATALOG

    @field_validator("issue_label", mode="before")
    @classmethod
    def str_issue(cls, value: object) -> Optional[str]:
        if value is None or value is PydanticUndefined:
            return None
        text = str(value).strip().lstrip("#")
        return text or None

    @field_validator(*OPTIONAL_STR_FIELDS, mode="before")
    @classmethod
    def empty_to_none(cls, value: object) -> Optional[str]:
        if value is None or value is PydanticUndefined:
            return None
        if isinstance(value, str):
            stripped = value.strip()
            return stripped or None
        return str(value)

    @property
    def display_title(self) -> str:
        name = self.series_name or self.title
        if self.issue_label:
            return f"{name} #{self.issue_label}"
        return name


def parse_candidates(raw: Iterable[Any]) -> Tuple[List[Candidate], int]:
    """Validate classifier output, keeping order.

    Returns the valid candidates and the number of entries that were
    quarantined. Repeated ids keep their first (higher ranked) occurrence.
    """

    candidates: List[Candidate] = []
    seen = set()
    rejected = 0
    for position, entry in enumerate(raw):
        if not isinstance(entry, dict):
            LOGGER.warning("Discarding non-object candidate at position %d", position)
            rejected += 1
            continue
        try:
            candidate = Candidate.model_validate(entry)
        except ValidationError as exc:
            LOGGER.warning(
                "Discarding malformed candidate at position %d: %s",
                position,
                exc.errors(include_url=False),
            )
            rejected += 1
            continue
        if candidate.id in seen:
            LOGGER.debug("Dropping repeated candidate id %s", candidate.id)
            continue
        seen.add(candidate.id)
        candidates.append(candidate)
    return candidates, rejected
