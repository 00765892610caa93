"""Pydantic schema for catalog record creation requests."""
from __future__ import annotations

import re
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .candidate import EARLIEST_YEAR, LATEST_YEAR, Candidate, Provenance

OPTIONAL_STR_FIELDS = (
    "series",
    "issue_number",
    "publisher",
    "variant",
    "notes",
    "image_url",
    "preview_url",
)


class Identification(BaseModel):
    """Where the record's identity came from."""

    scan_item_id: str
    candidate_id: str
    provenance: Provenance
    score: float = Field(..., ge=0.0, le=1.0)

    model_config = ConfigDict(frozen=True)


class CatalogRecordRequest(BaseModel):
    title: str = Field(..., min_length=1)
    series: Optional[str] = None
    issue_number: Optional[str] = None
    publisher: Optional[str] = None
    year: Optional[int] = None
    variant: Optional[str] = None
    notes: Optional[str] = None
    image_url: Optional[str] = None
    preview_url: Optional[str] = None
    identification: Identification

    model_config = ConfigDict(extra="forbid", frozen=True)

    @field_validator("title", mode="before")
    @classmethod
    def strip_title(cls, value: object) -> str:
        return str(value or "").strip()

    @field_validator("year")
    @classmethod
    def plausible_year(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and not EARLIEST_YEAR <= value <= LATEST_YEAR:
            raise ValueError(f"implausible publication year {value}")
        return value

    @field_validator(*OPTIONAL_STR_FIELDS, mode="before")
    @classmethod
    def empty_to_none(cls, value: object) -> Optional[str]:
        if value is None:
            return None
        text = str(value).strip()
        return text or None


def _same_name(left: str, right: str) -> bool:
    def norm(text: str) -> str:
        return re.sub(r"\s+", " ", re.sub(r"[^\w\s]", "", text.lower())).strip()

    return norm(left) == norm(right)


def build_record_request(
    candidate: Candidate,
    *,
    scan_item_id: str,
    image_url: Optional[str] = None,
    preview_url: Optional[str] = None,
) -> CatalogRecordRequest:
    """Map a confirmed candidate onto a catalog record.

    The series name is the primary title. A story title that differs from it
    is kept in ``notes`` so it is not lost.
    """

    series = candidate.series_name
    title = series or candidate.title
    notes = None
    if series and not _same_name(series, candidate.title):
        notes = f"Story title: {candidate.title}"
    return CatalogRecordRequest(
        title=title,
        series=series or candidate.title,
        issue_number=candidate.issue_label,
        publisher=candidate.publisher,
        year=candidate.year,
        variant=candidate.variant_description,
        notes=notes,
        image_url=image_url,
        preview_url=preview_url,
        identification=Identification(
            scan_item_id=scan_item_id,
            candidate_id=candidate.id,
            provenance=candidate.provenance,
            score=candidate.score,
        ),
    )
