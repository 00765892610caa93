"""Configuration utilities for the scan pipeline."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class ScannerConfig(BaseModel):
    """Runtime configuration for the scanner."""

    data_dir: Path = Field(
        default_factory=lambda: Path.cwd() / "grailscan_data",
        description="Root directory for uploaded images, catalog records, feedback and event logs.",
    )
    api_model: str = Field(
        default="gpt-4o",
        description="Model identifier for the vision endpoint used to rank candidates.",
    )
    dry_run: bool = Field(
        default=False,
        description="If True, the vision client is not invoked and synthetic candidates are returned.",
    )
    request_timeout: float = Field(
        default=45.0,
        gt=0,
        description="Timeout in seconds for a single classification request.",
    )
    max_batch_size: int = Field(
        default=20,
        ge=1,
        description="Maximum number of photographs accepted in one batch submission.",
    )
    max_candidates: int = Field(
        default=5,
        ge=1,
        description="Number of surviving candidates retained per scan item for review.",
    )
    exclude_reprints: bool = Field(
        default=True,
        description="Default state of the reprint/facsimile filter for new submissions.",
    )
    pretty_confident_threshold: float = Field(
        default=0.70,
        ge=0.0,
        le=1.0,
        description="Single-photo checkpoint above which a match reads as 'Pretty confident'.",
    )
    image_max_edge: int = Field(
        default=1200,
        ge=64,
        description="Longest edge in pixels of the compressed image sent for classification.",
    )
    image_quality: int = Field(
        default=85,
        ge=1,
        le=95,
        description="JPEG quality used when compressing photographs.",
    )
    preview_max_edge: int = Field(
        default=320,
        ge=32,
        description="Longest edge in pixels of the preview image stored beside the upload.",
    )
    public_base_url: Optional[str] = Field(
        default=None,
        description="Base URL under which uploaded images are served. Defaults to file:// URLs.",
    )
    price_guide_path: Optional[Path] = Field(
        default=None,
        description="Optional JSON or YAML price guide consulted after a candidate is chosen.",
    )
    max_feedback_entries: int = Field(
        default=500,
        ge=1,
        description="Number of feedback entries kept before the oldest are dropped.",
    )
    max_history_entries: int = Field(
        default=50,
        ge=1,
        description="Number of confirmed scans kept in the recent-scans list.",
    )

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @field_validator("data_dir", "price_guide_path", mode="before")
    @classmethod
    def _expand_path(cls, value: Path | str | None) -> Path | None:
        if value is None:
            return None
        return Path(value).expanduser().resolve()

    @model_validator(mode="after")
    def _check_preview(self) -> "ScannerConfig":
        if self.preview_max_edge > self.image_max_edge:
            raise ValueError("preview_max_edge cannot exceed image_max_edge")
        return self

    @property
    def images_dir(self) -> Path:
        return self.data_dir / "images"

    @property
    def records_dir(self) -> Path:
        return self.data_dir / "records"

    @property
    def feedback_path(self) -> Path:
        return self.data_dir / "feedback.json"

    @property
    def history_path(self) -> Path:
        return self.data_dir / "recent_scans.json"

    @property
    def events_path(self) -> Path:
        return self.data_dir / "logs" / "events.jsonl"
