"""
Pydantic models for every artifact that flows out of the import pipeline.

  - RasterResult   – one rendered, resampled, JPEG-encoded page
  - DetectedAsset  – a chart-classified page staged for upload
  - UploadedAsset  – what the journal server hands back after a commit
  - CommitReport   – per-batch outcome of the upload step

Staged results are frozen: once the classifier accepts a page nothing
downstream may mutate it.
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


# ── Enums ────────────────────────────────────────────────────────────────

class ImportStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


# ── Staged results ───────────────────────────────────────────────────────

class RasterResult(BaseModel):
    """A rendered page, already downsampled and compressed."""

    model_config = ConfigDict(frozen=True)

    image_buffer: bytes = Field(..., repr=False)
    width: int = Field(..., gt=0)
    height: int = Field(..., gt=0)
    mime_type: str = "image/jpeg"

    @property
    def aspect_ratio(self) -> float:
        return self.height / self.width


class DetectedAsset(BaseModel):
    """A chart-like page, tagged and waiting to be committed."""

    model_config = ConfigDict(frozen=True)

    source_name: str
    page_index: int = Field(..., ge=0)
    image: RasterResult
    extracted_text: str = ""
    detected_patterns: frozenset[str] = frozenset()
    is_chart: Literal[True] = True

    @property
    def page_number(self) -> int:
        """1-based page number, as shown to the user and sent to the server."""
        return self.page_index + 1

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height

    def __str__(self) -> str:
        return f"{self.source_name}, p.{self.page_number}"


# ── Commit results ───────────────────────────────────────────────────────

class UploadedAsset(BaseModel):
    """Server acknowledgement for one committed asset."""

    id: str
    url: str | None = None
    source: str
    page: int


class FailedUpload(BaseModel):
    source: str
    page: int
    error: str
    status_code: int | None = None


class CommitReport(BaseModel):
    uploaded: list[UploadedAsset] = Field(default_factory=list)
    failed: list[FailedUpload] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


# ── Helpers ──────────────────────────────────────────────────────────────

def asset_to_form_fields(asset: DetectedAsset) -> dict[str, str]:
    """Serialise asset metadata into the flat string fields of the upload form."""
    return {
        "source": asset.source_name,
        "page": str(asset.page_number),
        "extractedText": asset.extracted_text,
        "isChart": "true",
        "width": str(asset.width),
        "height": str(asset.height),
        # multipart values must be strings; tags travel as a JSON list
        "detectedPatterns": json.dumps(sorted(asset.detected_patterns)),
    }
