"""
Exception taxonomy for the chart import pipeline.

File- and page-level errors (``DocumentParseError``, ``PageReadError``,
``RasterError``) are recoverable: the orchestrator logs them and moves on.
``UploadSubmissionError`` is collected per asset at commit time.
``ImportRunError`` is the only run-level failure.
"""

from __future__ import annotations


class ChartImportError(Exception):
    """Base class for every error raised by the import pipeline."""


class DocumentParseError(ChartImportError):
    """The whole file is unreadable, malformed, or locked."""


class PageReadError(ChartImportError):
    """A single page could not be loaded or its text extracted."""


class RasterError(ChartImportError):
    """A single page could not be rendered to an image."""


class UploadSubmissionError(ChartImportError):
    """The asset endpoint rejected (or never received) one submission."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ImportRunError(ChartImportError):
    """The run was aborted as a whole (e.g. out of memory while rendering)."""
