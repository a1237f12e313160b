"""
End-to-end chart import orchestrator.

Wires together: PDF open → per page (text → render → classify → tag) →
staged ``DetectedAsset`` list, ready for ``upload.commit_assets``.

Designed for:
- Best-effort batches: an unreadable file or a broken page is logged and
  skipped, never fatal.
- Bounded memory: files and pages are processed strictly one after the
  other, and a non-chart page's raster is dropped before the next render.
- Cooperative cancellation, checked before every file and every page.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Iterable

from tradejournal.ingestion.charts import classify
from tradejournal.ingestion.errors import (
    DocumentParseError,
    ImportRunError,
    PageReadError,
    RasterError,
)
from tradejournal.ingestion.patterns import detect_patterns
from tradejournal.ingestion.pdf_parser import (
    DocumentInput,
    SourceDocument,
    as_document_file,
    open_document,
)
from tradejournal.ingestion.rasterizer import render_page, round_half_up
from tradejournal.ingestion.schemas import DetectedAsset, ImportStatus

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]


@dataclass
class ImportBatch:
    """Staged assets plus counters for a single import run."""

    assets: list[DetectedAsset] = field(default_factory=list)
    status: ImportStatus = ImportStatus.IDLE
    pages_processed: int = 0
    pages_total: int = 0
    pages_skipped: int = 0
    files_processed: int = 0
    files_failed: list[str] = field(default_factory=list)
    elapsed_seconds: float = 0.0


class ChartImporter:
    """Runs one import over a sequence of documents.

    An importer is single-use: create a new one per run. ``cancel`` may be
    called from any thread (or from the progress callback).
    """

    def __init__(self, target_max_width: int | None = None) -> None:
        self.target_max_width = target_max_width
        self.batch = ImportBatch()
        self._cancel = threading.Event()
        self._deadline: float | None = None
        self._stopped_early = False  # set only when work was left unscheduled

    @property
    def status(self) -> ImportStatus:
        return self.batch.status

    def cancel(self) -> None:
        self._cancel.set()

    def _should_stop(self) -> bool:
        if self._deadline is not None and time.monotonic() >= self._deadline:
            if not self._cancel.is_set():
                logger.info("Import deadline reached – cancelling.")
            self._cancel.set()
        return self._cancel.is_set()

    # ── Run ───────────────────────────────────────────────────────────
    def run(
        self,
        files: Iterable[DocumentInput],
        on_progress: ProgressCallback | None = None,
        *,
        timeout: float | None = None,
    ) -> tuple[DetectedAsset, ...]:
        """Import every file in order and return the chart pages found.

        Args:
            files: Paths or ``DocumentFile`` objects.
            on_progress: Called with the current file's percentage (0–100)
                after every page.
            timeout: Overall deadline in seconds; expiry cancels the run.

        Returns:
            Detected assets in file order, then page order. On cancellation
            this is whatever was staged before the stop.

        Raises:
            ImportRunError: the run could not continue at all.
        """
        if self.batch.status is not ImportStatus.IDLE:
            raise RuntimeError(f"Importer already used (status={self.batch.status.value}).")

        self.batch.status = ImportStatus.RUNNING
        if timeout is not None:
            self._deadline = time.monotonic() + timeout
        t0 = time.time()

        try:
            for source in files:
                if self._should_stop():
                    self._stopped_early = True
                    break
                self._import_file(source, on_progress)
        except MemoryError as exc:
            self.batch.status = ImportStatus.FAILED
            self.batch.elapsed_seconds = time.time() - t0
            logger.error("Import aborted: out of memory after %d pages.", self.batch.pages_processed)
            raise ImportRunError("Out of memory while importing charts") from exc
        except Exception:
            self.batch.status = ImportStatus.FAILED
            self.batch.elapsed_seconds = time.time() - t0
            raise

        self.batch.status = (
            ImportStatus.CANCELLED if self._stopped_early else ImportStatus.COMPLETED
        )
        self.batch.elapsed_seconds = time.time() - t0
        logger.info(
            "Import %s: %d files, %d/%d pages, %d charts staged (%d pages, %d files skipped) in %.1fs.",
            self.batch.status.value,
            self.batch.files_processed,
            self.batch.pages_processed,
            self.batch.pages_total,
            len(self.batch.assets),
            self.batch.pages_skipped,
            len(self.batch.files_failed),
            self.batch.elapsed_seconds,
        )
        return tuple(self.batch.assets)

    def _import_file(self, source: DocumentInput, on_progress: ProgressCallback | None) -> None:
        file = as_document_file(source)
        try:
            with open_document(file) as doc:
                logger.info("═══ Importing: %s (%d pages) ═══", doc.name, doc.page_count)
                self.batch.files_processed += 1
                self._import_pages(doc, on_progress)
        except DocumentParseError as exc:
            logger.warning("Skipping %s: %s", file.name, exc)
            self.batch.files_failed.append(file.name)

    def _import_pages(self, doc: SourceDocument, on_progress: ProgressCallback | None) -> None:
        total = doc.page_count
        self.batch.pages_total += total
        staged = 0

        for index in range(total):
            if self._should_stop():
                logger.info("Cancelled in %s before page %d.", doc.name, index + 1)
                self._stopped_early = True
                return

            asset = self._import_page(doc, index)
            if asset is not None:
                self.batch.assets.append(asset)
                staged += 1

            self.batch.pages_processed += 1
            if on_progress is not None:
                on_progress(round_half_up(100 * (index + 1) / total))

        logger.info("  %s: %d pages → %d charts.", doc.name, total, staged)

    def _import_page(self, doc: SourceDocument, index: int) -> DetectedAsset | None:
        try:
            content = doc.read_page(index)
            raster = render_page(doc, index, self.target_max_width)
        except (PageReadError, RasterError) as exc:
            logger.warning("  Skipping %s p.%d: %s", doc.name, index + 1, exc)
            self.batch.pages_skipped += 1
            return None

        if not classify(content.text, raster.width, raster.height):
            logger.debug("  %s p.%d: not a chart.", doc.name, index + 1)
            return None

        patterns = detect_patterns(content.text)
        logger.debug("  %s p.%d: chart, patterns=%s.", doc.name, index + 1, sorted(patterns))
        return DetectedAsset(
            source_name=doc.name,
            page_index=index,
            image=raster,
            extracted_text=content.text,
            detected_patterns=patterns,
        )


def import_charts(
    files: Iterable[DocumentInput],
    on_progress: ProgressCallback | None = None,
    *,
    target_max_width: int | None = None,
    timeout: float | None = None,
) -> tuple[tuple[DetectedAsset, ...], ImportBatch]:
    """Run a fresh ``ChartImporter`` and return ``(assets, batch)``."""
    importer = ChartImporter(target_max_width=target_max_width)
    assets = importer.run(files, on_progress, timeout=timeout)
    return assets, importer.batch
