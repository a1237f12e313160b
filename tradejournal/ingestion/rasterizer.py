"""
Page rendering: PDF page → bounded bitmap → resampled JPEG.

Two passes keep memory and storage predictable:

1. PyMuPDF renders at a working scale chosen so neither side exceeds
   ``max_width`` (and never above ``max_scale`` × the page's natural size).
2. Pillow resamples to ``target_width`` (aspect ratio preserved, never
   upscaled) and encodes JPEG at a fixed quality.

Only one page's bitmap is alive at a time; the pixmap is released as soon
as Pillow has a copy of the samples.
"""

from __future__ import annotations

import io
import logging
import math

import fitz  # PyMuPDF
from PIL import Image

from tradejournal.ingestion.config import import_settings
from tradejournal.ingestion.errors import PageReadError, RasterError
from tradejournal.ingestion.pdf_parser import SourceDocument
from tradejournal.ingestion.schemas import RasterResult

logger = logging.getLogger(__name__)


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero (not banker's)."""
    return int(math.floor(value + 0.5))


def working_scale(page_width: float, page_height: float) -> float:
    """Zoom factor for the first rendering pass."""
    if page_width <= 0 or page_height <= 0:
        raise RasterError(f"Degenerate page size {page_width}x{page_height}")
    return min(
        import_settings.max_width / page_width,
        import_settings.max_width / page_height,
        import_settings.max_scale,
    )


def output_size(working_width: int, working_height: int, target_max_width: int) -> tuple[int, int]:
    """Size after the resampling pass; raises ``RasterError`` if either side is 0."""
    if working_width <= 0 or working_height <= 0:
        raise RasterError(f"Empty bitmap {working_width}x{working_height}")
    out_w = min(target_max_width, working_width)
    out_h = round_half_up(working_height * out_w / working_width)
    if out_w <= 0 or out_h <= 0:
        raise RasterError(f"Resampled size {out_w}x{out_h} is empty")
    return out_w, out_h


def render_page(
    doc: SourceDocument,
    index: int,
    target_max_width: int | None = None,
) -> RasterResult:
    """Render page *index* of *doc* into a JPEG ``RasterResult``."""
    target = target_max_width or import_settings.target_width

    try:
        page = doc.load_page(index)
    except PageReadError as exc:
        raise RasterError(str(exc)) from exc

    scale = working_scale(page.rect.width, page.rect.height)
    try:
        pix = page.get_pixmap(matrix=fitz.Matrix(scale, scale), alpha=False)
        img = Image.frombytes("RGB", (pix.width, pix.height), pix.samples)
    except (RuntimeError, ValueError) as exc:
        raise RasterError(f"{doc.name}: cannot render page {index}: {exc}") from exc
    del pix

    out_w, out_h = output_size(img.width, img.height, target)
    if (out_w, out_h) != img.size:
        img = img.resize((out_w, out_h), Image.Resampling.LANCZOS)

    buf = io.BytesIO()
    try:
        img.save(buf, format="JPEG", quality=import_settings.jpeg_quality)
    except (OSError, ValueError) as exc:
        raise RasterError(f"{doc.name}: cannot encode page {index}: {exc}") from exc

    logger.debug(
        "Rendered %s p.%d at %.2fx → %dx%d (%d bytes).",
        doc.name, index + 1, scale, out_w, out_h, buf.tell(),
    )
    return RasterResult(image_buffer=buf.getvalue(), width=out_w, height=out_h)
