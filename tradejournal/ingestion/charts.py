"""
Chart-page classification.

A lightweight heuristic, not a model: a page is kept only when its text
carries chart vocabulary (sessions, indicators, OHLC/volume terms, pips)
AND the rendered page is landscape or square. Missing a chart is cheaper
than uploading a page of prose, so both signals must agree.
"""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Iterable

from tradejournal.ingestion.config import import_settings


@lru_cache(maxsize=8)
def _compile_vocabulary(keywords: tuple[str, ...]) -> re.Pattern | None:
    terms = [re.escape(k.strip().lower()) for k in keywords if k.strip()]
    if not terms:
        return None
    return re.compile(r"\b(?:" + "|".join(terms) + r")\b")


def has_chart_vocabulary(text: str, keywords: Iterable[str] | None = None) -> bool:
    """True if *text* contains at least one chart keyword as a whole word."""
    if not text:
        return False
    vocab = tuple(import_settings.chart_keywords if keywords is None else keywords)
    pattern = _compile_vocabulary(vocab)
    if pattern is None:
        return False
    return pattern.search(text.lower()) is not None


def is_landscape(width: int, height: int) -> bool:
    return width >= height


def classify(
    text: str,
    width: int,
    height: int,
    keywords: Iterable[str] | None = None,
) -> bool:
    """Return True if the page looks like a price chart."""
    return is_landscape(width, height) and has_chart_vocabulary(text, keywords)
