"""
Chart import pipeline configuration.

All values can be overridden via environment variables prefixed with
``IMPORT_`` (e.g. ``IMPORT_TARGET_WIDTH=1024``). List and mapping values
are read as JSON, e.g.
``IMPORT_CHART_KEYWORDS='["rsi", "macd", "london"]'``.
"""

from __future__ import annotations

from pydantic_settings import BaseSettings


class ImportSettings(BaseSettings):
    """Tuneable knobs for every pipeline stage."""

    # ── Page rendering ───────────────────────────────────────────────────
    max_width: int = 1600  # hard ceiling for either rendered dimension (px)
    max_scale: float = 2.0  # never render above 2x the page's natural size
    target_width: int = 1280  # stored width after the resampling pass
    jpeg_quality: int = 90

    # ── Chart classification ─────────────────────────────────────────────
    # Whole-word, case-insensitive. One hit is enough for the vocabulary
    # signal; the page must also be landscape.
    chart_keywords: list[str] = [
        "open",
        "high",
        "low",
        "close",
        "volume",
        "ohlc",
        "ema",
        "rsi",
        "tdi",
        "adr",
        "pip",
        "pips",
        "session",
        "asian",
        "london",
        "new york",
        "ny",
    ]

    # ── Pattern tagging ──────────────────────────────────────────────────
    # label -> regex, evaluated against lower-cased page text. Order is kept
    # but carries no meaning; every rule is tested independently.
    pattern_rules: dict[str, str] = {
        "M": r"\bm\b|m pattern|double top",
        "W": r"\bw\b|w pattern|double bottom",
        "Half Batman/ID50": r"half\s*b(at)?man|id50",
        "EMA Context": r"ema\s*50|ema\s*200|ema\s*800|13\s*ema",
    }

    model_config = {
        "env_prefix": "IMPORT_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }


import_settings = ImportSettings()
