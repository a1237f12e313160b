"""
Trading-pattern tagging from page text.

Rules are data: an ordered list of ``(label, regex)`` pairs taken from
``ImportSettings.pattern_rules``. Every rule is tested on its own, so a page
can carry several tags; adding a pattern means adding a config entry.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Iterable, Mapping

from tradejournal.ingestion.config import import_settings


@dataclass(frozen=True)
class PatternRule:
    label: str
    pattern: re.Pattern

    def matches(self, lowered_text: str) -> bool:
        return self.pattern.search(lowered_text) is not None


def build_rules(mapping: Mapping[str, str]) -> tuple[PatternRule, ...]:
    """Compile a ``{label: regex}`` mapping into rules (case-insensitive)."""
    return tuple(
        PatternRule(label=label, pattern=re.compile(regex, re.I))
        for label, regex in mapping.items()
    )


@lru_cache(maxsize=1)
def default_rules() -> tuple[PatternRule, ...]:
    return build_rules(import_settings.pattern_rules)


def detect_patterns(text: str, rules: Iterable[PatternRule] | None = None) -> set[str]:
    """Return the labels of every rule that fires on *text*."""
    if not text:
        return set()
    lowered = text.lower()
    active = default_rules() if rules is None else rules
    return {rule.label for rule in active if rule.matches(lowered)}
