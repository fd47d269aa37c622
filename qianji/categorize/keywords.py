"""Keyword categorization: maps bill descriptions to category names.

The table is an ordered list of (category, keywords). Categories are
checked in table order and the first one with a keyword contained in the
text wins, so table order decides ties like "超市购物" (日用百货 beats
购物). Shared by every parser; loaded once and never mutated.
"""

from __future__ import annotations

import logging
from functools import lru_cache

from qianji.config import DEFAULT_FALLBACK_CATEGORY, SEED_CONFIG_DIR, Config

logger = logging.getLogger(__name__)


class CategorizationService:
    """Keyword-substring lookup over a static, ordered category table."""

    def __init__(
        self,
        table: list[tuple[str, list[str]]],
        fallback: str = DEFAULT_FALLBACK_CATEGORY,
    ):
        self._table: tuple[tuple[str, tuple[str, ...]], ...] = tuple(
            (name, tuple(keywords)) for name, keywords in table
        )
        self.fallback = fallback

    @classmethod
    def from_config(cls, config: Config) -> CategorizationService:
        table = config.category_keywords
        if not table:
            logger.warning(
                "No category keywords in %s; everything will be '%s'",
                config.config_dir, config.fallback_category,
            )
        return cls(table, fallback=config.fallback_category)

    @classmethod
    def default(cls) -> CategorizationService:
        """Service built from the seed config shipped with the package."""
        return _default_service()

    @property
    def categories(self) -> list[str]:
        return [name for name, _ in self._table]

    def categorize(self, text: str | None) -> str:
        """Return the first category whose keyword occurs in text."""
        if not text:
            return self.fallback
        for name, keywords in self._table:
            for keyword in keywords:
                if keyword in text:
                    return name
        return self.fallback


@lru_cache(maxsize=1)
def _default_service() -> CategorizationService:
    return CategorizationService.from_config(Config(SEED_CONFIG_DIR))
