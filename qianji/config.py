"""YAML configuration loader for qianji.

Loads the config files from a config directory (the package's seed/
directory unless overridden):
  categories.yaml, parsers.yaml

Also hosts the env-driven wiring helpers used by whatever hosts the
pipeline (the upload endpoint): logging setup, config dir, DB path and
owner id.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml

DATE_POLICIES = ("now", "drop")
DEFAULT_OWNER_ID = "default-user"
DEFAULT_FALLBACK_CATEGORY = "其他"
MIGRATIONS_DIR = Path(__file__).parent / "database" / "migrations"
SEED_CONFIG_DIR = Path(__file__).parent / "seed"


class Config:
    """Loads and provides access to all YAML configuration files."""

    def __init__(self, config_dir: Path | str = SEED_CONFIG_DIR):
        self.config_dir = Path(config_dir)
        if not self.config_dir.is_dir():
            raise FileNotFoundError(f"Config directory not found: {self.config_dir}")

        self._categories: dict | None = None
        self._parsers: dict | None = None

    def _load(self, filename: str) -> dict | list:
        path = self.config_dir / filename
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        with open(path, encoding="utf-8") as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ValueError(f"Invalid YAML in {path}: {e}") from e
        if data is None:
            raise ValueError(f"Empty config file: {path}")
        return data

    @property
    def categories_raw(self) -> dict:
        if self._categories is None:
            data = self._load("categories.yaml")
            if isinstance(data, list):
                data = {"categories": data}
            self._categories = data
        return self._categories

    @property
    def category_keywords(self) -> list[tuple[str, list[str]]]:
        """Ordered (category name, keywords) pairs.

        File order is kept: the first category with a matching keyword
        wins, so reordering entries changes categorization results.
        """
        table: list[tuple[str, list[str]]] = []
        for entry in self.categories_raw.get("categories", []):
            name = entry.get("name")
            keywords = [str(k) for k in entry.get("keywords", []) if k]
            if name and keywords:
                table.append((name, keywords))
        return table

    @property
    def fallback_category(self) -> str:
        """Category assigned when no keyword matches. Default: '其他'."""
        return self.categories_raw.get("fallback_category", DEFAULT_FALLBACK_CATEGORY)

    @property
    def parsers(self) -> dict:
        if self._parsers is None:
            self._parsers = self._load("parsers.yaml")
        return self._parsers

    @property
    def date_policy(self) -> str:
        """What to do with an unparsable date: 'now' substitutes the current
        time, 'drop' discards the row."""
        policy = self.parsers.get("date_policy", "now")
        if policy not in DATE_POLICIES:
            raise ValueError(
                f"Unknown date_policy '{policy}' in parsers.yaml "
                f"(expected one of {', '.join(DATE_POLICIES)})"
            )
        return policy

    @property
    def generic_csv_mapping(self) -> dict[str, str]:
        """Column mapping for the generic CSV parser (header names)."""
        return dict(self.parsers.get("generic_csv", {}) or {})


# ── Environment wiring ────────────────────────────────────


def setup_logging() -> None:
    """Configure logging based on QIANJI_LOG_LEVEL env var."""
    level = os.environ.get("QIANJI_LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def get_config() -> Config:
    """Load application config from QIANJI_CONFIG_DIR (default: the seed
    config shipped in the package)."""
    return Config(config_dir=os.environ.get("QIANJI_CONFIG_DIR", SEED_CONFIG_DIR))


def get_db_path() -> str:
    return os.environ.get("QIANJI_DB_PATH", "qianji.db")


def get_migrations_dir() -> Path:
    return Path(os.environ.get("QIANJI_MIGRATIONS_DIR", MIGRATIONS_DIR))


def get_owner_id() -> str:
    """Owner that uploaded bills are attributed to."""
    return os.environ.get("QIANJI_OWNER_ID", DEFAULT_OWNER_ID)
