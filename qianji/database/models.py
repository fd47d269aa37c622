"""Dataclass models matching the SQLite schema.

Each dataclass corresponds to one table. Fields match column names exactly.
All primary keys are TEXT (UUID strings generated via uuid4()).
Bill dates are stored as ISO-8601 strings without timezone.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from uuid import uuid4


def _new_id() -> str:
    return str(uuid4())


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class User:
    id: str
    email: str
    name: str | None = None
    created_at: str = field(default_factory=_now)


@dataclass
class Category:
    name: str
    type: str
    user_id: str
    id: str = field(default_factory=_new_id)
    created_at: str = field(default_factory=_now)


@dataclass
class Import:
    file_name: str
    file_hash: str
    id: str = field(default_factory=_new_id)
    file_size: int | None = None
    platform: str | None = None
    user_id: str | None = None
    created_count: int | None = None
    skipped_count: int | None = None
    error_count: int | None = None
    status: str = "pending"
    error_message: str | None = None
    created_at: str = field(default_factory=_now)
    completed_at: str | None = None


@dataclass
class Bill:
    user_id: str
    title: str
    amount: float
    type: str
    date: str
    description: str = ""
    id: str = field(default_factory=_new_id)
    category_id: str | None = None
    account: str | None = None
    platform: str | None = None
    import_id: str | None = None
    created_at: str = field(default_factory=_now)
