"""Repository: CRUD operations against SQLite using raw SQL.

All methods take/return dataclass instances from models.py.
Connection management uses a single connection with WAL mode and
foreign keys enabled. Every write commits on its own so a failed bill
never rolls back the ones imported before it.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime
from pathlib import Path

from .models import Bill, Category, Import, User


def format_bill_date(value: datetime | str) -> str:
    """Canonical storage form for bill dates (second precision)."""
    if isinstance(value, datetime):
        return value.replace(microsecond=0).isoformat()
    return value


class Repository:
    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        self._conn: sqlite3.Connection | None = None

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON")
            self._conn.execute("PRAGMA journal_mode = WAL")
        return self._conn

    def close(self):
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    # ── Migrations ──────────────────────────────────────────

    def apply_migrations(self, migrations_dir: Path):
        """Apply all pending SQL migrations in order.

        Each migration runs in a transaction: if the SQL fails, the
        schema_version row is not inserted, allowing retry on next startup.
        """
        self.conn.execute(
            "CREATE TABLE IF NOT EXISTS schema_version ("
            "  version INTEGER PRIMARY KEY,"
            "  description TEXT,"
            "  applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP"
            ")"
        )
        self.conn.commit()

        row = self.conn.execute(
            "SELECT MAX(version) FROM schema_version"
        ).fetchone()
        current = row[0] or 0

        for sql_file in sorted(Path(migrations_dir).glob("*.sql")):
            version = int(sql_file.name.split("_")[0])
            if version > current:
                try:
                    self.conn.execute("BEGIN")
                    # executescript auto-commits, so we split statements manually
                    sql_text = sql_file.read_text(encoding="utf-8")
                    for statement in sql_text.split(";"):
                        statement = statement.strip()
                        if statement:
                            self.conn.execute(statement)
                    self.conn.execute(
                        "INSERT INTO schema_version (version, description) VALUES (?, ?)",
                        (version, sql_file.stem),
                    )
                    self.conn.commit()
                except Exception:
                    self.conn.rollback()
                    raise

    # ── Users ───────────────────────────────────────────────

    def ensure_user(self, user_id: str, email: str | None = None, name: str | None = None) -> User:
        """Create the user if missing and return it. Existing rows are left as is."""
        self.conn.execute(
            "INSERT OR IGNORE INTO users (id, email, name) VALUES (?, ?, ?)",
            (user_id, email or f"{user_id}@qianji.local", name),
        )
        self.conn.commit()
        return self.get_user(user_id)

    def get_user(self, user_id: str) -> User | None:
        row = self.conn.execute(
            "SELECT * FROM users WHERE id = ?", (user_id,)
        ).fetchone()
        if row is None:
            return None
        return User(id=row["id"], email=row["email"], name=row["name"],
                    created_at=row["created_at"])

    # ── Categories ──────────────────────────────────────────

    def find_or_create_category(self, name: str, owner_id: str, type: str) -> str:
        """Return the id of the (name, owner) category, creating it if needed.

        INSERT OR IGNORE against the UNIQUE(name, user_id) key keeps this
        idempotent when two writers race on the same name. `type` is only
        used on creation.
        """
        cat = Category(name=name, type=type, user_id=owner_id)
        self.conn.execute(
            "INSERT OR IGNORE INTO categories (id, name, type, user_id, created_at)"
            " VALUES (?, ?, ?, ?, ?)",
            (cat.id, cat.name, cat.type, cat.user_id, cat.created_at),
        )
        self.conn.commit()
        row = self.conn.execute(
            "SELECT id FROM categories WHERE name = ? AND user_id = ?",
            (name, owner_id),
        ).fetchone()
        return row["id"]

    def get_categories(self, owner_id: str) -> list[Category]:
        rows = self.conn.execute(
            "SELECT * FROM categories WHERE user_id = ? ORDER BY rowid",
            (owner_id,),
        ).fetchall()
        return [
            Category(id=r["id"], name=r["name"], type=r["type"],
                     user_id=r["user_id"], created_at=r["created_at"])
            for r in rows
        ]

    # ── Bills ───────────────────────────────────────────────

    def find_existing(
        self, owner_id: str, date: datetime | str, amount: float, description: str,
    ) -> Bill | None:
        """Exact match on the dedup key (owner, date, amount, description)."""
        row = self.conn.execute(
            "SELECT * FROM bills"
            " WHERE user_id = ? AND date = ? AND amount = ? AND description = ?"
            " LIMIT 1",
            (owner_id, format_bill_date(date), amount, description),
        ).fetchone()
        return self._row_to_bill(row) if row else None

    def insert_bill(self, bill: Bill) -> Bill:
        self.conn.execute(
            "INSERT INTO bills"
            " (id, user_id, category_id, title, amount, type, description,"
            "  date, account, platform, import_id, created_at)"
            " VALUES (?,?,?,?,?,?,?,?,?,?,?,?)",
            (bill.id, bill.user_id, bill.category_id, bill.title, bill.amount,
             bill.type, bill.description, format_bill_date(bill.date),
             bill.account, bill.platform, bill.import_id, bill.created_at),
        )
        self.conn.commit()
        return bill

    def get_bill(self, bill_id: str) -> Bill | None:
        row = self.conn.execute(
            "SELECT * FROM bills WHERE id = ?", (bill_id,)
        ).fetchone()
        return self._row_to_bill(row) if row else None

    def get_bills_for_user(self, owner_id: str) -> list[Bill]:
        rows = self.conn.execute(
            "SELECT * FROM bills WHERE user_id = ? ORDER BY date, rowid",
            (owner_id,),
        ).fetchall()
        return [self._row_to_bill(r) for r in rows]

    def get_bills_by_import_id(self, import_id: str) -> list[Bill]:
        rows = self.conn.execute(
            "SELECT * FROM bills WHERE import_id = ? ORDER BY date, rowid",
            (import_id,),
        ).fetchall()
        return [self._row_to_bill(r) for r in rows]

    def count_bills(self, owner_id: str) -> int:
        row = self.conn.execute(
            "SELECT COUNT(*) FROM bills WHERE user_id = ?", (owner_id,)
        ).fetchone()
        return row[0]

    # ── Imports ─────────────────────────────────────────────

    def insert_import(self, imp: Import) -> Import:
        self.conn.execute(
            "INSERT INTO imports (id, file_name, file_hash, file_size, platform,"
            " user_id, created_count, skipped_count, error_count, status,"
            " error_message, created_at, completed_at)"
            " VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (imp.id, imp.file_name, imp.file_hash, imp.file_size, imp.platform,
             imp.user_id, imp.created_count, imp.skipped_count, imp.error_count,
             imp.status, imp.error_message, imp.created_at, imp.completed_at),
        )
        self.conn.commit()
        return imp

    def get_import(self, import_id: str) -> Import | None:
        row = self.conn.execute(
            "SELECT * FROM imports WHERE id = ?", (import_id,)
        ).fetchone()
        return self._row_to_import(row) if row else None

    def get_imports_by_hash(self, file_hash: str) -> list[Import]:
        rows = self.conn.execute(
            "SELECT * FROM imports WHERE file_hash = ? ORDER BY created_at",
            (file_hash,),
        ).fetchall()
        return [self._row_to_import(r) for r in rows]

    _IMPORT_UPDATE_COLS = (
        "platform", "created_count", "skipped_count", "error_count",
        "error_message", "completed_at",
    )

    def update_import_status(self, import_id: str, status: str, **kwargs):
        # Validate kwargs - reject unknown column names to prevent silent bugs
        unknown = set(kwargs.keys()) - set(self._IMPORT_UPDATE_COLS)
        if unknown:
            raise ValueError(f"Unknown columns for update_import_status: {unknown}")

        sets = ["status = ?"]
        vals: list = [status]
        for col in self._IMPORT_UPDATE_COLS:
            if col in kwargs:
                sets.append(f"{col} = ?")
                vals.append(kwargs[col])
        vals.append(import_id)
        self.conn.execute(
            f"UPDATE imports SET {', '.join(sets)} WHERE id = ?", vals
        )
        self.conn.commit()

    # ── Row mapping ─────────────────────────────────────────

    @staticmethod
    def _row_to_bill(row: sqlite3.Row) -> Bill:
        return Bill(
            id=row["id"], user_id=row["user_id"], category_id=row["category_id"],
            title=row["title"], amount=row["amount"], type=row["type"],
            description=row["description"], date=row["date"],
            account=row["account"], platform=row["platform"],
            import_id=row["import_id"], created_at=row["created_at"],
        )

    @staticmethod
    def _row_to_import(row: sqlite3.Row) -> Import:
        return Import(
            id=row["id"], file_name=row["file_name"], file_hash=row["file_hash"],
            file_size=row["file_size"], platform=row["platform"],
            user_id=row["user_id"], created_count=row["created_count"],
            skipped_count=row["skipped_count"], error_count=row["error_count"],
            status=row["status"], error_message=row["error_message"],
            created_at=row["created_at"], completed_at=row["completed_at"],
        )
