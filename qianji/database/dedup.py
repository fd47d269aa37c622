"""Deduplicating importer: persists parsed bills, skipping ones already stored.

A bill is a duplicate when the owner already has a bill with the same
(date, amount, description). Re-importing the same export therefore
creates nothing the second time.

Records are independent: each one gets its own category upsert,
existence check and insert, and a failure on one is logged and counted
without touching the others. A bulk upload reports "N imported, M
skipped" instead of failing as a whole.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from qianji.database.models import Bill
from qianji.database.repository import format_bill_date
from qianji.parsers.base import ParsedBill

logger = logging.getLogger(__name__)


class BillStore(Protocol):
    """Persistence operations the importer needs (Repository implements them)."""

    def find_or_create_category(self, name: str, owner_id: str, type: str) -> str: ...

    def find_existing(
        self, owner_id: str, date: datetime | str, amount: float, description: str,
    ) -> Bill | None: ...

    def insert_bill(self, bill: Bill) -> Bill: ...


@dataclass
class DedupResult:
    """Outcome of importing a single parsed bill."""
    status: str  # "created", "duplicate", "error"
    bill: Bill | None = None
    error: str | None = None


@dataclass
class ImportCounts:
    """Summary of a batch import."""
    created_count: int = 0
    skipped_count: int = 0
    error_count: int = 0
    total_amount: float = 0.0  # sum of created bills


class BillImporter:
    """Import parsed bills for one owner through a BillStore."""

    def __init__(self, store: BillStore, owner_id: str):
        self.store = store
        self.owner_id = owner_id

    def import_bill(self, parsed: ParsedBill, import_id: str | None = None) -> DedupResult:
        """Find-or-create the category, then insert unless a duplicate exists."""
        date = format_bill_date(parsed.date)

        category_id = None
        if parsed.category:
            category_id = self.store.find_or_create_category(
                parsed.category, self.owner_id, parsed.type,
            )

        existing = self.store.find_existing(
            self.owner_id, date, parsed.amount, parsed.description,
        )
        if existing is not None:
            return DedupResult(status="duplicate", bill=existing)

        bill = self.store.insert_bill(Bill(
            user_id=self.owner_id,
            title=parsed.title,
            amount=parsed.amount,
            type=parsed.type,
            date=date,
            description=parsed.description,
            category_id=category_id,
            account=parsed.account,
            platform=parsed.platform,
            import_id=import_id,
        ))
        return DedupResult(status="created", bill=bill)

    def import_bills(
        self, bills: list[ParsedBill], import_id: str | None = None,
    ) -> ImportCounts:
        counts = ImportCounts()
        for i, parsed in enumerate(bills):
            try:
                result = self.import_bill(parsed, import_id)
            except Exception as e:
                logger.exception("Failed to import bill %d (%s)", i, parsed.title)
                result = DedupResult(status="error", error=str(e))

            if result.status == "created":
                counts.created_count += 1
                counts.total_amount += parsed.amount
            elif result.status == "duplicate":
                counts.skipped_count += 1
            else:
                counts.error_count += 1

        counts.total_amount = round(counts.total_amount, 2)
        logger.info(
            "Imported %d bills for %s: %d new, %d duplicate, %d failed",
            len(bills), self.owner_id, counts.created_count,
            counts.skipped_count, counts.error_count,
        )
        return counts
