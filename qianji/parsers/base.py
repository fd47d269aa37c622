"""Base parser: shared interface, data structures, and utility functions."""

from __future__ import annotations

import csv
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from qianji.categorize.keywords import CategorizationService

logger = logging.getLogger(__name__)

INCOME = "INCOME"
EXPENSE = "EXPENSE"
TRANSFER = "TRANSFER"
INVESTMENT = "INVESTMENT"
BILL_TYPES = frozenset({INCOME, EXPENSE, TRANSFER, INVESTMENT})


# ── Errors ────────────────────────────────────────────────


class BillParseError(Exception):
    """Base for errors that abort parsing a whole file.

    Attributes:
        stage: Pipeline stage that failed: "dispatch", "header" or "column".
    """

    stage: str = "parse"

    def __init__(self, message: str, stage: str | None = None):
        if stage is not None:
            self.stage = stage
        super().__init__(message)


class UnsupportedFormatError(BillParseError):
    """Raised when no parser accepts the uploaded file name."""

    stage = "dispatch"

    def __init__(self, filename: str):
        self.filename = filename
        super().__init__(f"Unsupported file format: {filename}")


class InvalidFormatError(BillParseError):
    """Raised when the header row or a required column cannot be found."""

    stage = "header"


# ── Records ───────────────────────────────────────────────


@dataclass(frozen=True)
class ParsedBill:
    """Intermediate representation output by parsers, before DB insertion."""
    title: str
    amount: float          # magnitude only; direction lives in `type`
    type: str              # INCOME, EXPENSE, TRANSFER, INVESTMENT
    description: str
    date: datetime
    category: str
    platform: str          # wechat, alipay, csv
    account: str | None = None
    original_data: dict = field(default_factory=dict, compare=False)

    def __post_init__(self):
        if self.amount < 0:
            raise ValueError(f"ParsedBill amount must be non-negative, got {self.amount}")
        if self.type not in BILL_TYPES:
            raise ValueError(f"Unknown bill type: {self.type}")


@dataclass
class RowError:
    """Why a single data row was dropped."""
    index: int
    message: str
    line: str = ""


@dataclass
class RowResult:
    """Outcome of normalizing one data row: a bill, an error, or neither
    (a skipped footer/partial line)."""
    index: int
    bill: ParsedBill | None = None
    error: RowError | None = None

    @property
    def ok(self) -> bool:
        return self.bill is not None


class RowDropped(Exception):
    """Raised inside a row normalizer to drop the row with a reason."""


# ── Parser interface ──────────────────────────────────────


class BaseParser(ABC):
    """Abstract base for all bill parsers.

    Attributes:
        skipped_count: Rows skipped as garbage (footers, partial lines).
        row_errors: Rows that failed normalization. Both are reset on
            every parse() call; check them afterwards to detect data loss.
    """

    platform: str = ""
    encoding: str = "utf-8"
    delimiter = ","

    def __init__(
        self,
        categorizer: CategorizationService | None = None,
        date_policy: str = "now",
    ):
        if categorizer is None:
            from qianji.categorize.keywords import CategorizationService

            categorizer = CategorizationService.default()
        self.categorizer = categorizer
        self.date_policy = date_policy
        self.skipped_count: int = 0
        self.row_errors: list[RowError] = []

    @abstractmethod
    def can_parse(self, filename: str) -> bool:
        """Return True if this parser handles files with this name."""

    @abstractmethod
    def parse_rows(self, text: str) -> list[RowResult]:
        """Normalize every data row of the decoded text.

        Raises InvalidFormatError if the header or a required column is
        missing. Row-level failures are returned, never raised.
        """

    def parse(self, data: bytes | str) -> list[ParsedBill]:
        """Decode and parse a bill export, returning only the good rows."""
        self.skipped_count = 0
        self.row_errors = []
        text = decode_text(data, self.encoding)
        results = self.parse_rows(text)

        bills: list[ParsedBill] = []
        for result in results:
            if result.ok:
                bills.append(result.bill)
            elif result.error is not None:
                self.row_errors.append(result.error)
                logger.warning(
                    "%s: dropped row %d: %s", self.platform,
                    result.error.index, result.error.message,
                )
            else:
                self.skipped_count += 1
        return bills

    def get_platform(self) -> str:
        return self.platform

    def normalize_date(self, value: str) -> datetime:
        """Parse a row date, applying the configured policy on failure."""
        parsed = parse_bill_date(value)
        if parsed is not None:
            return parsed
        if self.date_policy == "drop":
            raise RowDropped(f"unparsable date '{value}'")
        logger.warning("%s: unparsable date '%s', using current time", self.platform, value)
        return datetime.now()

    def _guard_row(self, index: int, line: str, normalize) -> RowResult:
        """Run a row normalizer, capturing any failure in the RowResult."""
        try:
            bill = normalize()
        except Exception as e:
            return RowResult(index=index, error=RowError(index=index, message=str(e), line=line))
        if bill is None:
            return RowResult(index=index)
        return RowResult(index=index, bill=bill)


# ── Text helpers ──────────────────────────────────────────


def decode_text(data: bytes | str, encoding: str) -> str:
    """Decode raw bytes with the platform's encoding.

    Malformed sequences become replacement characters rather than raising;
    a wrong encoding surfaces later as a missing header instead.
    """
    if isinstance(data, str):
        return data
    text = bytes(data).decode(encoding, errors="replace")
    return text.lstrip("\ufeff")


def split_lines(text: str) -> list[str]:
    """Split text into non-blank lines."""
    return [line for line in text.splitlines() if line.strip()]


def split_row(line: str, delimiter: str = ",") -> list[str]:
    """Split one CSV line, honouring quoted cells that contain the delimiter.

    Cells are trimmed of whitespace, leftover quotes and the tab prefix
    WeChat puts in front of order numbers.
    """
    cells = next(csv.reader([line], delimiter=delimiter, skipinitialspace=True), [])
    return [cell.strip().strip('"').strip() for cell in cells]


_AMOUNT_JUNK = re.compile(r"[^\d.\-]")


def parse_amount(value: str) -> float:
    """Parse a signed amount, ignoring currency symbols and separators.

    Raises ValueError if nothing numeric is left.
    """
    cleaned = _AMOUNT_JUNK.sub("", value or "")
    if not cleaned or cleaned in ("-", ".", "-."):
        raise ValueError(f"unparsable amount '{value}'")
    return float(cleaned)


_DATE_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%d",
    "%Y/%m/%d %H:%M:%S",
    "%Y/%m/%d %H:%M",
    "%Y/%m/%d",
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y",
    "%m-%d-%Y",
    "%Y年%m月%d日 %H:%M:%S",
    "%Y年%m月%d日 %H:%M",
    "%Y年%m月%d日",
)


def parse_bill_date(value: str) -> datetime | None:
    """Parse a bill timestamp. Returns None if no known format fits."""
    value = (value or "").strip()
    if not value:
        return None
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


def contains_any(text: str, keywords) -> bool:
    """Case-insensitive substring test against any keyword."""
    lowered = (text or "").lower()
    return any(k.lower() in lowered for k in keywords)
