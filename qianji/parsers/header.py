"""Header row detection and keyword-based column resolution.

Bill exports rename and reorder their columns between app versions, and
pad the file with preamble and footer lines. Instead of matching exact
headers we look for the line that mentions every required keyword group,
then map each semantic field to the first header cell containing one of
its acceptable names.
"""

from __future__ import annotations

import logging

from .base import InvalidFormatError, contains_any, split_row

logger = logging.getLogger(__name__)

TIME_KEYWORDS = ("交易时间", "付款时间", "时间", "日期", "date", "time")
COUNTERPARTY_KEYWORDS = ("交易对方", "商户", "对方", "merchant", "counterparty", "payee")
AMOUNT_KEYWORDS = ("金额", "收/支", "amount")

DEFAULT_HEADER_GROUPS: dict[str, tuple[str, ...]] = {
    "time": TIME_KEYWORDS,
    "counterparty": COUNTERPARTY_KEYWORDS,
    "amount": AMOUNT_KEYWORDS,
}

# Loose rule: a time word, an amount word, and a wide enough row
FALLBACK_TIME_KEYWORDS = ("时间", "date", "time")
FALLBACK_AMOUNT_KEYWORDS = ("金额", "amount")
FALLBACK_MIN_FIELDS = 5


def locate_header(
    lines: list[str],
    groups: dict[str, tuple[str, ...]] | None = None,
    fallback: bool = True,
) -> int | None:
    """Return the index of the header line, or None if there is none.

    A line qualifies when it contains at least one keyword from every
    group. If no line does, the first line with a time keyword, an amount
    keyword and more than FALLBACK_MIN_FIELDS comma-separated fields wins.
    """
    groups = groups or DEFAULT_HEADER_GROUPS
    for i, line in enumerate(lines):
        if all(contains_any(line, keywords) for keywords in groups.values()):
            return i

    if not fallback:
        return None
    for i, line in enumerate(lines):
        if (
            contains_any(line, FALLBACK_TIME_KEYWORDS)
            and contains_any(line, FALLBACK_AMOUNT_KEYWORDS)
            and len(split_row(line)) > FALLBACK_MIN_FIELDS
        ):
            logger.info("Using loose header match at line %d: %s", i, line)
            return i
    return None


def require_header(
    lines: list[str],
    platform_label: str,
    groups: dict[str, tuple[str, ...]] | None = None,
) -> tuple[int, list[str]]:
    """Locate the header and split it, or raise InvalidFormatError."""
    groups = groups or DEFAULT_HEADER_GROUPS
    index = locate_header(lines, groups)
    if index is None:
        raise InvalidFormatError(
            f"Invalid {platform_label} bill format: no header row with "
            f"{' + '.join(groups)} keywords",
            stage="header",
        )
    return index, split_row(lines[index])


def find_column(headers: list[str], candidates: tuple[str, ...] | list[str]) -> int | None:
    """Index of the first header containing a candidate, tried in order."""
    for name in candidates:
        lowered = name.lower()
        for i, header in enumerate(headers):
            if lowered in header.lower():
                return i
    return None


def resolve_columns(
    headers: list[str],
    fields: dict[str, tuple[str, ...]],
    required: tuple[str, ...] | list[str] = (),
    platform_label: str = "bill",
) -> dict[str, int | None]:
    """Map each semantic field to a column index.

    Candidate names are tried most specific first, so a field listing
    "付款时间" before "时间" prefers the payment-time column when both
    exist. Missing required fields raise InvalidFormatError naming the
    field; optional ones map to None.
    """
    columns = {name: find_column(headers, candidates) for name, candidates in fields.items()}
    for name in required:
        if columns.get(name) is None:
            raise InvalidFormatError(
                f"Invalid {platform_label} bill format: column not found: {name} "
                f"(looked for {', '.join(fields[name])})",
                stage="column",
            )
    return columns


def max_column(columns: dict[str, int | None]) -> int:
    """Highest resolved column index; rows must reach it to be usable."""
    return max((i for i in columns.values() if i is not None), default=-1)
