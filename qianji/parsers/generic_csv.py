"""Generic CSV parser: the fallback for bank and hand-made exports.

Columns are named by a CsvMapping (see parsers.yaml). Unlike the
platform exports there is no 收/支 column, so direction comes from an
optional type column and otherwise from the sign of the amount.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .base import (
    EXPENSE,
    INCOME,
    INVESTMENT,
    TRANSFER,
    BaseParser,
    InvalidFormatError,
    ParsedBill,
    RowResult,
    contains_any,
    parse_amount,
    split_lines,
    split_row,
)
from .header import locate_header, resolve_columns

logger = logging.getLogger(__name__)

REQUIRED_MAPPING_KEYS = ("date_column", "amount_column", "description_column")


@dataclass(frozen=True)
class CsvMapping:
    """Header names for each semantic column. Optional ones may be None."""
    date_column: str = "日期"
    amount_column: str = "金额"
    description_column: str = "描述"
    type_column: str | None = "类型"
    category_column: str | None = "分类"
    account_column: str | None = None

    def __post_init__(self):
        for key in REQUIRED_MAPPING_KEYS:
            if not getattr(self, key):
                raise ValueError(f"generic_csv mapping: {key} must name a column")

    @classmethod
    def from_dict(cls, data: dict) -> CsvMapping:
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        unknown = set(data) - set(known)
        if unknown:
            logger.warning("Ignoring unknown generic_csv mapping keys: %s", sorted(unknown))
        return cls(**known)


class GenericCsvParser(BaseParser):
    """Parse any UTF-8 CSV whose columns are described by a CsvMapping."""

    platform = "csv"
    encoding = "utf-8"
    INCOME_KEYWORDS = ("income", "收入")
    EXPENSE_KEYWORDS = ("expense", "支出")
    TRANSFER_KEYWORDS = ("transfer", "转账")
    INVESTMENT_KEYWORDS = ("investment", "投资", "理财")

    def __init__(self, mapping: CsvMapping | None = None, **kwargs):
        super().__init__(**kwargs)
        self.mapping = mapping or CsvMapping()

    def can_parse(self, filename: str) -> bool:
        return filename.lower().endswith(".csv")

    def _fields(self) -> dict[str, tuple[str, ...]]:
        m = self.mapping
        fields: dict[str, tuple[str, ...]] = {
            "date": (m.date_column, "日期", "时间", "date"),
            "amount": (m.amount_column, "金额", "amount"),
            "description": (m.description_column, "描述", "说明", "description"),
        }
        for name, column in (
            ("type", m.type_column),
            ("category", m.category_column),
            ("account", m.account_column),
        ):
            fields[name] = (column,) if column else ()
        return fields

    def parse_rows(self, text: str) -> list[RowResult]:
        fields = self._fields()
        groups = {"date": fields["date"], "amount": fields["amount"]}
        lines = split_lines(text)
        if not lines:
            raise InvalidFormatError("Invalid CSV bill format: file is empty", stage="header")
        # No line names both columns: resolve against the first line so
        # the error names the missing column
        header_index = locate_header(lines, groups, fallback=False) or 0
        headers = split_row(lines[header_index], self.delimiter)
        columns = resolve_columns(headers, fields, ("date", "amount"), "CSV")
        logger.debug("CSV columns: %s", columns)

        results: list[RowResult] = []
        for offset, line in enumerate(lines[header_index + 1:], start=1):
            cells = split_row(line, self.delimiter)
            row = {h: (cells[i] if i < len(cells) else "") for i, h in enumerate(headers)}
            results.append(self._guard_row(
                offset, line, lambda: self._parse_row(cells, row, columns),
            ))
        return results

    def _parse_row(
        self, cells: list[str], row: dict[str, str], columns: dict[str, int | None],
    ) -> ParsedBill | None:
        def cell(name: str) -> str:
            index = columns.get(name)
            if index is None or index >= len(cells):
                return ""
            return cells[index]

        if len(cells) <= max(columns["date"], columns["amount"]) or not cell("date"):
            return None

        raw_amount = parse_amount(cell("amount"))
        description = cell("description")
        category = cell("category") or self.categorizer.categorize(description)
        return ParsedBill(
            title=description or "导入交易",
            amount=abs(raw_amount),
            type=self.determine_type(cell("type"), raw_amount),
            description=description,
            date=self.normalize_date(cell("date")),
            category=category,
            account=cell("account") or None,
            platform=self.platform,
            original_data=row,
        )

    def determine_type(self, type_text: str, raw_amount: float) -> str:
        """Mapped type column first, then the amount's sign."""
        if type_text:
            if contains_any(type_text, self.INCOME_KEYWORDS):
                return INCOME
            if contains_any(type_text, self.TRANSFER_KEYWORDS):
                return TRANSFER
            if contains_any(type_text, self.INVESTMENT_KEYWORDS):
                return INVESTMENT
            if contains_any(type_text, self.EXPENSE_KEYWORDS):
                return EXPENSE
        return INCOME if raw_amount >= 0 else EXPENSE
