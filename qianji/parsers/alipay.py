"""Alipay bill parser.

Alipay exports are GBK-encoded CSVs wrapped in a preamble (account,
date range) and a footer (record totals, export time), each fenced by
dashed lines. Column names drift between export versions (付款时间 vs
交易时间, 商品名称 vs 商品说明, 金额（元） with a full-width paren), so
columns are resolved by keyword rather than by exact header text.
"""

from __future__ import annotations

import logging

from .base import (
    EXPENSE,
    INCOME,
    TRANSFER,
    BaseParser,
    ParsedBill,
    RowResult,
    contains_any,
    parse_amount,
    split_lines,
    split_row,
)
from .header import max_column, require_header, resolve_columns

logger = logging.getLogger(__name__)

FIELDS: dict[str, tuple[str, ...]] = {
    "time": ("付款时间", "交易时间", "时间"),
    "counterparty": ("交易对方", "商户", "对方"),
    "item": ("商品说明", "商品名称", "商品", "说明"),
    "amount": ("金额",),
    "direction": ("收/支", "类型"),
    "status": ("交易状态", "状态"),
}
REQUIRED = ("time", "amount", "direction")


class AlipayParser(BaseParser):
    """Parse Alipay CSV bill exports (GBK)."""

    platform = "alipay"
    encoding = "gbk"
    FILENAME_TOKENS = ("支付宝", "alipay")
    TRANSFER_KEYWORDS = ("转账", "转入", "转出")
    INCOME_KEYWORDS = ("收入", "收款")

    def can_parse(self, filename: str) -> bool:
        return contains_any(filename, self.FILENAME_TOKENS)

    def parse_rows(self, text: str) -> list[RowResult]:
        lines = split_lines(text)
        header_index, headers = require_header(lines, "Alipay")
        columns = resolve_columns(headers, FIELDS, REQUIRED, "Alipay")
        width = max_column(columns) + 1
        logger.debug("Alipay headers: %s, columns: %s", headers, columns)

        results: list[RowResult] = []
        for offset, line in enumerate(lines[header_index + 1:], start=1):
            if line.lstrip().startswith("---"):
                results.append(RowResult(index=offset))
                continue
            cells = split_row(line, self.delimiter)
            results.append(self._guard_row(
                offset, line, lambda: self._parse_row(cells, columns, width),
            ))
        return results

    def _parse_row(
        self, cells: list[str], columns: dict[str, int | None], width: int,
    ) -> ParsedBill | None:
        if len(cells) < width or not cells[columns["time"]]:
            return None

        def cell(name: str) -> str:
            index = columns.get(name)
            return cells[index] if index is not None else ""

        raw_amount = parse_amount(cell("amount") or "0")
        counterparty = cell("counterparty")
        title = cell("item") or counterparty or "支付宝交易"
        return ParsedBill(
            title=title,
            amount=abs(raw_amount),
            type=self.determine_type(cell("direction")),
            description=f"{counterparty} - {title}",
            date=self.normalize_date(cell("time")),
            category=self.categorizer.categorize(title),
            platform=self.platform,
            original_data={"raw_columns": cells},
        )

    def determine_type(self, direction: str) -> str:
        """收/支 text → bill type. Anything unrecognised counts as spending."""
        if contains_any(direction, self.TRANSFER_KEYWORDS):
            return TRANSFER
        if contains_any(direction, self.INCOME_KEYWORDS):
            return INCOME
        if "收" in direction and "支" not in direction:
            return INCOME
        return EXPENSE
