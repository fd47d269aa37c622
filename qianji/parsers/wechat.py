"""WeChat Pay bill parser.

WeChat exports are UTF-8 CSVs with a ~16 line preamble (nickname, date
range, totals) and a dashed separator before the header row:

    交易时间,交易类型,交易对方,商品,收/支,金额(元),支付方式,当前状态,交易单号,商户单号,备注

Amounts carry a "¥" prefix and order numbers a tab prefix. The 收/支
column holds 收入, 支出 or "/" for neutral movements (e.g. moving change
into 零钱通).
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
    "time": ("交易时间", "时间"),
    "kind": ("交易类型",),
    "counterparty": ("交易对方", "对方"),
    "item": ("商品", "说明"),
    "direction": ("收/支",),
    "amount": ("金额",),
    "status": ("当前状态", "状态"),
    "note": ("备注",),
}
REQUIRED = ("time", "amount", "direction")


class WeChatParser(BaseParser):
    """Parse WeChat Pay CSV bill exports."""

    platform = "wechat"
    encoding = "utf-8"
    FILENAME_TOKENS = ("微信", "wechat")
    TRANSFER_KEYWORDS = ("转账",)
    INCOME_KEYWORDS = ("收入",)
    EXPENSE_KEYWORDS = ("支出",)

    def can_parse(self, filename: str) -> bool:
        return contains_any(filename, self.FILENAME_TOKENS)

    def parse_rows(self, text: str) -> list[RowResult]:
        lines = split_lines(text)
        header_index, headers = require_header(lines, "WeChat")
        columns = resolve_columns(headers, FIELDS, REQUIRED, "WeChat")
        width = max_column(columns) + 1
        logger.debug("WeChat columns: %s", columns)

        results: list[RowResult] = []
        for offset, line in enumerate(lines[header_index + 1:], start=1):
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

        raw_amount = parse_amount(cell("amount"))
        counterparty = cell("counterparty")
        item = "" if cell("item") == "/" else cell("item")
        return ParsedBill(
            title=counterparty or "微信支付",
            amount=abs(raw_amount),
            type=self.determine_type(cell("direction")),
            description=f"{counterparty} - {item}" if item else counterparty,
            date=self.normalize_date(cell("time")),
            category=self.categorizer.categorize(item or counterparty),
            platform=self.platform,
            original_data={"raw_columns": cells},
        )

    def determine_type(self, direction: str) -> str:
        if contains_any(direction, self.TRANSFER_KEYWORDS):
            return TRANSFER
        if contains_any(direction, self.INCOME_KEYWORDS) and not contains_any(
            direction, self.EXPENSE_KEYWORDS
        ):
            return INCOME
        return EXPENSE
