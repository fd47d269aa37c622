"""Tests for the generic CSV fallback parser."""

from datetime import datetime

import pytest

from qianji.categorize.keywords import CategorizationService
from qianji.config import Config
from qianji.parsers.base import EXPENSE, INCOME, INVESTMENT, TRANSFER, InvalidFormatError
from qianji.parsers.generic_csv import CsvMapping, GenericCsvParser
from tests.conftest import FIXTURE_CONFIG_DIR

HEADER = "日期,金额,描述,类型,分类,账户"


def _csv(*rows: str, header: str = HEADER) -> bytes:
    return (header + "\n" + "".join(r + "\n" for r in rows)).encode("utf-8")


@pytest.fixture
def parser():
    return GenericCsvParser(mapping=CsvMapping(account_column="账户"))


class TestCanParse:
    def test_csv_suffix(self, parser):
        assert parser.can_parse("other_bill.csv") is True

    def test_uppercase_suffix(self, parser):
        assert parser.can_parse("BANK.CSV") is True

    def test_rejects_other_extensions(self, parser):
        assert parser.can_parse("statement.xlsx") is False
        assert parser.can_parse("notes.csv.txt") is False

    def test_platform(self, parser):
        assert parser.get_platform() == "csv"


class TestParse:
    ROWS = (
        "2024-01-15,-25.50,公司附近餐厅,,餐饮美食,支付宝",
        "2024-01-01,8000.00,1月工资,收入,,工商银行储蓄卡",
        "2024-01-20,500,转给朋友,转账,,",
        "2024-01-21,1000,买入基金,理财,,",
        "2024-01-22,30,超市,支出,,",
    )

    @pytest.fixture
    def bills(self, parser):
        return parser.parse(_csv(*self.ROWS))

    def test_all_rows(self, bills):
        assert len(bills) == 5

    def test_amounts_non_negative(self, bills):
        assert all(b.amount >= 0 for b in bills)
        assert bills[0].amount == 25.5

    def test_types(self, bills):
        assert [b.type for b in bills] == [EXPENSE, INCOME, TRANSFER, INVESTMENT, EXPENSE]

    def test_category_column_wins(self, bills):
        assert bills[0].category == "餐饮美食"

    def test_category_falls_back_to_keywords(self, bills):
        assert bills[4].category == "日用百货"
        assert bills[2].category == "其他"

    def test_account_when_mapped(self, bills):
        assert bills[0].account == "支付宝"
        assert bills[2].account is None

    def test_title_and_description(self, bills):
        assert bills[1].title == "1月工资"
        assert bills[1].description == "1月工资"

    def test_date(self, bills):
        assert bills[0].date == datetime(2024, 1, 15)

    def test_original_data_is_row_dict(self, bills):
        assert bills[0].original_data["描述"] == "公司附近餐厅"
        assert bills[0].platform == "csv"


class TestDetermineType:
    def test_sign_without_type_column(self, parser):
        assert parser.determine_type("", 10.0) == INCOME
        assert parser.determine_type("", 0.0) == INCOME
        assert parser.determine_type("", -0.01) == EXPENSE

    def test_english_keywords(self, parser):
        assert parser.determine_type("Income", -1.0) == INCOME
        assert parser.determine_type("TRANSFER", 1.0) == TRANSFER
        assert parser.determine_type("investment", 1.0) == INVESTMENT
        assert parser.determine_type("expense", 1.0) == EXPENSE

    def test_unknown_type_uses_sign(self, parser):
        assert parser.determine_type("其它", -3.0) == EXPENSE


class TestMapping:
    def test_from_dict(self):
        mapping = CsvMapping.from_dict({"date_column": "Date", "amount_column": "Amount"})
        assert mapping.date_column == "Date"
        assert mapping.description_column == "描述"

    def test_from_dict_ignores_unknown(self, caplog):
        mapping = CsvMapping.from_dict({"date_column": "D", "colour": "red"})
        assert mapping.date_column == "D"
        assert "colour" in caplog.text

    def test_english_mapping_from_config(self):
        config = Config(FIXTURE_CONFIG_DIR)
        parser = GenericCsvParser(
            mapping=CsvMapping.from_dict(config.generic_csv_mapping),
            categorizer=CategorizationService.from_config(config),
        )
        data = _csv(
            "01/15/2024,-4.50,Starbucks 星巴克,,,Visa",
            header="Date,Amount,Description,Type,Category,Account",
        )
        bill = parser.parse(data)[0]
        assert bill.type == EXPENSE
        assert bill.category == "咖啡"
        assert bill.account == "Visa"
        assert bill.date == datetime(2024, 1, 15)

    @pytest.mark.parametrize("key", ["date_column", "amount_column", "description_column"])
    def test_required_column_cannot_be_null(self, key):
        with pytest.raises(ValueError, match=key):
            CsvMapping.from_dict({key: None})

    def test_optional_columns_may_be_null(self):
        mapping = CsvMapping.from_dict({"type_column": None, "category_column": None})
        assert mapping.type_column is None

    def test_no_account_mapping(self):
        parser = GenericCsvParser()
        bill = parser.parse(_csv("2024-01-15,-1,x,,,现金"))[0]
        assert bill.account is None


class TestRowHandling:
    def test_header_only_is_empty(self, parser):
        assert parser.parse(_csv()) == []

    def test_header_after_title_line(self, parser):
        data = ("银行流水导出\n" + HEADER + "\n2024-01-15,-1,x,,,\n").encode("utf-8")
        assert len(parser.parse(data)) == 1

    def test_currency_symbol(self, parser):
        assert parser.parse(_csv('2024-01-15,"¥100.00",x,,,'))[0].amount == 100.0

    def test_quoted_thousands_amount(self, parser):
        bill = parser.parse(_csv('2024-01-15,"-1,234.56",房租,,,'))[0]
        assert bill.amount == 1234.56
        assert bill.description == "房租"
        assert bill.type == EXPENSE

    def test_short_row_skipped(self, parser):
        assert parser.parse(_csv("2024-01-15")) == []
        assert parser.skipped_count == 1

    def test_missing_description(self, parser):
        bill = parser.parse(_csv("2024-01-15,-1,,,,"))[0]
        assert bill.title == "导入交易"
        assert bill.description == ""

    def test_bad_amount_dropped(self, parser):
        bills = parser.parse(_csv("2024-01-15,n/a,x,,,", "2024-01-16,-2,y,,,"))
        assert len(bills) == 1
        assert parser.row_errors[0].index == 1

    def test_drop_policy(self):
        parser = GenericCsvParser(date_policy="drop")
        assert parser.parse(_csv("someday,-1,x,,,")) == []
        assert len(parser.row_errors) == 1


class TestInvalidFormat:
    def test_empty_file(self, parser):
        with pytest.raises(InvalidFormatError, match="empty"):
            parser.parse(b"")

    def test_missing_amount_column_named(self, parser):
        with pytest.raises(InvalidFormatError, match="amount") as exc:
            parser.parse(_csv("2024-01-15,x", header="日期,描述"))
        assert exc.value.stage == "column"
