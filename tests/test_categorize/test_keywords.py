"""Tests for keyword categorization."""

import pytest

from qianji.categorize.keywords import CategorizationService
from qianji.config import Config
from tests.conftest import FIXTURE_CONFIG_DIR


@pytest.fixture
def service():
    return CategorizationService.from_config(Config(FIXTURE_CONFIG_DIR))


class TestCategorize:
    def test_keyword_match(self, service):
        assert service.categorize("地铁 2号线") == "交通"

    def test_first_category_wins(self, service):
        # "咖啡馆" is a 餐饮 keyword, but 咖啡 is listed first and matches too
        assert service.categorize("街角咖啡馆") == "咖啡"

    def test_fallback(self, service):
        assert service.categorize("不认识的交易") == "未分类"

    def test_empty_and_none(self, service):
        assert service.categorize("") == "未分类"
        assert service.categorize(None) == "未分类"

    def test_case_sensitive_substring(self):
        svc = CategorizationService([("Coffee", ["Starbucks"])])
        assert svc.categorize("STARBUCKS") == "其他"
        assert svc.categorize("Starbucks Reserve") == "Coffee"

    def test_deterministic(self, service):
        results = {service.categorize("外卖订单") for _ in range(50)}
        assert results == {"餐饮"}

    def test_categories_in_order(self, service):
        assert service.categories == ["咖啡", "餐饮", "交通"]

    def test_table_is_copied(self):
        table = [("A", ["x"])]
        svc = CategorizationService(table)
        table[0][1].append("y")
        table.append(("B", ["z"]))
        assert svc.categorize("y") == "其他"
        assert svc.categorize("z") == "其他"

    def test_empty_table_warns(self, tmp_path, caplog):
        (tmp_path / "categories.yaml").write_text("categories: []\n")
        svc = CategorizationService.from_config(Config(tmp_path))
        assert svc.categorize("anything") == "其他"
        assert "No category keywords" in caplog.text


class TestDefaultService:
    def test_is_shared(self):
        assert CategorizationService.default() is CategorizationService.default()

    @pytest.mark.parametrize("text,expected", [
        ("超市购物", "日用百货"),
        ("淘宝购物", "购物"),
        ("滴滴打车", "交通出行"),
        ("手机充值", "充值缴费"),
        ("微信红包", "红包"),
        ("余额宝收益", "投资理财"),
        ("什么也不是", "其他"),
    ])
    def test_seed_table(self, text, expected):
        assert CategorizationService.default().categorize(text) == expected
