"""Shared test fixtures."""

from pathlib import Path

import pytest

from qianji.config import MIGRATIONS_DIR
from qianji.database.repository import Repository

# Test fixture config directory with a small synthetic keyword table
FIXTURE_CONFIG_DIR = Path(__file__).parent / "fixtures" / "config"

WECHAT_HEADER = "交易时间,交易类型,交易对方,商品,收/支,金额(元),支付方式,当前状态,交易单号,商户单号,备注"
WECHAT_ROW = "2024-07-22 10:00:00,购物,商家,超市购物,支出,100.00,微信支付,支付成功,12345,67890,备注"

ALIPAY_HEADER = (
    "交易号,商家订单号,交易创建时间,付款时间,最近修改时间,交易来源地,"
    "类型,交易对方,商品名称,金额（元）,收/支,交易状态"
)
ALIPAY_ROW = (
    "12345,67890,2024-07-22 10:00:00,2024-07-22 10:00:00,2024-07-22 10:00:00,"
    "来源,支出,对方,淘宝购物,-100.00,支出,交易成功"
)


@pytest.fixture
def repo():
    r = Repository(":memory:")
    r.apply_migrations(MIGRATIONS_DIR)
    yield r
    r.close()
