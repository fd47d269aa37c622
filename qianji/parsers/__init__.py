"""Bill export parsers (WeChat, Alipay, generic CSV)."""
