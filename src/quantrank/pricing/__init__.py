"""QuantRank 价格解析"""

from .resolver import (
    PriceBook,
    latest_price,
    price_on_or_before,
    require_price,
    series_from_frame,
)

__all__ = [
    "PriceBook",
    "latest_price",
    "price_on_or_before",
    "require_price",
    "series_from_frame",
]
