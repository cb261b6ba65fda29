"""QuantRank 工具函数"""

from .date_utils import (
    DateLike,
    add_months,
    annual_checkpoints,
    elapsed_years,
    rebalance_dates,
    to_date,
    years_before,
)

__all__ = [
    "DateLike",
    "add_months",
    "annual_checkpoints",
    "elapsed_years",
    "rebalance_dates",
    "to_date",
    "years_before",
]
