"""
收益率计算

1. 区间收益率 total_return（百分比）
2. 年化收益率 annualized_return（几何平均，百分比）
3. 实际经过年数（以两端实际取到的价格日期为准）
4. 组合增长因子与净值年化

所有函数在输入无意义时返回 None，而不是抛异常或返回 0：
调用方据此把对应标的排除在计算之外。
"""

from __future__ import annotations

import math
from collections.abc import Iterable

import numpy as np

from quantrank.models import PricePoint
from quantrank.utils.date_utils import elapsed_years


def total_return(start: float | None, end: float | None) -> float | None:
    """
    区间收益率（百分比）

    Examples:
        >>> total_return(100, 150)
        50.0
        >>> total_return(100, 0)
        -100.0
        >>> total_return(0, 150) is None
        True
    """
    if start is None or end is None or start == 0:
        return None
    return (end - start) / start * 100


def annualized_return(total_pct: float | None, years: float) -> float | None:
    """
    年化收益率（百分比）: ((1 + pct/100)^(1/years) - 1) * 100

    years <= 0 或亏损超过 100% 时无定义，返回 None。

    Examples:
        >>> round(annualized_return(100, 2), 2)
        41.42
    """
    if total_pct is None or years is None or years <= 0:
        return None
    growth = 1 + total_pct / 100
    if growth < 0:
        return None
    return (growth ** (1 / years) - 1) * 100


def return_between(
    start: PricePoint | None,
    end: PricePoint | None,
) -> tuple[float | None, float | None]:
    """
    两个价格观测点之间的（总收益率, 年化收益率）

    年数取两个实际价格日期之间的间隔：向前取价可能让实际起点
    早于名义起点。
    """
    if start is None or end is None:
        return None, None
    total = total_return(start.price, end.price)
    years = elapsed_years(start.date, end.date)
    return total, annualized_return(total, years)


def growth_factor(
    weighted_pairs: Iterable[tuple[float, float | None, float | None]],
) -> float:
    """
    组合单期增长因子: 1 + Σ w_i * (sell_i - buy_i) / buy_i

    只累加买卖价格都有效的标的；缺价标的的权重不做再分配。

    Args:
        weighted_pairs: (权重, 买入价, 卖出价)
    """
    period_return = 0.0
    for weight, buy, sell in weighted_pairs:
        if buy is None or sell is None or buy <= 0:
            continue
        period_return += weight * (sell - buy) / buy
    return 1 + period_return


def annualize_value(final_value: float, years: float, initial_value: float = 1.0) -> float | None:
    """把期末净值折算为年化收益率（百分比）"""
    if initial_value <= 0:
        return None
    return annualized_return((final_value / initial_value - 1) * 100, years)


def geometric_mean_return(period_returns_pct: Iterable[float]) -> float | None:
    """各期收益率（百分比）的几何平均，用于展示每期平均收益"""
    factors = np.array([1 + r / 100 for r in period_returns_pct], dtype=float)
    if factors.size == 0 or np.any(factors <= 0):
        return None
    return float(math.exp(np.log(factors).mean()) - 1) * 100
