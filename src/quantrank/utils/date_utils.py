"""
回测日期处理工具 (Backtest Date Utilities)

核心功能：
1. 日期格式统一转换（字符串、datetime、pandas Timestamp -> date）
2. 按年回溯（"N 年前"，闰日按月末处理）
3. 再平衡日期序列（按月步进，终点必定包含）
4. 实际经过年数（天数 / 365.25）

代码风格：Python 3.10+ with type hints
"""

from __future__ import annotations

import datetime
from typing import Union

import pandas as pd

from quantrank.constants import BacktestConstants

# ==================== 类型别名 ====================

DateLike = Union[str, datetime.date, datetime.datetime, pd.Timestamp, None]


# ==================== 日期格式转换 ====================

def to_date(value: DateLike) -> datetime.date:
    """
    将多种日期格式统一转换为 datetime.date

    支持格式：
    - None: 返回今天
    - str: "2024-01-26" / "20240126" / "2024/01/26"
    - datetime.date / datetime.datetime / pd.Timestamp

    Raises:
        ValueError: 日期格式无效
    """
    if value is None:
        return datetime.date.today()

    if isinstance(value, pd.Timestamp):
        return value.date()

    if isinstance(value, datetime.datetime):
        return value.date()

    if isinstance(value, datetime.date):
        return value

    if isinstance(value, str):
        try:
            return pd.Timestamp(value.strip()).date()
        except (ValueError, TypeError) as e:
            raise ValueError(f"无效的日期格式: {value!r}") from e

    raise ValueError(f"不支持的日期类型: {type(value).__name__}")


# ==================== 日期运算 ====================

def years_before(as_of: DateLike, years: int) -> datetime.date:
    """返回 as_of 之前 years 年的同一日（2/29 回退到 2/28）"""
    return (pd.Timestamp(to_date(as_of)) - pd.DateOffset(years=years)).date()


def add_months(start: DateLike, months: int) -> datetime.date:
    return (pd.Timestamp(to_date(start)) + pd.DateOffset(months=months)).date()


def annual_checkpoints(as_of: DateLike, years: int) -> list[datetime.date]:
    """
    生成按年的检查点：[H 年前, H-1 年前, ..., as_of]

    Examples:
        >>> annual_checkpoints("2024-06-30", 2)
        [date(2022, 6, 30), date(2023, 6, 30), date(2024, 6, 30)]
    """
    end = to_date(as_of)
    return [years_before(end, offset) for offset in range(years, -1, -1)]


def rebalance_dates(
    start: DateLike,
    end: DateLike,
    months: int = BacktestConstants.DEFAULT_REBALANCE_MONTHS,
) -> list[datetime.date]:
    """
    从 start 开始每 months 个月一个再平衡日，终点 end 总是包含在内

    每个日期都由 start 直接偏移得到，避免月末日期逐步漂移。
    start >= end 时返回 [start]。
    """
    if months < 1:
        raise ValueError(f"再平衡间隔必须为正整数（月）: {months}")

    start_date = to_date(start)
    end_date = to_date(end)
    if start_date >= end_date:
        return [start_date]

    dates = []
    step = 0
    current = start_date
    while current < end_date:
        dates.append(current)
        step += 1
        current = add_months(start_date, step * months)
    dates.append(end_date)
    return dates


def elapsed_years(start: DateLike, end: DateLike) -> float:
    """实际经过年数（天数 / 365.25）"""
    days = (to_date(end) - to_date(start)).days
    return days / BacktestConstants.DAYS_PER_YEAR
