"""
价格解析器

核心功能：
1. 向前取价（floor match）：取不晚于目标日期的最近一条观测
2. 每次回测一份的价格簿（PriceBook），按期批量加载价格序列
3. DataFrame -> 价格序列转换

教学要点：
1. 不假设输入有序：整段扫描，记录最小的非负日期差
2. 取不到价格返回 None，调用方负责排除，绝不替换为默认值
"""

from __future__ import annotations

import datetime
import logging
import math
from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING

import pandas as pd

from quantrank.errors import MissingDataError
from quantrank.models import DataGap, GapKind, PricePoint
from quantrank.utils.date_utils import DateLike, to_date

if TYPE_CHECKING:
    from quantrank.data.fetcher import FetchCapability
    from quantrank.data.providers import PriceProvider

logger = logging.getLogger(__name__)


# ==================== 向前取价 ====================

def price_on_or_before(
    series: Iterable[PricePoint],
    target_date: DateLike,
) -> PricePoint | None:
    """
    返回日期 <= target_date 的最近一条观测

    忽略价格缺失、非有限或非正的观测；同一天有多条时取先出现的一条。

    Args:
        series: 价格序列（顺序任意）
        target_date: 目标日期

    Returns:
        PricePoint | None: 找不到合格观测时返回 None
    """
    target = to_date(target_date)
    best: PricePoint | None = None
    best_delta: int | None = None

    for point in series:
        price = point.price
        if price is None or not math.isfinite(price) or price <= 0:
            continue
        delta = (target - point.date).days
        if delta < 0:
            continue
        if best_delta is None or delta < best_delta:
            best, best_delta = point, delta

    return best


def require_price(
    series: Iterable[PricePoint],
    target_date: DateLike,
    symbol: str | None = None,
) -> PricePoint:
    """
    与 price_on_or_before 相同，但取不到价格时抛出 MissingDataError

    用于必须有价格才有意义的单标的计算（例如单只股票的历史收益查询）。
    """
    point = price_on_or_before(series, target_date)
    if point is None:
        raise MissingDataError(symbol, f"{to_date(target_date)} 之前没有可用价格")
    return point


def latest_price(series: Iterable[PricePoint]) -> PricePoint | None:
    """序列中日期最新的有效观测"""
    valid = [p for p in series if p.price is not None and math.isfinite(p.price) and p.price > 0]
    if not valid:
        return None
    return max(valid, key=lambda p: p.date)


def series_from_frame(
    df: pd.DataFrame,
    date_column: str = "date",
    price_column: str = "adj_close",
) -> list[PricePoint]:
    """
    DataFrame -> 价格序列

    缺失价格的行会被丢弃。
    """
    if df.empty:
        return []
    frame = df[[date_column, price_column]].dropna()
    dates = pd.to_datetime(frame[date_column])
    return [
        PricePoint(date=ts.date(), price=float(price))
        for ts, price in zip(dates, frame[price_column])
    ]


# ==================== 价格簿 ====================

class PriceBook:
    """
    单次回测的价格簿

    - 每个标的的价格序列只通过 FetchCapability 加载一次
    - 加载失败或序列为空时记录数据缺口，之后该标的取价一律为 None

    Args:
        price_provider: 价格历史提供者
        fetcher: 限速/重试/超时的获取能力
        gaps: 共享的缺口列表（由模拟器持有）
    """

    def __init__(
        self,
        price_provider: "PriceProvider",
        fetcher: "FetchCapability",
        gaps: list[DataGap] | None = None,
    ):
        self.price_provider = price_provider
        self.fetcher = fetcher
        self.gaps = gaps if gaps is not None else []
        self._series: dict[str, list[PricePoint]] = {}

    async def load(self, symbols: Iterable[str], when: DateLike = None) -> None:
        """
        批量加载尚未加载过的标的（每个模拟期一批）

        Args:
            symbols: 标的代码
            when: 所属模拟期日期，仅用于记录缺口
        """
        missing = sorted({s for s in symbols if s not in self._series})
        if not missing:
            return

        results = await self.fetcher.fetch_many(missing, self.price_provider.get_price_history)

        for symbol in missing:
            series = results.get(symbol)
            if series is None:
                self._record(symbol, when, GapKind.UPSTREAM, "价格历史获取失败")
                self._series[symbol] = []
            elif not series:
                self._record(symbol, when, GapKind.PRICE, "价格历史为空")
                self._series[symbol] = []
            else:
                self._series[symbol] = list(series)

        logger.debug(f"📈 价格簿加载 {len(missing)} 个标的，累计 {len(self._series)} 个")

    def price_on(self, symbol: str, when: DateLike) -> PricePoint | None:
        """取 symbol 在 when（含）之前最近的价格；取不到时记录缺口"""
        series = self._series.get(symbol)
        if not series:
            return None
        point = price_on_or_before(series, when)
        if point is None:
            self._record(symbol, when, GapKind.PRICE, f"{to_date(when)} 之前没有可用价格")
        return point

    def latest(self, symbol: str) -> PricePoint | None:
        return latest_price(self._series.get(symbol, ()))

    def series(self, symbol: str) -> Sequence[PricePoint]:
        return tuple(self._series.get(symbol, ()))

    def _record(self, symbol: str, when: DateLike, kind: GapKind, detail: str) -> None:
        gap_date: datetime.date | None = to_date(when) if when is not None else None
        self.gaps.append(DataGap(date=gap_date, symbol=symbol, kind=kind, detail=detail))
        logger.warning(f"⚠️ 数据缺口 [{kind.value}] {symbol} @ {gap_date}: {detail}")
