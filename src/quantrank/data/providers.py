"""
数据提供者接口

定义回测引擎消费的外部协作方（具体的 API 客户端、网页抓取不在本包范围内）：
1. UniverseProvider: 某一评估日的股票池快照（排名提供者）
2. FundamentalsProvider: 单个标的在 N 年前的基本面快照
3. PriceProvider: 单个标的的复权收盘价历史
4. QualityScoreProvider: 第三方质量评分，合并为一个额外指标

同时提供内存实现和 DataFrame 实现，用于离线回测和测试。

教学要点：
1. 抽象基类定义统一接口
2. 适配器模式：把逐标的接口适配为股票池接口
3. 批量获取通过注入的 FetchCapability 完成
"""

from __future__ import annotations

import datetime
import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping, Sequence

import pandas as pd

from quantrank.data.fetcher import FetchCapability
from quantrank.models import DataGap, GapKind, PricePoint, Snapshot
from quantrank.pricing.resolver import series_from_frame
from quantrank.utils.date_utils import DateLike, to_date, years_before

logger = logging.getLogger(__name__)

QUALITY_SCORE_METRIC = "quality_score"


# ==================== 抽象接口 ====================

class UniverseProvider(ABC):
    """股票池快照提供者"""

    @abstractmethod
    async def get_universe(self, as_of: datetime.date) -> list[Snapshot]:
        """
        获取 as_of 当日的股票池快照

        Returns:
            list[Snapshot]: 快照列表，没有数据时返回空列表
        """
        pass

    def unavailable(self, as_of: datetime.date) -> list[DataGap]:
        """
        最近一次 get_universe(as_of) 中没能获取到的数据

        默认实现没有缺口；逐标的获取的提供者在这里报告失败的标的，
        由模拟器写入回测结果的缺口列表。
        """
        return []


class FundamentalsProvider(ABC):
    """基本面数据提供者"""

    @abstractmethod
    async def get_snapshot(
        self,
        symbol: str,
        years_ago: int,
        as_of: datetime.date,
    ) -> Snapshot | None:
        """获取 symbol 在 as_of 之前 years_ago 年的快照"""
        pass


class PriceProvider(ABC):
    """价格历史提供者"""

    @abstractmethod
    async def get_price_history(self, symbol: str) -> list[PricePoint]:
        """获取 symbol 的复权收盘价序列（顺序任意）"""
        pass


class QualityScoreProvider(ABC):
    """第三方质量评分提供者"""

    @abstractmethod
    async def get_scores(
        self,
        symbols: Sequence[str],
        as_of: datetime.date,
    ) -> dict[str, float | None]:
        pass


# ==================== 内存实现 ====================

class InMemoryUniverseProvider(UniverseProvider):
    """
    内存股票池：日期 -> 快照列表

    查询某日时使用不晚于该日的最近一份快照（与向前取价一致）。
    """

    def __init__(self, universes: Mapping[DateLike, Iterable[Snapshot]]):
        self._universes: dict[datetime.date, list[Snapshot]] = {
            to_date(d): list(snapshots) for d, snapshots in universes.items()
        }

    async def get_universe(self, as_of: datetime.date) -> list[Snapshot]:
        target = to_date(as_of)
        eligible = [d for d in self._universes if d <= target]
        if not eligible:
            return []
        return list(self._universes[max(eligible)])

    @property
    def dates(self) -> list[datetime.date]:
        return sorted(self._universes)


class InMemoryPriceProvider(PriceProvider):
    """内存价格历史：symbol -> [(日期, 价格)] 或 [PricePoint]"""

    def __init__(self, histories: Mapping[str, Iterable[PricePoint | tuple[DateLike, float]]]):
        self._histories: dict[str, list[PricePoint]] = {}
        for symbol, points in histories.items():
            self._histories[symbol] = [
                p if isinstance(p, PricePoint) else PricePoint(date=to_date(p[0]), price=float(p[1]))
                for p in points
            ]

    async def get_price_history(self, symbol: str) -> list[PricePoint]:
        return list(self._histories.get(symbol, []))


class DataFramePriceProvider(PriceProvider):
    """
    基于 DataFrame 的价格历史

    DataFrame 至少包含 symbol / date / adj_close 三列。
    """

    def __init__(
        self,
        df: pd.DataFrame,
        symbol_column: str = "symbol",
        date_column: str = "date",
        price_column: str = "adj_close",
    ):
        self._groups = {
            symbol: series_from_frame(group, date_column, price_column)
            for symbol, group in df.groupby(symbol_column)
        }

    async def get_price_history(self, symbol: str) -> list[PricePoint]:
        return list(self._groups.get(symbol, []))


# ==================== 适配器 ====================

class FundamentalsUniverseProvider(UniverseProvider):
    """
    把逐标的的 FundamentalsProvider 适配为 UniverseProvider

    每个评估日通过 FetchCapability 批量获取全部标的的快照；
    获取失败的标的直接缺席该日股票池（按缺失数据处理）。

    Args:
        fundamentals: 基本面提供者
        symbols: 股票池代码
        fetcher: 获取能力
        reference_date: "今天"，用于把评估日换算成 years_ago
        quality_scores: 可选的质量评分提供者
    """

    def __init__(
        self,
        fundamentals: FundamentalsProvider,
        symbols: Iterable[str],
        fetcher: FetchCapability,
        reference_date: DateLike = None,
        quality_scores: QualityScoreProvider | None = None,
    ):
        self.fundamentals = fundamentals
        self.symbols = sorted(set(symbols))
        self.fetcher = fetcher
        self.reference_date = to_date(reference_date)
        self.quality_scores = quality_scores
        self.missing: dict[datetime.date, list[str]] = {}
        self._gaps: dict[datetime.date, list[DataGap]] = {}

    def years_ago(self, as_of: datetime.date) -> int:
        """评估日对应的整年偏移（按年回溯日期精确匹配，否则取向下整年）"""
        target = to_date(as_of)
        offset = 0
        while years_before(self.reference_date, offset + 1) >= target:
            offset += 1
        return offset

    async def get_universe(self, as_of: datetime.date) -> list[Snapshot]:
        when = to_date(as_of)
        years_ago = self.years_ago(when)
        results = await self.fetcher.fetch_many(
            self.symbols,
            lambda symbol: self.fundamentals.get_snapshot(symbol, years_ago, self.reference_date),
        )

        gaps: list[DataGap] = []
        snapshots = [snap for snap in results.values() if snap is not None]
        missing = [symbol for symbol, snap in results.items() if snap is None]
        if missing:
            self.missing[when] = missing
            logger.warning(f"⚠️ {when} 有 {len(missing)} 个标的缺少快照: {missing[:5]}")
            gaps.extend(
                DataGap(date=when, symbol=symbol, kind=GapKind.UPSTREAM, detail="基本面快照获取失败")
                for symbol in missing
            )

        if self.quality_scores is not None and snapshots:
            scores = await self.fetcher.fetch(
                f"quality_scores@{when}",
                lambda: self.quality_scores.get_scores([s.symbol for s in snapshots], when),
            )
            if scores is None:
                gaps.append(DataGap(date=when, kind=GapKind.UPSTREAM, detail="质量评分获取失败"))
            snapshots = merge_quality_scores(snapshots, scores or {})

        self._gaps[when] = gaps
        return snapshots

    def unavailable(self, as_of: datetime.date) -> list[DataGap]:
        return list(self._gaps.get(to_date(as_of), []))


def merge_quality_scores(
    snapshots: Iterable[Snapshot],
    scores: Mapping[str, float | None],
    metric: str = QUALITY_SCORE_METRIC,
) -> list[Snapshot]:
    """
    把第三方质量评分合并进快照，作为额外的一个指标

    没有评分的标的写入 None（排名时按最差名次处理）。
    """
    merged = []
    for snapshot in snapshots:
        metrics = dict(snapshot.metrics)
        metrics[metric] = scores.get(snapshot.symbol)
        merged.append(snapshot.model_copy(update={"metrics": metrics}))
    return merged


def snapshots_from_frame(
    df: pd.DataFrame,
    symbol_column: str = "symbol",
    as_of: DateLike = None,
) -> list[Snapshot]:
    """
    DataFrame -> 快照列表

    除 symbol 列外的数值列都作为指标，NaN 保留为缺失值。
    """
    as_of_date = to_date(as_of) if as_of is not None else None
    metric_columns = [
        c for c in df.columns
        if c != symbol_column and pd.api.types.is_numeric_dtype(df[c])
    ]
    snapshots = []
    for record in df[[symbol_column, *metric_columns]].to_dict(orient="records"):
        metrics = {
            c: (None if pd.isna(record[c]) else float(record[c]))
            for c in metric_columns
        }
        snapshots.append(Snapshot(symbol=str(record[symbol_column]), metrics=metrics, as_of=as_of_date))
    return snapshots
