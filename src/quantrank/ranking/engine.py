"""
多因子排名引擎

核心功能：
1. 单指标密集排名（并列同名次，下一名次 = 严格更优的数量 + 1）
2. 无效指标按最差名次处理（有效数量 + 1），不会被剔除
3. 多重上市合并（同一发行人的多个代码合并为主代码）
4. 加权综合得分排序（得分越低越好）

引擎本身没有可变状态：权重是每次调用的显式参数，
不同权重的并发评估互不干扰。
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass

from quantrank.constants import (
    CANONICAL_LISTINGS,
    GARP_SCORE_METRIC,
    LIQUIDITY_METRICS,
    RankingConstants,
)
from quantrank.models import MetricDirection, RankedSnapshot, Snapshot
from quantrank.ranking.weights import WeightVector

logger = logging.getLogger(__name__)


# ==================== 单指标排名 ====================

def rank_by_metric(
    snapshots: Sequence[Snapshot],
    metric_key: str,
    direction: MetricDirection | str,
) -> dict[str, int]:
    """
    按单个指标计算密集排名

    Args:
        snapshots: 指标快照列表
        metric_key: 指标名
        direction: 排名方向

    Returns:
        dict[str, int]: symbol -> 名次（1 最好）

    Examples:
        值 [10, 10, 7]，越大越好 -> [1, 1, 3]
        A(5), B(None), C(3)，越大越好 -> A=1, C=2, B=3
        A(5), B(None), C(3)，越小越好 -> C=1, A=2, B=3
    """
    direction = MetricDirection(direction)
    descending = direction == MetricDirection.HIGHER_IS_BETTER

    valid = [(s.symbol, s.value(metric_key)) for s in snapshots]
    valid = [(symbol, value) for symbol, value in valid if value is not None]

    # 同值按代码排序，保证结果与输入顺序无关
    valid.sort(key=lambda item: (-item[1] if descending else item[1], item[0]))

    ranks: dict[str, int] = {}
    current_rank = 1
    for i, (symbol, value) in enumerate(valid):
        if i == 0 or valid[i - 1][1] != value:
            current_rank = i + 1
        ranks[symbol] = current_rank

    worst_rank = len(valid) + 1
    for snapshot in snapshots:
        ranks.setdefault(snapshot.symbol, worst_rank)

    return ranks


# ==================== 多重上市合并 ====================

def merge_listings(
    snapshots: Iterable[Snapshot],
    canonical_map: Mapping[str, str] | None = None,
    liquidity_metrics: Iterable[str] = LIQUIDITY_METRICS,
) -> list[Snapshot]:
    """
    合并同一发行人的多个上市代码

    规则：
    - 分组键为 canonical_map 中的主代码（未映射的代码自成一组）
    - 主上市（代码等于主代码的那条，否则按字母序第一条）提供全部指标
    - 流动性类指标（如 adtv）在所有上市代码间求和，忽略缺失值

    Returns:
        list[Snapshot]: 合并后的快照，保持首次出现的顺序
    """
    canonical_map = CANONICAL_LISTINGS if canonical_map is None else canonical_map
    liquidity = tuple(liquidity_metrics)

    groups: dict[str, list[Snapshot]] = {}
    for snapshot in snapshots:
        key = canonical_map.get(snapshot.symbol, snapshot.symbol)
        groups.setdefault(key, []).append(snapshot)

    merged: list[Snapshot] = []
    for canonical, listings in groups.items():
        if len(listings) == 1 and listings[0].symbol == canonical:
            merged.append(listings[0])
            continue

        ordered = sorted(listings, key=lambda s: (s.symbol != canonical, s.symbol))
        primary = ordered[0]
        metrics = dict(primary.metrics)

        for metric in liquidity:
            values = [s.value(metric) for s in ordered]
            values = [v for v in values if v is not None]
            if values:
                metrics[metric] = sum(values)

        merged_from = tuple(s.symbol for s in ordered)
        logger.debug(f"🔗 合并多重上市: {merged_from} -> {canonical}")
        merged.append(
            Snapshot(
                symbol=canonical,
                metrics=metrics,
                as_of=primary.as_of,
                merged_from=merged_from if len(ordered) > 1 else (),
            )
        )

    return merged


def filter_by_min(
    snapshots: Iterable[Snapshot],
    metric: str,
    minimum: float,
) -> list[Snapshot]:
    """过滤掉指标低于下限（或缺失）的标的，例如最小市值过滤"""
    return [
        s for s in snapshots
        if (value := s.value(metric)) is not None and value >= minimum
    ]


# ==================== GARP 筛选 ====================

@dataclass(frozen=True)
class GARPCriteria:
    """GARP（合理价格成长）筛选条件，百分比类指标按百分数表示"""
    max_pe: float = 30.0
    max_peg: float = 2.0
    max_debt_to_equity: float = 2.0
    min_operating_margin: float = 10.0
    min_roic: float = 10.0
    min_fcf_yield: float = 2.0
    min_sales_growth: float = 10.0
    limit: int | None = 50


def _present(snapshot: Snapshot, metric: str) -> float | None:
    """有效且非 0 的指标值（0 视为没有数据）"""
    value = snapshot.value(metric)
    return value if value else None


def garp_score(snapshot: Snapshot) -> float:
    """
    GARP 综合分，越低越好

    估值与负债加分（惩罚），成长、回报和现金流减分（奖励），
    最后按参与计算的分项个数取平均。没有任何分项时返回一个极大值。

    分项：
        pe_ratio (>0)          +PE
        peg_ratio (>0)         +PEG × 10
        debt_to_equity (有值)  +D/E × 5
        sales_growth (>0)      −增长 × 0.5
        roic (>0)              −ROIC
        operating_margin (>0)  −利润率
        fcf_yield (>0)         −FCF 收益率 × 2
    """
    components: list[float] = []

    for metric, factor in (("pe_ratio", 1.0), ("peg_ratio", 10.0)):
        value = snapshot.value(metric)
        if value is not None and value > 0:
            components.append(value * factor)

    debt = snapshot.value("debt_to_equity")
    if debt is not None:
        components.append(debt * 5.0)

    for metric, factor in (
        ("sales_growth", 0.5),
        ("roic", 1.0),
        ("operating_margin", 1.0),
        ("fcf_yield", 2.0),
    ):
        value = snapshot.value(metric)
        if value is not None and value > 0:
            components.append(-value * factor)

    if not components:
        return RankingConstants.GARP_NO_DATA_SCORE
    return sum(components) / len(components)


def passes_garp(snapshot: Snapshot, criteria: GARPCriteria) -> bool:
    """
    是否满足 GARP 条件

    至少要有一项估值 / 质量数据；缺失（或为 0）的指标不参与判断。
    """
    if not any(
        _present(snapshot, m) is not None
        for m in ("pe_ratio", "peg_ratio", "roic", "operating_margin", "fcf_yield")
    ):
        return False

    upper_bounds = (
        ("pe_ratio", criteria.max_pe),
        ("peg_ratio", criteria.max_peg),
        ("debt_to_equity", criteria.max_debt_to_equity),
    )
    lower_bounds = (
        ("operating_margin", criteria.min_operating_margin),
        ("roic", criteria.min_roic),
        ("fcf_yield", criteria.min_fcf_yield),
        ("sales_growth", criteria.min_sales_growth),
    )
    for metric, bound in upper_bounds:
        value = _present(snapshot, metric)
        if value is not None and value > bound:
            return False
    for metric, bound in lower_bounds:
        value = _present(snapshot, metric)
        if value is not None and value < bound:
            return False
    return True


def filter_by_garp(
    snapshots: Iterable[Snapshot],
    criteria: GARPCriteria | None = None,
) -> list[Snapshot]:
    """
    GARP 筛选：过滤、打分、按分数升序排列并截取前 limit 个

    分数写入快照的 garp_score 指标，可以继续作为排名权重使用。
    同分按代码排序。
    """
    criteria = criteria or GARPCriteria()
    scored = [
        s.model_copy(update={"metrics": {**s.metrics, GARP_SCORE_METRIC: garp_score(s)}})
        for s in snapshots
        if passes_garp(s, criteria)
    ]
    scored.sort(key=lambda s: (s.metrics[GARP_SCORE_METRIC], s.symbol))

    logger.debug(f"🔍 GARP 筛选通过 {len(scored)} 个标的")
    if criteria.limit is not None:
        return scored[: criteria.limit]
    return scored


# ==================== 综合评估 ====================

class RankingEngine:
    """
    排名引擎

    Args:
        canonical_map: 多重上市映射，默认使用内置映射
        liquidity_metrics: 合并时求和的指标
    """

    def __init__(
        self,
        canonical_map: Mapping[str, str] | None = None,
        liquidity_metrics: Iterable[str] = LIQUIDITY_METRICS,
    ):
        self.canonical_map = dict(CANONICAL_LISTINGS if canonical_map is None else canonical_map)
        self.liquidity_metrics = tuple(liquidity_metrics)

    def evaluate(
        self,
        universe: Iterable[Snapshot],
        weights: WeightVector,
    ) -> list[RankedSnapshot]:
        """
        评估并排名整个股票池

        weighted_score = Σ 名次 × 权重；得分相同按代码排序。
        权重为 0 的指标照常排名（用于展示），对得分贡献为 0。

        Args:
            universe: 指标快照
            weights: 权重向量

        Returns:
            list[RankedSnapshot]: 按 overall_rank 升序排列
        """
        merged = merge_listings(universe, self.canonical_map, self.liquidity_metrics)
        if not merged:
            return []

        metric_ranks = {
            metric: rank_by_metric(merged, metric, weights.direction(metric))
            for metric in weights.metrics
        }

        scored: list[tuple[float, str, Snapshot, dict[str, int]]] = []
        for snapshot in merged:
            ranks = {metric: metric_ranks[metric][snapshot.symbol] for metric in weights.metrics}
            score = sum(ranks[metric] * weights.weight(metric) for metric in weights.metrics)
            scored.append((score, snapshot.symbol, snapshot, ranks))

        scored.sort(key=lambda item: (item[0], item[1]))

        return [
            RankedSnapshot(
                symbol=snapshot.symbol,
                metrics=snapshot.metrics,
                as_of=snapshot.as_of,
                merged_from=snapshot.merged_from,
                ranks=ranks,
                weighted_score=score,
                overall_rank=position + 1,
            )
            for position, (score, _, snapshot, ranks) in enumerate(scored)
        ]

    def top(
        self,
        universe: Iterable[Snapshot],
        weights: WeightVector,
        n: int,
    ) -> list[RankedSnapshot]:
        """返回排名前 n 的标的"""
        return self.evaluate(universe, weights)[:n]


_default_engine = RankingEngine()


def rank(universe: Iterable[Snapshot], weights: WeightVector) -> list[RankedSnapshot]:
    """使用默认引擎评估股票池"""
    return _default_engine.evaluate(universe, weights)
