"""
QuantRank 排名模块

1. WeightVector: 百分比权重归一化与指标方向
2. RankingEngine: 密集排名、多重上市合并、加权综合排序
3. 筛选: 最小值过滤、GARP 条件筛选与打分
"""

from .engine import (
    GARPCriteria,
    RankingEngine,
    filter_by_garp,
    filter_by_min,
    garp_score,
    merge_listings,
    passes_garp,
    rank,
    rank_by_metric,
)
from .weights import WeightVector

__all__ = [
    "GARPCriteria",
    "RankingEngine",
    "WeightVector",
    "filter_by_garp",
    "filter_by_min",
    "garp_score",
    "merge_listings",
    "passes_garp",
    "rank",
    "rank_by_metric",
]
