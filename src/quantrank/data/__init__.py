"""
QuantRank 数据层

1. 数据提供者接口与内存 / DataFrame 实现
2. FetchCapability: 限速、重试、超时的异步获取
3. 回测结果缓存
"""

from .fetcher import FetchCapability
from .providers import (
    DataFramePriceProvider,
    FundamentalsProvider,
    FundamentalsUniverseProvider,
    InMemoryPriceProvider,
    InMemoryUniverseProvider,
    PriceProvider,
    QualityScoreProvider,
    UniverseProvider,
    merge_quality_scores,
    snapshots_from_frame,
)

__all__ = [
    "DataFramePriceProvider",
    "FetchCapability",
    "FundamentalsProvider",
    "FundamentalsUniverseProvider",
    "InMemoryPriceProvider",
    "InMemoryUniverseProvider",
    "PriceProvider",
    "QualityScoreProvider",
    "UniverseProvider",
    "merge_quality_scores",
    "snapshots_from_frame",
]
