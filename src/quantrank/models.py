"""
QuantRank 数据模型 (Pydantic v2)

功能：
1. 指标快照（Snapshot）与排名结果（RankedSnapshot）
2. 价格观测点（PricePoint）
3. 交易流水（Transaction）与数据缺口（DataGap）
4. 回测结果（BacktestResult）与缓存条目（CacheEntry）

所有记录类型都是不可变的：排名结果总是由快照和权重重新推导，
交易流水只追加不修改。

代码风格：Python 3.10+ with Pydantic v2
"""

from __future__ import annotations

import datetime as dt
import math
from enum import Enum

from pydantic import BaseModel, Field, computed_field


class MetricDirection(str, Enum):
    """指标方向"""
    HIGHER_IS_BETTER = "higher"  # 降序排名
    LOWER_IS_BETTER = "lower"    # 升序排名


class Strategy(str, Enum):
    """回测策略"""
    ANNUAL_REBALANCE = "annual_rebalance"          # 年度全换仓
    HOLD_WINNERS = "hold_winners"                  # 保留赢家（部分换仓）
    ROLLING_REBALANCE = "rolling_rebalance"        # 滚动检查点换仓
    QUARTERLY_REBALANCE = "quarterly_rebalance"    # 买入持有 + 季度再平衡


class ActionType(str, Enum):
    """交易动作"""
    BUY = "BUY"
    SELL_ALL = "SELL_ALL"
    REBALANCE = "REBALANCE"
    HOLD = "HOLD"


class GapKind(str, Enum):
    """数据缺口类型"""
    METRIC = "metric"        # 缺少某项指标
    PRICE = "price"          # 某日无可用价格
    SNAPSHOT = "snapshot"    # 整份快照缺失
    UPSTREAM = "upstream"    # 数据源出错或超时


# ==================== 行情与快照 ====================

class PricePoint(BaseModel):
    """价格观测点（复权收盘价）"""
    date: dt.date
    price: float

    model_config = {"frozen": True}


class Snapshot(BaseModel):
    """
    单个标的在某一评估日的指标快照

    metrics 中允许出现 None / NaN，排名时按最差名次处理。
    """
    symbol: str
    metrics: dict[str, float | None] = Field(default_factory=dict)
    as_of: dt.date | None = None
    merged_from: tuple[str, ...] = ()

    model_config = {"frozen": True}

    def value(self, metric: str) -> float | None:
        """返回有效指标值，缺失或非有限数返回 None"""
        raw = self.metrics.get(metric)
        if raw is None or isinstance(raw, bool):
            return None
        try:
            value = float(raw)
        except (TypeError, ValueError):
            return None
        return value if math.isfinite(value) else None


class RankedSnapshot(Snapshot):
    """排名结果（派生数据，不是事实来源）"""
    ranks: dict[str, int] = Field(default_factory=dict)
    weighted_score: float
    overall_rank: int


# ==================== 回测记录 ====================

class Transaction(BaseModel):
    """
    交易流水（只追加）

    symbols 为动作完成后的持仓（SELL_ALL 时为被清仓的标的），
    portfolio_value 为动作完成后的组合净值。
    """
    date: dt.date
    action: ActionType
    symbols: tuple[str, ...] = ()
    portfolio_value: float
    kept: tuple[str, ...] = ()
    sold: tuple[str, ...] = ()
    bought: tuple[str, ...] = ()

    model_config = {"frozen": True}


class DataGap(BaseModel):
    """回测过程中被吸收的缺失数据 / 上游错误"""
    date: dt.date | None = None
    symbol: str | None = None
    kind: GapKind
    detail: str = ""

    model_config = {"frozen": True}


class SymbolReturn(BaseModel):
    """单个标的在一个持有区间内的收益"""
    symbol: str
    weight: float
    entry_date: dt.date | None = None
    entry_price: float | None = None
    exit_date: dt.date | None = None
    exit_price: float | None = None
    total_return: float | None = None       # 百分比
    annualized_return: float | None = None  # 百分比

    model_config = {"frozen": True}


class BacktestResult(BaseModel):
    """
    回测结果

    is_complete 为 False 表示"带着缺口跑完"，调用方可据此区分
    "跑完但有 N 个洞" 和 "根本无法运行"（后者直接抛异常）。
    """
    strategy: Strategy
    start_date: dt.date
    end_date: dt.date
    periods_covered: int
    transactions: list[Transaction] = Field(default_factory=list)
    total_return: float | None = None
    annualized_return: float | None = None
    final_value: float
    per_symbol_breakdown: list[SymbolReturn] = Field(default_factory=list)
    gaps: list[DataGap] = Field(default_factory=list)

    model_config = {"frozen": True}

    @computed_field
    @property
    def is_complete(self) -> bool:
        """是否没有任何数据缺口"""
        return not self.gaps

    @computed_field
    @property
    def trade_count(self) -> int:
        """BUY / REBALANCE 动作数"""
        return sum(
            1 for t in self.transactions
            if t.action in (ActionType.BUY, ActionType.REBALANCE)
        )


class CacheEntry(BaseModel):
    """结果缓存条目"""
    fingerprint: str
    payload: BacktestResult
    computed_at: dt.datetime
