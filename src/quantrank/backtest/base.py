"""
回测模拟器基类

所有策略模拟器共享：
1. 参数校验（SimulationParams，计算开始前失败）
2. 按日期取得排名（经 FetchCapability 调用排名提供者）
3. 每期一批的价格加载（PriceBook）
4. 等权买入 / 全部卖出 / 全换仓循环
5. 交易流水、分标的收益、数据缺口的记录

教学要点：
1. 模板方法模式：子类只实现 _simulate
2. 缺失数据只记录不中断，一个标的的问题不会让整次回测失败
3. 模拟器是一次性的：每次回测新建一个实例
"""

from __future__ import annotations

import datetime
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from itertools import pairwise
from typing import Any

from quantrank.backtest.portfolio import PortfolioState
from quantrank.backtest.returns import annualize_value, growth_factor, return_between
from quantrank.constants import BacktestConstants
from quantrank.data.fetcher import FetchCapability
from quantrank.data.providers import PriceProvider, UniverseProvider
from quantrank.data.storage.result_cache import fingerprint
from quantrank.errors import ConfigurationError
from quantrank.models import (
    ActionType,
    BacktestResult,
    DataGap,
    GapKind,
    PricePoint,
    RankedSnapshot,
    Strategy,
    SymbolReturn,
    Transaction,
)
from quantrank.pricing.resolver import PriceBook
from quantrank.ranking.engine import RankingEngine
from quantrank.ranking.weights import WeightVector
from quantrank.utils.date_utils import DateLike, to_date

logger = logging.getLogger(__name__)

RebalanceHook = Callable[[PortfolioState, list[RankedSnapshot], datetime.date], None]


# ==================== 模拟参数 ====================

@dataclass
class SimulationParams:
    """回测参数"""
    weights: WeightVector
    portfolio_size: int = BacktestConstants.DEFAULT_PORTFOLIO_SIZE       # N
    horizon_years: int = BacktestConstants.DEFAULT_HORIZON_YEARS         # H
    keep_threshold: int | None = None                                    # K（仅 hold_winners）
    checkpoints: Sequence[DateLike] = ()                                 # 仅 rolling
    rebalance_months: int = BacktestConstants.DEFAULT_REBALANCE_MONTHS
    as_of: DateLike = None                                               # "今天"，默认当天
    initial_value: float = BacktestConstants.DEFAULT_INITIAL_VALUE
    checkpoint_dates: tuple[datetime.date, ...] = field(init=False, default=())

    def __post_init__(self):
        if not isinstance(self.weights, WeightVector):
            raise ConfigurationError("weights 必须是 WeightVector")
        if self.portfolio_size < 1:
            raise ConfigurationError(f"portfolio_size 必须 >= 1: {self.portfolio_size}")
        if self.horizon_years <= 0:
            raise ConfigurationError(f"horizon_years 必须 > 0: {self.horizon_years}")
        if self.keep_threshold is not None and self.keep_threshold < self.portfolio_size:
            raise ConfigurationError(
                f"keep_threshold ({self.keep_threshold}) 不能小于 "
                f"portfolio_size ({self.portfolio_size})"
            )
        if self.rebalance_months < 1:
            raise ConfigurationError(f"rebalance_months 必须 >= 1: {self.rebalance_months}")
        if self.initial_value <= 0:
            raise ConfigurationError(f"initial_value 必须 > 0: {self.initial_value}")

        try:
            dates = tuple(to_date(d) for d in self.checkpoints)
            if self.as_of is not None:
                self.as_of = to_date(self.as_of)
        except ValueError as e:
            raise ConfigurationError(str(e)) from e
        if any(b <= a for a, b in pairwise(dates)):
            raise ConfigurationError("checkpoints 必须严格递增")
        self.checkpoint_dates = dates

    @classmethod
    def from_settings(
        cls,
        weights: WeightVector,
        settings: Any | None = None,
        strategy: Strategy | str | None = None,
        **overrides: Any,
    ) -> "SimulationParams":
        """
        以全局配置为默认值构造

        配置中的 keep_threshold 只在 strategy 为 hold_winners 时使用，
        其他策略没有保留阈值；显式传入的参数总是优先。
        """
        if settings is None:
            from quantrank.settings import get_settings

            settings = get_settings()
        values: dict[str, Any] = {
            "portfolio_size": settings.portfolio_size,
            "horizon_years": settings.horizon_years,
            "rebalance_months": settings.rebalance_months,
        }
        if strategy is not None and Strategy(strategy) == Strategy.HOLD_WINNERS:
            values["keep_threshold"] = settings.keep_threshold
        values.update(overrides)
        return cls(weights=weights, **values)

    @property
    def reference_date(self) -> datetime.date:
        return to_date(self.as_of)

    def validate_for(self, strategy: Strategy) -> None:
        """策略相关的参数校验"""
        strategy = Strategy(strategy)
        if strategy == Strategy.HOLD_WINNERS and self.keep_threshold is None:
            raise ConfigurationError("hold_winners 策略需要 keep_threshold")
        if strategy == Strategy.ROLLING_REBALANCE and len(self.checkpoint_dates) < 2:
            raise ConfigurationError("rolling_rebalance 策略至少需要两个检查点")

    def fingerprint(self, strategy: Strategy | str) -> str:
        """结果缓存的参数指纹"""
        strategy = Strategy(strategy)
        extra: dict[str, Any] = {}
        if strategy == Strategy.ROLLING_REBALANCE:
            extra["checkpoints"] = [d.isoformat() for d in self.checkpoint_dates]
        if strategy in (Strategy.ROLLING_REBALANCE, Strategy.QUARTERLY_REBALANCE):
            extra["rebalance_months"] = self.rebalance_months
        if self.as_of is not None:
            extra["as_of"] = self.reference_date.isoformat()
        if self.initial_value != BacktestConstants.DEFAULT_INITIAL_VALUE:
            extra["initial_value"] = self.initial_value

        return fingerprint(
            strategy,
            self.weights,
            self.portfolio_size,
            None if strategy == Strategy.ROLLING_REBALANCE else self.horizon_years,
            keep_threshold=self.keep_threshold if strategy == Strategy.HOLD_WINNERS else None,
            extra=extra,
        )


# ==================== 模拟器基类 ====================

class BaseSimulator(ABC):
    """
    策略模拟器基类

    Args:
        params: 回测参数
        price_provider: 价格历史提供者
        ranking_provider: 股票池快照提供者
        fetcher: 获取能力，默认按全局配置创建
        engine: 排名引擎
    """

    strategy: Strategy

    def __init__(
        self,
        params: SimulationParams,
        price_provider: PriceProvider,
        ranking_provider: UniverseProvider,
        fetcher: FetchCapability | None = None,
        engine: RankingEngine | None = None,
    ):
        params.validate_for(self.strategy)
        self.params = params
        self.ranking_provider = ranking_provider
        self.fetcher = fetcher or FetchCapability.from_settings()
        self.engine = engine or RankingEngine()

        self.gaps: list[DataGap] = []
        self.prices = PriceBook(price_provider, self.fetcher, self.gaps)
        self.transactions: list[Transaction] = []
        self.breakdown: list[SymbolReturn] = []

    async def run(self) -> BacktestResult:
        """运行回测"""
        logger.info(
            f"🚀 开始回测 [{self.strategy.value}] N={self.params.portfolio_size} "
            f"weights={self.params.weights!r}"
        )
        result = await self._simulate()

        total = f"{result.total_return:.2f}%" if result.total_return is not None else "N/A"
        annual = f"{result.annualized_return:.2f}%" if result.annualized_return is not None else "N/A"
        logger.info(
            f"✅ 回测完成 [{self.strategy.value}] 总收益 {total}, 年化 {annual}, "
            f"交易 {len(result.transactions)} 条, 缺口 {len(result.gaps)} 个"
        )
        return result

    @abstractmethod
    async def _simulate(self) -> BacktestResult:
        pass

    # ==================== 排名与价格 ====================

    async def _ranked(self, when: datetime.date) -> list[RankedSnapshot]:
        """
        取得 when 当日的排名

        数据源失败或为空时返回空列表并记录缺口；提供者报告的缺失标的、
        有权重但取值无效的指标也各记一个缺口。
        """
        universe = await self.fetcher.fetch(
            f"universe@{when}",
            lambda: self.ranking_provider.get_universe(when),
        )
        if universe is None:
            self._gap(when, GapKind.UPSTREAM, "股票池快照获取失败")
            return []

        for gap in self.ranking_provider.unavailable(when):
            self._gap(gap.date or when, gap.kind, gap.detail, gap.symbol)

        if not universe:
            self._gap(when, GapKind.SNAPSHOT, "股票池快照为空")
            return []

        ranked = self.engine.evaluate(universe, self.params.weights)
        self._record_metric_gaps(ranked, when)
        return ranked

    def _record_metric_gaps(self, ranked: Sequence[RankedSnapshot], when: datetime.date) -> None:
        """权重非 0 的指标缺失或无效时按最差名次参与排名，这里记为 METRIC 缺口"""
        weights = self.params.weights
        weighted = [m for m in weights.metrics if weights.weight(m) > 0]
        for snapshot in ranked:
            for metric in weighted:
                if snapshot.value(metric) is None:
                    self._gap(when, GapKind.METRIC, f"{metric} 缺失或无效", snapshot.symbol)

    def _top(self, ranked: Sequence[RankedSnapshot]) -> list[str]:
        return [r.symbol for r in ranked[: self.params.portfolio_size]]

    async def _prices_at(
        self,
        symbols: Iterable[str],
        when: datetime.date,
    ) -> dict[str, PricePoint | None]:
        """加载并解析一批标的在 when 的价格（每期一批）"""
        symbols = sorted(set(symbols))
        await self.prices.load(symbols, when)
        return {symbol: self.prices.price_on(symbol, when) for symbol in symbols}

    # ==================== 交易动作 ====================

    async def _enter(
        self,
        symbols: Sequence[str],
        when: datetime.date,
        capital: float,
    ) -> PortfolioState:
        """等权买入 symbols，记录 BUY"""
        prices = await self._prices_at(symbols, when)
        portfolio = PortfolioState.equal_weight(symbols, capital, when, prices)
        self._record(
            ActionType.BUY,
            when,
            portfolio.total_value,
            symbols=portfolio.symbols,
            bought=portfolio.symbols,
        )
        return portfolio

    async def _exit(self, portfolio: PortfolioState, when: datetime.date) -> float:
        """按 when 的价格全部卖出，记录 SELL_ALL，返回卖出后的组合净值"""
        prices = await self._prices_at(portfolio.symbols, when)
        portfolio.mark(prices)
        for symbol, holding in portfolio.holdings.items():
            self.breakdown.append(holding.to_symbol_return(prices.get(symbol)))

        value = portfolio.total_value
        self._record(
            ActionType.SELL_ALL,
            when,
            value,
            symbols=portfolio.symbols,
            sold=portfolio.symbols,
        )
        return value

    async def _run_full_turnover(
        self,
        dates: Sequence[datetime.date],
        value: float,
        on_rebalance: RebalanceHook | None = None,
    ) -> float:
        """
        全换仓循环：每个检查点卖出全部持仓，再等权买入新的前 N 名

        流水形如 BUY, SELL_ALL, BUY, ..., SELL_ALL。某期排名为空时
        该期不持仓（记录 HOLD），净值不变。

        Args:
            dates: 检查点（至少两个）
            value: 初始净值
            on_rebalance: 每次换仓前的回调 (当前持仓, 新排名, 日期)

        Returns:
            float: 期末净值
        """
        portfolio: PortfolioState | None = None

        for when in dates[:-1]:
            ranked = await self._ranked(when)

            if portfolio is not None:
                if on_rebalance is not None:
                    on_rebalance(portfolio, ranked, when)
                value = await self._exit(portfolio, when)
                portfolio = None

            top = self._top(ranked)
            if not top:
                self._record(ActionType.HOLD, when, value)
                continue

            portfolio = await self._enter(top, when, value)

        if portfolio is not None:
            value = await self._exit(portfolio, dates[-1])
        return value

    async def _equal_weight_path(
        self,
        symbols: Sequence[str],
        dates: Sequence[datetime.date],
        value: float,
    ) -> tuple[list[float], dict[datetime.date, dict[str, PricePoint | None]]]:
        """
        在 dates 上做等权再平衡，返回每个日期的净值路径

        每个子区间的增长因子只累加首尾都有价格的标的（权重 1/N，不再分配）。

        Returns:
            (净值路径, 日期 -> 价格表)
        """
        prices = {when: await self._prices_at(symbols, when) for when in dates}
        path = [value]
        if not symbols:
            return path * len(dates), prices

        weight = 1.0 / len(symbols)
        for start, end in pairwise(dates):
            factor = growth_factor(
                (
                    weight,
                    _price(prices[start].get(symbol)),
                    _price(prices[end].get(symbol)),
                )
                for symbol in symbols
            )
            value *= factor
            path.append(value)
        return path, prices

    # ==================== 记录 ====================

    def _record(
        self,
        action: ActionType,
        when: datetime.date,
        value: float,
        symbols: Iterable[str] = (),
        kept: Iterable[str] = (),
        sold: Iterable[str] = (),
        bought: Iterable[str] = (),
    ) -> Transaction:
        transaction = Transaction(
            date=when,
            action=action,
            symbols=tuple(symbols),
            portfolio_value=value,
            kept=tuple(kept),
            sold=tuple(sold),
            bought=tuple(bought),
        )
        self.transactions.append(transaction)
        logger.debug(f"📝 {when} {action.value} {list(transaction.symbols)} 净值 {value:.4f}")
        return transaction

    def _gap(
        self,
        when: datetime.date | None,
        kind: GapKind,
        detail: str,
        symbol: str | None = None,
    ) -> None:
        self.gaps.append(DataGap(date=when, symbol=symbol, kind=kind, detail=detail))
        logger.warning(f"⚠️ 数据缺口 [{kind.value}] {symbol or '*'} @ {when}: {detail}")

    def _build_result(
        self,
        start: datetime.date,
        end: datetime.date,
        periods: int,
        final_value: float,
        years: float,
    ) -> BacktestResult:
        initial = self.params.initial_value
        return BacktestResult(
            strategy=self.strategy,
            start_date=start,
            end_date=end,
            periods_covered=periods,
            transactions=list(self.transactions),
            total_return=(final_value / initial - 1) * 100,
            annualized_return=annualize_value(final_value, years, initial),
            final_value=final_value,
            per_symbol_breakdown=list(self.breakdown),
            gaps=list(self.gaps),
        )


def _price(point: PricePoint | None) -> float | None:
    return point.price if point is not None else None


def symbol_return(
    symbol: str,
    weight: float,
    entry: PricePoint | None,
    exit_: PricePoint | None,
) -> SymbolReturn:
    """两个价格观测点之间的分标的收益（年化按实际价格日期）"""
    total, annualized = return_between(entry, exit_)
    return SymbolReturn(
        symbol=symbol,
        weight=weight,
        entry_date=entry.date if entry else None,
        entry_price=entry.price if entry else None,
        exit_date=exit_.date if exit_ else None,
        exit_price=exit_.price if exit_ else None,
        total_return=total,
        annualized_return=annualized,
    )
