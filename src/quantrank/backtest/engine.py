"""
回测引擎

对外入口：
1. simulate(): 按策略分派到对应模拟器，运行一次回测
2. simulate_horizons(): 同一组参数在多个回测年限上运行（1~5 年）
3. BacktestEngine: 绑定数据源、获取能力和结果缓存的门面

优化器（遗传算法、粒子群、局部搜索等）只通过 rank / simulate /
ResultCache 与引擎交互。
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Iterable

from quantrank.backtest.annual import AnnualRebalanceSimulator
from quantrank.backtest.base import BaseSimulator, SimulationParams
from quantrank.backtest.hold_winners import HoldWinnersSimulator
from quantrank.backtest.quarterly import QuarterlyRebalanceSimulator
from quantrank.backtest.rolling import RollingRebalanceSimulator
from quantrank.constants import BacktestConstants
from quantrank.data.fetcher import FetchCapability
from quantrank.data.providers import PriceProvider, UniverseProvider
from quantrank.data.storage.result_cache import CachedResult, ResultCache, utcnow
from quantrank.models import BacktestResult, Strategy

logger = logging.getLogger(__name__)


SIMULATORS: dict[Strategy, type[BaseSimulator]] = {
    Strategy.ANNUAL_REBALANCE: AnnualRebalanceSimulator,
    Strategy.HOLD_WINNERS: HoldWinnersSimulator,
    Strategy.ROLLING_REBALANCE: RollingRebalanceSimulator,
    Strategy.QUARTERLY_REBALANCE: QuarterlyRebalanceSimulator,
}


async def simulate(
    strategy: Strategy | str,
    params: SimulationParams,
    price_provider: PriceProvider,
    ranking_provider: UniverseProvider,
    fetcher: FetchCapability | None = None,
) -> BacktestResult:
    """
    运行一次回测

    Args:
        strategy: 策略
        params: 回测参数
        price_provider: 价格历史提供者
        ranking_provider: 股票池快照提供者
        fetcher: 获取能力（限速 / 重试 / 超时），默认按全局配置创建

    Returns:
        BacktestResult

    Raises:
        ConfigurationError: 参数非法（在任何计算开始前）
    """
    simulator_cls = SIMULATORS[Strategy(strategy)]
    simulator = simulator_cls(params, price_provider, ranking_provider, fetcher=fetcher)
    return await simulator.run()


async def simulate_horizons(
    strategy: Strategy | str,
    params: SimulationParams,
    price_provider: PriceProvider,
    ranking_provider: UniverseProvider,
    horizons: Iterable[int] = BacktestConstants.MULTI_HORIZON_YEARS,
    fetcher: FetchCapability | None = None,
) -> dict[int, BacktestResult]:
    """在多个回测年限上运行同一策略（按年限升序依次执行）"""
    fetcher = fetcher or FetchCapability.from_settings()
    results: dict[int, BacktestResult] = {}
    for years in sorted(set(horizons)):
        horizon_params = dataclasses.replace(params, horizon_years=years)
        results[years] = await simulate(strategy, horizon_params, price_provider, ranking_provider, fetcher)
    return results


class BacktestEngine:
    """
    回测引擎门面

    Args:
        price_provider: 价格历史提供者
        ranking_provider: 股票池快照提供者
        fetcher: 获取能力
        cache: 结果缓存，None 表示不缓存
    """

    def __init__(
        self,
        price_provider: PriceProvider,
        ranking_provider: UniverseProvider,
        fetcher: FetchCapability | None = None,
        cache: ResultCache | None = None,
    ):
        self.price_provider = price_provider
        self.ranking_provider = ranking_provider
        self.fetcher = fetcher or FetchCapability.from_settings()
        self.cache = cache

    async def run(
        self,
        strategy: Strategy | str,
        params: SimulationParams,
        refresh: bool = False,
    ) -> BacktestResult:
        """运行回测；配置了缓存时按参数指纹读写缓存"""
        return (await self.run_cached(strategy, params, refresh)).payload

    async def run_cached(
        self,
        strategy: Strategy | str,
        params: SimulationParams,
        refresh: bool = False,
    ) -> CachedResult:
        strategy = Strategy(strategy)
        # 参数校验在读缓存之前完成
        params.validate_for(strategy)

        async def compute() -> BacktestResult:
            return await simulate(
                strategy, params, self.price_provider, self.ranking_provider, self.fetcher
            )

        if self.cache is None:
            result = await compute()
            return CachedResult(payload=result, computed_at=utcnow(), hit=False)

        return await self.cache.get_or_compute(params.fingerprint(strategy), compute, refresh=refresh)

    async def run_horizons(
        self,
        strategy: Strategy | str,
        params: SimulationParams,
        horizons: Iterable[int] = BacktestConstants.MULTI_HORIZON_YEARS,
        refresh: bool = False,
    ) -> dict[int, BacktestResult]:
        results: dict[int, BacktestResult] = {}
        for years in sorted(set(horizons)):
            horizon_params = dataclasses.replace(params, horizon_years=years)
            results[years] = await self.run(strategy, horizon_params, refresh=refresh)
        return results
