"""
测试公共工具

构造内存股票池、价格历史和权重；所有回测以 2024-06-30 为"今天"。
"""
import datetime

import pytest

from quantrank.data.fetcher import FetchCapability
from quantrank.data.providers import InMemoryPriceProvider, InMemoryUniverseProvider
from quantrank.models import BacktestResult, Snapshot, Strategy
from quantrank.ranking.weights import WeightVector

AS_OF = datetime.date(2024, 6, 30)
Y1 = datetime.date(2023, 6, 30)
Y2 = datetime.date(2022, 6, 30)
Y3 = datetime.date(2021, 6, 30)


def snap(symbol: str, **metrics) -> Snapshot:
    """快速构造快照"""
    return Snapshot(symbol=symbol, metrics=metrics)


def ranked_by_cap(*symbols: str) -> list[Snapshot]:
    """按给定顺序构造市值递减的股票池（第一个排名第一）"""
    n = len(symbols)
    return [snap(s, market_cap=float(n - i)) for i, s in enumerate(symbols)]


@pytest.fixture
def cap_weights() -> WeightVector:
    """只看市值的权重"""
    return WeightVector.from_percentages({"market_cap": 100})


@pytest.fixture
def fetcher() -> FetchCapability:
    """不限速、不重试的获取能力"""
    return FetchCapability.immediate()


@pytest.fixture
def make_universe():
    def _make(universes: dict) -> InMemoryUniverseProvider:
        return InMemoryUniverseProvider(universes)
    return _make


@pytest.fixture
def make_prices():
    def _make(histories: dict) -> InMemoryPriceProvider:
        return InMemoryPriceProvider(histories)
    return _make


@pytest.fixture
def sample_result() -> BacktestResult:
    return BacktestResult(
        strategy=Strategy.ANNUAL_REBALANCE,
        start_date=Y1,
        end_date=AS_OF,
        periods_covered=1,
        total_return=100.0,
        annualized_return=100.0,
        final_value=2.0,
    )
