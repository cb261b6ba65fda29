"""
Unit tests for price resolution

测试覆盖：
1. 向前取价（不假设输入有序、忽略未来与无效观测）
2. DataFrame 转价格序列
3. PriceBook 批量加载、缺口记录
"""
import datetime
import math

import pandas as pd
import pytest

from quantrank.data.fetcher import FetchCapability
from quantrank.data.providers import InMemoryPriceProvider, PriceProvider
from quantrank.errors import MissingDataError
from quantrank.models import GapKind, PricePoint
from quantrank.pricing.resolver import (
    PriceBook,
    latest_price,
    price_on_or_before,
    require_price,
    series_from_frame,
)


def p(day: str, price: float) -> PricePoint:
    return PricePoint(date=datetime.date.fromisoformat(day), price=price)


class TestPriceOnOrBefore:
    """测试向前取价"""

    @pytest.fixture
    def series(self):
        # 故意打乱顺序
        return [
            p("2024-01-05", 105.0),
            p("2024-01-02", 102.0),
            p("2024-01-08", 108.0),
            p("2024-01-03", 103.0),
        ]

    def test_exact_match(self, series):
        assert price_on_or_before(series, "2024-01-05").price == 105.0

    def test_floor_match_on_gap(self, series):
        # 1/6、1/7 没有数据，取 1/5
        point = price_on_or_before(series, datetime.date(2024, 1, 7))
        assert point == p("2024-01-05", 105.0)

    def test_never_looks_ahead(self, series):
        assert price_on_or_before(series, "2024-01-01") is None

    def test_after_last_observation(self, series):
        assert price_on_or_before(series, "2030-01-01").price == 108.0

    def test_ignores_invalid_prices(self):
        series = [p("2024-01-02", 100.0), p("2024-01-03", math.nan), p("2024-01-04", 0.0)]
        assert price_on_or_before(series, "2024-01-05").date == datetime.date(2024, 1, 2)

    def test_empty_series(self):
        assert price_on_or_before([], "2024-01-05") is None

    def test_require_price_raises(self, series):
        assert require_price(series, "2024-01-04").price == 103.0
        with pytest.raises(MissingDataError):
            require_price(series, "2023-12-31", symbol="AAPL")

    def test_latest_price(self, series):
        assert latest_price(series).price == 108.0
        assert latest_price([]) is None


class TestSeriesFromFrame:
    """测试 DataFrame 转换"""

    def test_drops_missing_rows(self):
        df = pd.DataFrame(
            {
                "date": ["2024-01-02", "2024-01-03", "2024-01-04"],
                "adj_close": [100.0, None, 101.5],
            }
        )
        series = series_from_frame(df)
        assert [pt.price for pt in series] == [100.0, 101.5]
        assert series[0].date == datetime.date(2024, 1, 2)

    def test_empty_frame(self):
        assert series_from_frame(pd.DataFrame(columns=["date", "adj_close"])) == []


class FailingPriceProvider(PriceProvider):
    def __init__(self, good: dict, failing: set):
        self.good = good
        self.failing = failing
        self.calls: list[str] = []

    async def get_price_history(self, symbol):
        self.calls.append(symbol)
        if symbol in self.failing:
            raise ConnectionError("upstream down")
        return self.good.get(symbol, [])


class TestPriceBook:
    """测试价格簿"""

    @pytest.mark.asyncio
    async def test_loads_each_symbol_once(self):
        provider = FailingPriceProvider({"A": [p("2024-01-02", 10.0)]}, set())
        book = PriceBook(provider, FetchCapability.immediate())

        await book.load(["A"], "2024-01-02")
        await book.load(["A"], "2024-01-03")

        assert provider.calls == ["A"]
        assert book.price_on("A", "2024-01-03").price == 10.0

    @pytest.mark.asyncio
    async def test_upstream_failure_recorded_as_gap(self):
        provider = FailingPriceProvider({"A": [p("2024-01-02", 10.0)]}, {"B"})
        book = PriceBook(provider, FetchCapability.immediate())

        await book.load(["B", "A"], "2024-01-02")

        assert book.price_on("A", "2024-01-02") is not None
        assert book.price_on("B", "2024-01-02") is None
        assert [(g.symbol, g.kind) for g in book.gaps] == [("B", GapKind.UPSTREAM)]

    @pytest.mark.asyncio
    async def test_empty_history_and_missing_date_recorded(self):
        provider = InMemoryPriceProvider({"A": [("2024-01-05", 10.0)], "B": []})
        book = PriceBook(provider, FetchCapability.immediate())

        await book.load(["A", "B"], "2024-01-02")
        assert book.price_on("A", "2024-01-02") is None

        kinds = {(g.symbol, g.kind) for g in book.gaps}
        assert kinds == {("B", GapKind.PRICE), ("A", GapKind.PRICE)}
