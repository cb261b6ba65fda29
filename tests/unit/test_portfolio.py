"""
Unit tests for portfolio bookkeeping

测试覆盖：
1. 份额记账与估值
2. 缺价持仓按成本计值
3. 权重漂移与按比例追加资金
"""
import datetime

import pytest

from quantrank.backtest.portfolio import Holding, PortfolioState
from quantrank.models import PricePoint

D0 = datetime.date(2023, 6, 30)
D1 = datetime.date(2024, 6, 30)


def pt(day: datetime.date, price: float) -> PricePoint:
    return PricePoint(date=day, price=price)


class TestHolding:
    """测试单个持仓"""

    def test_open_with_price(self):
        holding = Holding.open("AAA", 0.5, D0, pt(D0, 100.0), 0.5)
        assert holding.units == pytest.approx(0.005)
        assert holding.market_value == pytest.approx(0.5)

    def test_mark_to_market(self):
        holding = Holding.open("AAA", 0.5, D0, pt(D0, 100.0), 0.5)
        assert holding.mark(pt(D1, 150.0))
        assert holding.market_value == pytest.approx(0.75)

    def test_unpriced_holding_carried_at_cost(self):
        holding = Holding.open("AAA", 0.5, D0, None, 0.5)
        assert not holding.is_priced
        assert not holding.mark(pt(D1, 999.0))
        assert holding.market_value == pytest.approx(0.5)

    def test_missing_mark_keeps_last_value(self):
        holding = Holding.open("AAA", 1.0, D0, pt(D0, 10.0), 1.0)
        holding.mark(pt(D1, 20.0))
        holding.mark(None)
        assert holding.market_value == pytest.approx(2.0)

    def test_symbol_return_uses_price_dates(self):
        # 入场价格实际来自 D0 前两天（向前取价）
        entry = pt(datetime.date(2023, 6, 28), 100.0)
        holding = Holding.open("AAA", 1.0, D0, entry, 1.0)
        result = holding.to_symbol_return(pt(D1, 200.0))

        assert result.entry_date == datetime.date(2023, 6, 28)
        assert result.total_return == pytest.approx(100.0)
        years = (D1 - entry.date).days / 365.25
        assert result.annualized_return == pytest.approx((2 ** (1 / years) - 1) * 100)

    def test_symbol_return_without_exit_price(self):
        holding = Holding.open("AAA", 1.0, D0, pt(D0, 100.0), 1.0)
        result = holding.to_symbol_return(None)
        assert result.total_return is None
        assert result.exit_price is None


class TestPortfolioState:
    """测试组合"""

    @pytest.fixture
    def portfolio(self):
        prices = {"AAA": pt(D0, 100.0), "BBB": pt(D0, 50.0), "CCC": None}
        return PortfolioState.equal_weight(["AAA", "BBB", "CCC"], 3.0, D0, prices)

    def test_equal_weight_entry(self, portfolio):
        assert portfolio.symbols == ("AAA", "BBB", "CCC")
        assert all(h.weight_fraction == pytest.approx(1 / 3) for h in portfolio.holdings.values())
        assert portfolio.total_value == pytest.approx(3.0)

    def test_total_value_excludes_unpriced_gains(self, portfolio):
        portfolio.mark({"AAA": pt(D1, 200.0), "BBB": pt(D1, 50.0), "CCC": pt(D1, 1.0)})
        # AAA 翻倍, BBB 持平, CCC 无份额按成本
        assert portfolio.total_value == pytest.approx(4.0)

    def test_refresh_weights_drift(self, portfolio):
        portfolio.mark({"AAA": pt(D1, 200.0)})
        portfolio.refresh_weights()
        assert portfolio.holdings["AAA"].weight_fraction == pytest.approx(0.5)
        assert portfolio.holdings["BBB"].weight_fraction == pytest.approx(0.25)

    def test_reinvest_pro_rata(self, portfolio):
        portfolio.reinvest_pro_rata(3.0)
        assert portfolio.total_value == pytest.approx(6.0)
        assert portfolio.holdings["AAA"].market_value == pytest.approx(2.0)

    def test_remove_and_duplicate(self, portfolio):
        removed = portfolio.remove(["BBB", "ZZZ"])
        assert [h.symbol for h in removed] == ["BBB"]
        assert "BBB" not in portfolio
        assert len(portfolio) == 2

        with pytest.raises(ValueError):
            portfolio.add(Holding.open("AAA", 1.0, D1, None, 0.0))

    def test_empty(self):
        state = PortfolioState.equal_weight([], 1.0, D0, {})
        assert len(state) == 0
        assert state.total_value == 0
