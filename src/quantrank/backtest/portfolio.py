"""
组合持仓

Holding 以份额记账：入场时 units = cost / entry_price，之后市值
= units * 最新价格。入场时取不到价格的持仓没有份额，始终按成本计值
（收益为 0），这等价于"缺价标的从加权平均中剔除、权重不再分配"。

PortfolioState 始终满仓（无现金仓位），总市值每次都由份额和最新价格
重新计算，不做增量累加。
"""

from __future__ import annotations

import datetime
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from quantrank.backtest.returns import annualized_return, total_return
from quantrank.models import PricePoint, SymbolReturn
from quantrank.utils.date_utils import elapsed_years


@dataclass
class Holding:
    """单个持仓"""
    symbol: str
    weight_fraction: float
    entry_price: float | None
    entry_date: datetime.date            # 买入所在的检查点
    cost: float                          # 买入时分配的资金
    units: float | None = None
    price_date: datetime.date | None = None       # 入场价格的实际日期
    last_price: float | None = None
    last_price_date: datetime.date | None = None

    @classmethod
    def open(
        cls,
        symbol: str,
        capital: float,
        when: datetime.date,
        point: PricePoint | None,
        weight_fraction: float,
    ) -> "Holding":
        """以 point 的价格买入 capital 金额；point 为 None 时按成本持有"""
        if point is None:
            return cls(
                symbol=symbol,
                weight_fraction=weight_fraction,
                entry_price=None,
                entry_date=when,
                cost=capital,
            )
        return cls(
            symbol=symbol,
            weight_fraction=weight_fraction,
            entry_price=point.price,
            entry_date=when,
            cost=capital,
            units=capital / point.price,
            price_date=point.date,
            last_price=point.price,
            last_price_date=point.date,
        )

    @property
    def is_priced(self) -> bool:
        return self.units is not None

    @property
    def market_value(self) -> float:
        if self.units is None or self.last_price is None:
            return self.cost
        return self.units * self.last_price

    def mark(self, point: PricePoint | None) -> bool:
        """用最新价格估值；取不到价格时沿用上一次估值"""
        if point is None or self.units is None:
            return False
        self.last_price = point.price
        self.last_price_date = point.date
        return True

    def add_capital(self, amount: float) -> None:
        """按最新价格追加资金"""
        self.cost += amount
        if self.units is not None and self.last_price:
            self.units += amount / self.last_price

    def to_symbol_return(self, exit_point: PricePoint | None) -> SymbolReturn:
        """
        持有区间收益

        年化按入场、离场价格的实际日期计算。
        """
        if self.entry_price is None or exit_point is None:
            return SymbolReturn(
                symbol=self.symbol,
                weight=self.weight_fraction,
                entry_date=self.price_date or self.entry_date,
                entry_price=self.entry_price,
                exit_date=exit_point.date if exit_point else None,
                exit_price=exit_point.price if exit_point else None,
            )

        pct = total_return(self.entry_price, exit_point.price)
        years = elapsed_years(self.price_date, exit_point.date)
        return SymbolReturn(
            symbol=self.symbol,
            weight=self.weight_fraction,
            entry_date=self.price_date,
            entry_price=self.entry_price,
            exit_date=exit_point.date,
            exit_price=exit_point.price,
            total_return=pct,
            annualized_return=annualized_return(pct, years),
        )


@dataclass
class PortfolioState:
    """按买入顺序排列的持仓集合"""
    holdings: dict[str, Holding] = field(default_factory=dict)

    @classmethod
    def equal_weight(
        cls,
        symbols: Iterable[str],
        capital: float,
        when: datetime.date,
        prices: Mapping[str, PricePoint | None],
    ) -> "PortfolioState":
        """等权买入"""
        symbols = list(symbols)
        state = cls()
        if not symbols:
            return state
        weight = 1.0 / len(symbols)
        for symbol in symbols:
            state.add(Holding.open(symbol, capital * weight, when, prices.get(symbol), weight))
        return state

    @property
    def symbols(self) -> tuple[str, ...]:
        return tuple(self.holdings)

    @property
    def total_value(self) -> float:
        return sum(self.holdings[s].market_value for s in sorted(self.holdings))

    def __len__(self) -> int:
        return len(self.holdings)

    def __contains__(self, symbol: object) -> bool:
        return symbol in self.holdings

    def add(self, holding: Holding) -> None:
        if holding.symbol in self.holdings:
            raise ValueError(f"重复持仓: {holding.symbol}")
        self.holdings[holding.symbol] = holding

    def remove(self, symbols: Iterable[str]) -> list[Holding]:
        return [self.holdings.pop(s) for s in list(symbols) if s in self.holdings]

    def mark(self, prices: Mapping[str, PricePoint | None]) -> None:
        for symbol, holding in self.holdings.items():
            holding.mark(prices.get(symbol))

    def refresh_weights(self) -> None:
        """按当前市值重算权重"""
        total = self.total_value
        if total <= 0:
            return
        for holding in self.holdings.values():
            holding.weight_fraction = holding.market_value / total

    def reinvest_pro_rata(self, amount: float) -> None:
        """按当前市值比例把资金追加到现有持仓"""
        total = self.total_value
        if amount <= 0 or total <= 0:
            return
        for symbol in sorted(self.holdings):
            holding = self.holdings[symbol]
            holding.add_capital(amount * holding.market_value / total)
