"""
买入持有 + 季度再平衡模拟器

对"今天"的前 N 名回看过去 H 年：
1. 从 H 年前开始等权持有，每 rebalance_months 个月再平衡回等权
2. 每个子区间：净值 *= 1 + Σ (1/N) * 区间收益_i，只累加首尾都有价格的标的
3. 年化按实际经过年数计算
4. 同时给出每个标的从起点到最新价格的买入持有收益
"""

from __future__ import annotations

import logging

from quantrank.backtest.base import BaseSimulator, symbol_return
from quantrank.models import ActionType, BacktestResult, GapKind, Strategy
from quantrank.utils.date_utils import elapsed_years, rebalance_dates, years_before

logger = logging.getLogger(__name__)


class QuarterlyRebalanceSimulator(BaseSimulator):
    """买入持有 + 定期等权再平衡"""

    strategy = Strategy.QUARTERLY_REBALANCE

    async def _simulate(self) -> BacktestResult:
        as_of = self.params.reference_date
        start = years_before(as_of, self.params.horizon_years)
        dates = rebalance_dates(start, as_of, self.params.rebalance_months)

        ranked = await self._ranked(as_of)
        symbols = self._top(ranked)

        path, prices = await self._equal_weight_path(symbols, dates, self.params.initial_value)

        if symbols:
            self._record(ActionType.BUY, dates[0], path[0], symbols=symbols, bought=symbols)
            for when, value in zip(dates[1:-1], path[1:-1]):
                self._record(ActionType.REBALANCE, when, value, symbols=symbols, kept=symbols)
            self._record(ActionType.SELL_ALL, dates[-1], path[-1], symbols=symbols, sold=symbols)
        else:
            self._record(ActionType.HOLD, dates[-1], path[-1])

        if symbols and not any(
            prices[dates[0]].get(s) is not None for s in symbols
        ):
            self._gap(dates[0], GapKind.PRICE, "起点没有任何标的有价格")

        weight = 1.0 / len(symbols) if symbols else 0.0
        for symbol in symbols:
            self.breakdown.append(
                symbol_return(symbol, weight, prices[dates[0]].get(symbol), prices[dates[-1]].get(symbol))
            )

        return self._build_result(
            start=dates[0],
            end=dates[-1],
            periods=len(dates) - 1,
            final_value=path[-1],
            years=elapsed_years(dates[0], dates[-1]),
        )
