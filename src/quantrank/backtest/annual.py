"""
年度全换仓模拟器

从 H 年前开始，每年：
1. 对当年的股票池快照排名，等权买入前 N 名（BUY）
2. 一年后按当日价格全部卖出（SELL_ALL）
3. 组合净值 *= 1 + Σ w_i * (卖出价_i - 买入价_i) / 买入价_i

缺价标的按 0 收益计入（权重不再分配给其他标的），
因此只要有标的缺价，组合净值会略微低估。

年化收益按名义年限 H 计算。
"""

from __future__ import annotations

import logging

from quantrank.backtest.base import BaseSimulator
from quantrank.models import BacktestResult, Strategy
from quantrank.utils.date_utils import annual_checkpoints

logger = logging.getLogger(__name__)


class AnnualRebalanceSimulator(BaseSimulator):
    """年度全换仓"""

    strategy = Strategy.ANNUAL_REBALANCE

    async def _simulate(self) -> BacktestResult:
        horizon = self.params.horizon_years
        dates = annual_checkpoints(self.params.reference_date, horizon)

        final_value = await self._run_full_turnover(dates, self.params.initial_value)

        return self._build_result(
            start=dates[0],
            end=dates[-1],
            periods=horizon,
            final_value=final_value,
            years=horizon,
        )
