"""
滚动检查点模拟器

在调用方给定的检查点序列上运行（不假设固定的年度节奏）：
1. 每个检查点重新排名，比较新的前 N 名与当前持仓，只生成增量的买入/卖出集合
2. 到下一个检查点之间的区间收益按等权计算，区间内每 rebalance_months 个月再平衡一次
3. 各区间收益几何复利，最终按首尾检查点的实际年数给出一个年化收益

流水：首个检查点 BUY，之后有变化记 REBALANCE、无变化记 HOLD，
最后一个检查点 SELL_ALL。
"""

from __future__ import annotations

import logging
from itertools import pairwise

from quantrank.backtest.base import BaseSimulator, symbol_return
from quantrank.models import ActionType, BacktestResult, Strategy
from quantrank.utils.date_utils import elapsed_years, rebalance_dates

logger = logging.getLogger(__name__)


class RollingRebalanceSimulator(BaseSimulator):
    """滚动检查点增量换仓"""

    strategy = Strategy.ROLLING_REBALANCE

    async def _simulate(self) -> BacktestResult:
        checkpoints = list(self.params.checkpoint_dates)
        value = self.params.initial_value
        held: list[str] = []

        for start, end in pairwise(checkpoints):
            ranked = await self._ranked(start)
            top = self._top(ranked)
            if not top:
                # 排名缺失：沿用上一期的持仓
                top = list(held)

            sells = [s for s in held if s not in top]
            buys = [s for s in top if s not in held]
            kept = [s for s in top if s in held]

            if not held and top:
                action = ActionType.BUY
            elif sells or buys:
                action = ActionType.REBALANCE
            else:
                action = ActionType.HOLD
            self._record(action, start, value, symbols=top, kept=kept, sold=sells, bought=buys)

            segment = rebalance_dates(start, end, self.params.rebalance_months)
            path, prices = await self._equal_weight_path(top, segment, value)
            value = path[-1]

            weight = 1.0 / len(top) if top else 0.0
            for symbol in top:
                self.breakdown.append(
                    symbol_return(symbol, weight, prices[start].get(symbol), prices[end].get(symbol))
                )

            logger.debug(
                f"📅 区间 {start} -> {end}: 买入 {buys} 卖出 {sells}, 净值 {value:.4f}"
            )
            held = top

        final_date = checkpoints[-1]
        if held:
            self._record(ActionType.SELL_ALL, final_date, value, symbols=held, sold=held)
        else:
            self._record(ActionType.HOLD, final_date, value)

        return self._build_result(
            start=checkpoints[0],
            end=final_date,
            periods=len(checkpoints) - 1,
            final_value=value,
            years=elapsed_years(checkpoints[0], final_date),
        )
