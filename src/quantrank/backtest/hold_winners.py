"""
保留赢家模拟器（部分换仓）

参数：持仓数量 N，保留阈值 K >= N。

流程：
1. 首期：等权买入前 N 名（BUY）
2. 之后每年：
   - 重新对全部股票池排名，按当日价格估值
   - 当前排名 <= K 的持仓保留（份额不变，权重随价格漂移）
   - 其余持仓（包括不在排名中的）卖出，资金进入资金池
   - 资金池等权买入 N - 保留数 个未被保留的最高排名标的
   - 有卖出或买入记 REBALANCE，否则记 HOLD
3. 末期：全部卖出（SELL_ALL），按名义年限 H 年化

K == N 时，能保留的持仓必然仍在前 N 名，策略退化为年度全换仓。
模拟器在每次换仓时用保留规则本身（_select）重新选出新持仓，验证它与
前 N 名一致，然后走与年度全换仓完全相同的路径，保证两者的交易流水一致。

教学要点：
1. 份额记账：保留的持仓不做再平衡
2. 资金池：卖出所得只用于买入替补
3. 退化情形的显式验证
"""

from __future__ import annotations

import datetime
import logging

from quantrank.backtest.base import BaseSimulator
from quantrank.backtest.portfolio import Holding, PortfolioState
from quantrank.errors import SimulationInvariantError
from quantrank.models import ActionType, BacktestResult, RankedSnapshot, Strategy
from quantrank.utils.date_utils import annual_checkpoints

logger = logging.getLogger(__name__)


class HoldWinnersSimulator(BaseSimulator):
    """保留赢家（部分换仓）"""

    strategy = Strategy.HOLD_WINNERS

    @property
    def keep_threshold(self) -> int:
        return self.params.keep_threshold

    async def _simulate(self) -> BacktestResult:
        horizon = self.params.horizon_years
        dates = annual_checkpoints(self.params.reference_date, horizon)

        if self.keep_threshold == self.params.portfolio_size:
            logger.info(
                f"🔁 keep_threshold == portfolio_size == {self.keep_threshold}，"
                f"按年度全换仓执行并逐期验证"
            )
            final_value = await self._run_full_turnover(
                dates,
                self.params.initial_value,
                on_rebalance=self._verify_collapse,
            )
        else:
            final_value = await self._run_partial_turnover(dates)

        return self._build_result(
            start=dates[0],
            end=dates[-1],
            periods=horizon,
            final_value=final_value,
            years=horizon,
        )

    # ==================== 部分换仓 ====================

    async def _run_partial_turnover(self, dates: list[datetime.date]) -> float:
        value = self.params.initial_value
        portfolio: PortfolioState | None = None

        for when in dates[:-1]:
            ranked = await self._ranked(when)

            if portfolio is None or not portfolio.holdings:
                # 首期，或之前一直没有建仓
                top = self._top(ranked)
                if not top:
                    self._record(ActionType.HOLD, when, value)
                    continue
                portfolio = await self._enter(top, when, value)
                continue

            await self._step(portfolio, ranked, when)

        if portfolio is not None and portfolio.holdings:
            value = await self._exit(portfolio, dates[-1])
        else:
            self._record(ActionType.HOLD, dates[-1], value)
        return value

    async def _step(
        self,
        portfolio: PortfolioState,
        ranked: list[RankedSnapshot],
        when: datetime.date,
    ) -> None:
        """单个年度检查点：估值、保留/卖出、用资金池买入替补"""
        prices = await self._prices_at(portfolio.symbols, when)
        portfolio.mark(prices)

        if not ranked:
            # 排名缺失：维持现有持仓
            portfolio.refresh_weights()
            self._record(
                ActionType.HOLD,
                when,
                portfolio.total_value,
                symbols=portfolio.symbols,
                kept=portfolio.symbols,
            )
            return

        kept, sold, candidates = self._select(portfolio.symbols, ranked)

        pool = 0.0
        for holding in portfolio.remove(sold):
            pool += holding.market_value
            self.breakdown.append(holding.to_symbol_return(prices.get(holding.symbol)))

        bought: list[str] = []
        if pool > 0:
            if candidates:
                bought = await self._buy_replacements(portfolio, candidates, pool, when)
            else:
                logger.info(f"ℹ️ {when} 没有可买入的替补，资金按市值比例追加到保留持仓")
                portfolio.reinvest_pro_rata(pool)

        portfolio.refresh_weights()
        action = ActionType.REBALANCE if sold or bought else ActionType.HOLD
        self._record(
            action,
            when,
            portfolio.total_value,
            symbols=portfolio.symbols,
            kept=kept,
            sold=sold,
            bought=bought,
        )
        if sold:
            logger.debug(f"🔄 {when} 保留 {kept} 卖出 {sold} 买入 {bought}")

    def _select(
        self,
        held: list[str],
        ranked: list[RankedSnapshot],
    ) -> tuple[list[str], list[str], list[str]]:
        """
        按保留规则划分持仓

        Returns:
            (保留, 卖出, 替补候选)：排名 <= K 的持仓保留，其余卖出；
            替补为未被保留的最高排名标的，数量补足到 N
        """
        rank_of = {r.symbol: r.overall_rank for r in ranked}
        kept = [s for s in held if s in rank_of and rank_of[s] <= self.keep_threshold]
        sold = [s for s in held if s not in kept]
        need = max(self.params.portfolio_size - len(kept), 0)
        candidates = [r.symbol for r in ranked if r.symbol not in kept][:need]
        return kept, sold, candidates

    async def _buy_replacements(
        self,
        portfolio: PortfolioState,
        candidates: list[str],
        pool: float,
        when: datetime.date,
    ) -> list[str]:
        prices = await self._prices_at(candidates, when)
        allocation = pool / len(candidates)
        for symbol in candidates:
            portfolio.add(Holding.open(symbol, allocation, when, prices.get(symbol), 0.0))
        return candidates

    # ==================== 退化验证 ====================

    def _verify_collapse(
        self,
        portfolio: PortfolioState,
        ranked: list[RankedSnapshot],
        when: datetime.date,
    ) -> None:
        """
        K == N 时，保留规则选出的新持仓（保留 + 替补）必须恰好是新的前 N 名，
        否则部分换仓与全换仓的结果不同，退化不成立
        """
        kept, _, candidates = self._select(portfolio.symbols, ranked)
        partial = set(kept) | set(candidates)
        top = set(self._top(ranked))
        if partial != top:
            raise SimulationInvariantError(
                f"{when}: 保留规则得到 {sorted(partial)}，前 "
                f"{self.params.portfolio_size} 名为 {sorted(top)}，K == N 的退化不成立"
            )
