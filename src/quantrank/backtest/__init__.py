"""
QuantRank 回测系统

支持四种再平衡策略：
1. 年度全换仓（annual_rebalance）
2. 保留赢家部分换仓（hold_winners）
3. 滚动检查点增量换仓（rolling_rebalance）
4. 买入持有 + 季度再平衡（quarterly_rebalance）

教学要点：
1. 模板方法模式组织模拟器
2. 缺失数据记录为缺口而不中断回测
3. 收益计算与价格解析分离
"""

from .annual import AnnualRebalanceSimulator
from .base import BaseSimulator, SimulationParams
from .engine import BacktestEngine, SIMULATORS, simulate, simulate_horizons
from .hold_winners import HoldWinnersSimulator
from .portfolio import Holding, PortfolioState
from .quarterly import QuarterlyRebalanceSimulator
from .report import BacktestReport, ReportGenerator, horizons_frame
from .rolling import RollingRebalanceSimulator

__all__ = [
    "AnnualRebalanceSimulator",
    "BacktestEngine",
    "BacktestReport",
    "BaseSimulator",
    "Holding",
    "HoldWinnersSimulator",
    "PortfolioState",
    "QuarterlyRebalanceSimulator",
    "ReportGenerator",
    "RollingRebalanceSimulator",
    "SIMULATORS",
    "SimulationParams",
    "horizons_frame",
    "simulate",
    "simulate_horizons",
]
