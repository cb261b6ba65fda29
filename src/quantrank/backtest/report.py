"""
回测报告生成器 (Pydantic v2)

功能：
1. Markdown 格式回测报告
2. JSON 格式数据导出
3. 交易流水 / 分标的收益 / 数据缺口导出为 pandas DataFrame
4. 多回测年限结果对比表

代码风格：Python 3.10+ with Pydantic v2
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from datetime import datetime
from pathlib import Path

import pandas as pd
from pydantic import BaseModel, Field

from quantrank.models import BacktestResult

logger = logging.getLogger(__name__)


def _pct(value: float | None, digits: int = 2) -> str:
    return f"{value:.{digits}f}%" if value is not None else "N/A"


class BacktestReport(BaseModel):
    """
    回测报告（Pydantic v2）

    包含单次回测的全部结果信息
    """
    result: BacktestResult
    strategy_name: str = ""
    description: str = ""
    generated_at: datetime = Field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        """导出为字典"""
        r = self.result
        return {
            "strategy_name": self.strategy_name or r.strategy.value,
            "description": self.description,
            "generated_at": self.generated_at.isoformat(),
            "returns": {
                "total_return": _pct(r.total_return),
                "annualized_return": _pct(r.annualized_return),
                "final_value": round(r.final_value, 6),
            },
            "period": {
                "start_date": r.start_date.isoformat(),
                "end_date": r.end_date.isoformat(),
                "periods_covered": r.periods_covered,
            },
            "trading": {
                "transactions": len(r.transactions),
                "trade_count": r.trade_count,
            },
            "data_quality": {
                "is_complete": r.is_complete,
                "gaps": len(r.gaps),
            },
        }

    # ==================== DataFrame 导出 ====================

    def transactions_frame(self) -> pd.DataFrame:
        """交易流水"""
        columns = ["date", "action", "symbols", "portfolio_value", "kept", "sold", "bought"]
        rows = [
            {
                "date": t.date,
                "action": t.action.value,
                "symbols": ",".join(t.symbols),
                "portfolio_value": t.portfolio_value,
                "kept": ",".join(t.kept),
                "sold": ",".join(t.sold),
                "bought": ",".join(t.bought),
            }
            for t in self.result.transactions
        ]
        return pd.DataFrame(rows, columns=columns)

    def breakdown_frame(self) -> pd.DataFrame:
        """分标的收益"""
        columns = [
            "symbol", "weight", "entry_date", "entry_price",
            "exit_date", "exit_price", "total_return", "annualized_return",
        ]
        rows = [s.model_dump() for s in self.result.per_symbol_breakdown]
        return pd.DataFrame(rows, columns=columns)

    def gaps_frame(self) -> pd.DataFrame:
        """数据缺口"""
        rows = [
            {"date": g.date, "symbol": g.symbol, "kind": g.kind.value, "detail": g.detail}
            for g in self.result.gaps
        ]
        return pd.DataFrame(rows, columns=["date", "symbol", "kind", "detail"])


class ReportGenerator:
    """回测报告生成器"""

    def __init__(self, report: BacktestReport):
        self.report = report

    def generate_markdown(self) -> str:
        """
        生成Markdown格式报告

        Returns:
            Markdown文本
        """
        r = self.report.result
        name = self.report.strategy_name or r.strategy.value

        lines = [
            f"# 回测报告：{name}",
            "",
            f"**生成时间**: {self.report.generated_at.strftime('%Y-%m-%d %H:%M:%S')}",
            "",
        ]
        if self.report.description:
            lines += [f"**策略说明**: {self.report.description}", ""]

        lines += [
            "---",
            "",
            "## 📊 关键指标总览",
            "",
            "| 指标 | 数值 |",
            "|-----|-----|",
            f"| 总收益率 | {_pct(r.total_return)} |",
            f"| 年化收益率 | {_pct(r.annualized_return)} |",
            f"| 期末净值 | {r.final_value:.4f} |",
            f"| 回测区间 | {r.start_date} ~ {r.end_date} |",
            f"| 期数 | {r.periods_covered} |",
            f"| 数据完整 | {'是' if r.is_complete else f'否（{len(r.gaps)} 个缺口）'} |",
            "",
            "---",
            "",
            "## 🔄 交易流水",
            "",
            "| 日期 | 动作 | 持仓 | 净值 | 卖出 | 买入 |",
            "|-----|-----|-----|-----|-----|-----|",
        ]
        for t in r.transactions:
            lines.append(
                f"| {t.date} | {t.action.value} | {', '.join(t.symbols)} | "
                f"{t.portfolio_value:.4f} | {', '.join(t.sold)} | {', '.join(t.bought)} |"
            )

        if r.gaps:
            lines += ["", "---", "", "## ⚠️ 数据缺口", ""]
            for g in r.gaps:
                lines.append(f"- {g.date or '-'} [{g.kind.value}] {g.symbol or '*'}: {g.detail}")

        lines += ["", "---", "", "*报告由 QuantRank 回测系统自动生成*", ""]
        return "\n".join(lines)

    def save_to_file(self, filepath: str | Path, format: str = "markdown") -> Path:
        """
        保存报告到文件

        Args:
            filepath: 文件路径
            format: 格式（markdown/json）
        """
        filepath = Path(filepath)

        match format.lower():
            case "markdown" | "md":
                content = self.generate_markdown()
                filepath = filepath.with_suffix(".md")
            case "json":
                content = json.dumps(self.report.to_dict(), indent=2, ensure_ascii=False)
                filepath = filepath.with_suffix(".json")
            case _:
                raise ValueError(f"不支持的格式: {format}")

        filepath.write_text(content, encoding="utf-8")
        logger.info(f"✅ 报告已保存至: {filepath}")
        return filepath


def horizons_frame(results: Mapping[int, BacktestResult]) -> pd.DataFrame:
    """多回测年限结果对比（行 = 年限）"""
    rows = [
        {
            "horizon_years": years,
            "total_return": result.total_return,
            "annualized_return": result.annualized_return,
            "final_value": result.final_value,
            "gaps": len(result.gaps),
        }
        for years, result in sorted(results.items())
    ]
    return pd.DataFrame(rows, columns=["horizon_years", "total_return", "annualized_return", "final_value", "gaps"])
