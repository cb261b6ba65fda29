"""
权重向量

把用户输入的百分比权重（合计 100）归一化为小数权重（合计 1.0），
并固定每个指标的排名方向。同一次模拟中的所有排名都使用同一个
WeightVector，保证并列处理一致。
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from types import MappingProxyType

from quantrank.constants import DEFAULT_WEIGHTS, METRIC_DIRECTIONS, RankingConstants
from quantrank.errors import ConfigurationError
from quantrank.models import MetricDirection

logger = logging.getLogger(__name__)


class WeightVector:
    """
    不可变的指标权重向量

    Args:
        weights: 指标 -> 小数权重（合计 1.0）
        directions: 指标 -> 排名方向，所有 weights 中的指标都必须有方向

    通常使用 ``WeightVector.from_percentages`` 构造。
    """

    __slots__ = ("_weights", "_directions")

    def __init__(
        self,
        weights: Mapping[str, float],
        directions: Mapping[str, MetricDirection | str],
    ):
        resolved: dict[str, MetricDirection] = {}
        for metric in sorted(weights):
            if metric not in directions:
                raise ConfigurationError(f"指标 {metric} 没有定义排名方向")
            try:
                resolved[metric] = MetricDirection(directions[metric])
            except ValueError as e:
                raise ConfigurationError(
                    f"指标 {metric} 的排名方向无效: {directions[metric]!r}"
                ) from e

        normalized = {metric: float(weights[metric]) for metric in sorted(weights)}
        total = sum(normalized.values())
        if not math.isclose(total, 1.0, abs_tol=RankingConstants.WEIGHT_TOLERANCE / 100):
            raise ConfigurationError(f"小数权重合计必须为 1.0，实际为 {total:.6f}")

        self._weights = MappingProxyType(normalized)
        self._directions = MappingProxyType(resolved)

    @classmethod
    def from_percentages(
        cls,
        percentages: Mapping[str, float],
        directions: Mapping[str, MetricDirection | str] | None = None,
    ) -> "WeightVector":
        """
        从百分比权重构造

        Args:
            percentages: 指标 -> 百分比权重，合计必须为 100（误差 0.01）
            directions: 额外/覆盖的指标方向，默认使用内置指标表

        Raises:
            ConfigurationError: 权重为负、非有限数、合计不为 100、指标方向未知
        """
        if not percentages:
            raise ConfigurationError("权重不能为空")

        for metric, pct in percentages.items():
            if pct is None or not math.isfinite(float(pct)):
                raise ConfigurationError(f"指标 {metric} 的权重无效: {pct!r}")
            if float(pct) < 0:
                raise ConfigurationError(f"指标 {metric} 的权重不能为负: {pct}")

        total = sum(float(p) for p in percentages.values())
        if abs(total - RankingConstants.WEIGHT_TOTAL) > RankingConstants.WEIGHT_TOLERANCE:
            raise ConfigurationError(f"权重合计必须为 100，实际为 {total:.4f}")

        merged_directions: dict[str, MetricDirection | str] = dict(METRIC_DIRECTIONS)
        if directions:
            merged_directions.update(directions)

        fractions = {metric: float(pct) / total for metric, pct in percentages.items()}
        return cls(fractions, merged_directions)

    @classmethod
    def default(cls) -> "WeightVector":
        """默认权重：五个核心指标各 20%，其余已知指标权重为 0（只展示排名）"""
        percentages = {metric: 0.0 for metric in METRIC_DIRECTIONS}
        percentages.update(DEFAULT_WEIGHTS)
        return cls.from_percentages(percentages)

    # ==================== 只读访问 ====================

    @property
    def weights(self) -> Mapping[str, float]:
        return self._weights

    @property
    def directions(self) -> Mapping[str, MetricDirection]:
        return self._directions

    @property
    def metrics(self) -> tuple[str, ...]:
        """按名称排序的指标列表"""
        return tuple(self._weights)

    def weight(self, metric: str) -> float:
        return self._weights.get(metric, 0.0)

    def direction(self, metric: str) -> MetricDirection:
        return self._directions[metric]

    def as_percentages(self) -> dict[str, float]:
        return {metric: w * 100 for metric, w in self._weights.items()}

    def canonical(self) -> dict[str, float]:
        """用于指纹计算的规范形式（键有序，保留 10 位小数）"""
        return {metric: round(w, 10) for metric, w in self._weights.items()}

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, WeightVector):
            return NotImplemented
        return (
            dict(self._weights) == dict(other._weights)
            and dict(self._directions) == dict(other._directions)
        )

    def __hash__(self) -> int:
        return hash((tuple(self._weights.items()), tuple(self._directions.items())))

    def __repr__(self) -> str:
        active = ", ".join(
            f"{metric}={w:.2%}" for metric, w in self._weights.items() if w > 0
        )
        return f"WeightVector({active})"
