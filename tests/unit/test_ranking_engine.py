"""
Unit tests for the ranking engine

测试覆盖：
1. 单指标密集排名（并列、方向、无效值）
2. 多重上市合并
3. 加权综合排序与确定性
4. 最小值过滤
5. GARP 条件筛选与打分
"""
import math

import pytest

from conftest import snap
from quantrank.constants import RankingConstants
from quantrank.models import MetricDirection
from quantrank.ranking.engine import (
    GARPCriteria,
    RankingEngine,
    filter_by_garp,
    filter_by_min,
    garp_score,
    merge_listings,
    passes_garp,
    rank,
    rank_by_metric,
)
from quantrank.ranking.weights import WeightVector


class TestRankByMetric:
    """测试单指标排名"""

    def test_dense_rank_skips_after_tie(self):
        """[10, 10, 7] 越大越好 -> [1, 1, 3]"""
        snapshots = [snap("A", m=10), snap("B", m=10), snap("C", m=7)]
        ranks = rank_by_metric(snapshots, "m", MetricDirection.HIGHER_IS_BETTER)
        assert ranks == {"A": 1, "B": 1, "C": 3}

    def test_invalid_value_gets_worst_rank_higher_is_better(self):
        snapshots = [snap("A", m=5), snap("B", m=None), snap("C", m=3)]
        ranks = rank_by_metric(snapshots, "m", MetricDirection.HIGHER_IS_BETTER)
        assert ranks == {"A": 1, "C": 2, "B": 3}

    def test_invalid_value_gets_worst_rank_lower_is_better(self):
        snapshots = [snap("A", m=5), snap("B", m=None), snap("C", m=3)]
        ranks = rank_by_metric(snapshots, "m", MetricDirection.LOWER_IS_BETTER)
        assert ranks == {"C": 1, "A": 2, "B": 3}

    def test_nan_inf_and_missing_all_tied_for_worst(self):
        snapshots = [
            snap("A", m=1.0),
            snap("B", m=math.nan),
            snap("C", m=math.inf),
            snap("D"),
        ]
        ranks = rank_by_metric(snapshots, "m", "higher")
        assert ranks["A"] == 1
        assert ranks["B"] == ranks["C"] == ranks["D"] == 2

    def test_equal_values_equal_rank(self):
        """排名是全预序：相同数值相同名次"""
        snapshots = [snap(s, m=v) for s, v in zip("ABCDE", [3, 1, 3, 2, 1])]
        ranks = rank_by_metric(snapshots, "m", "lower")
        assert ranks["B"] == ranks["E"] == 1
        assert ranks["D"] == 3
        assert ranks["A"] == ranks["C"] == 4

    def test_independent_of_input_order(self):
        snapshots = [snap("A", m=2), snap("B", m=9), snap("C", m=2), snap("D", m=None)]
        forward = rank_by_metric(snapshots, "m", "higher")
        backward = rank_by_metric(list(reversed(snapshots)), "m", "higher")
        assert forward == backward

    def test_empty(self):
        assert rank_by_metric([], "m", "higher") == {}


class TestMergeListings:
    """测试多重上市合并"""

    def test_dual_class_merged_into_primary(self):
        snapshots = [
            snap("GOOGL", market_cap=2000.0, adtv=30.0, pe_ratio=25.0),
            snap("GOOG", market_cap=2100.0, adtv=20.0, pe_ratio=24.0),
            snap("MSFT", market_cap=3000.0, adtv=40.0),
        ]
        merged = merge_listings(snapshots)

        assert [s.symbol for s in merged] == ["GOOG", "MSFT"]
        goog = merged[0]
        assert goog.metrics["adtv"] == 50.0
        assert goog.metrics["market_cap"] == 2100.0
        assert goog.metrics["pe_ratio"] == 24.0
        assert goog.merged_from == ("GOOG", "GOOGL")

    def test_secondary_listing_alone_is_renamed(self):
        merged = merge_listings([snap("GOOGL", adtv=5.0)])
        assert merged[0].symbol == "GOOG"
        assert merged[0].metrics["adtv"] == 5.0

    def test_missing_liquidity_values_ignored(self):
        merged = merge_listings(
            [snap("GOOG", adtv=None), snap("GOOGL", adtv=7.0)]
        )
        assert merged[0].metrics["adtv"] == 7.0

    def test_custom_canonical_map(self):
        merged = merge_listings(
            [snap("BRK.A", adtv=1.0, roic=9.0), snap("BRK.B", adtv=2.0, roic=8.0)],
            canonical_map={"BRK.A": "BRK.B", "BRK.B": "BRK.B"},
        )
        assert len(merged) == 1
        assert merged[0].symbol == "BRK.B"
        assert merged[0].metrics == {"adtv": 3.0, "roic": 8.0}


class TestEvaluate:
    """测试加权综合排序"""

    @pytest.fixture
    def universe(self):
        return [
            snap("AAA", market_cap=100.0, price_to_sales=5.0),
            snap("BBB", market_cap=300.0, price_to_sales=9.0),
            snap("CCC", market_cap=200.0, price_to_sales=1.0),
            snap("DDD", market_cap=None, price_to_sales=2.0),
        ]

    def test_weighted_score_and_overall_rank(self, universe):
        weights = WeightVector.from_percentages({"market_cap": 50, "price_to_sales": 50})
        ranked = rank(universe, weights)

        by_symbol = {r.symbol: r for r in ranked}
        assert by_symbol["CCC"].ranks == {"market_cap": 2, "price_to_sales": 1}
        assert by_symbol["CCC"].weighted_score == pytest.approx(1.5)
        assert by_symbol["DDD"].ranks == {"market_cap": 4, "price_to_sales": 2}

        assert [r.symbol for r in ranked] == ["CCC", "BBB", "AAA", "DDD"]
        assert [r.overall_rank for r in ranked] == [1, 2, 3, 4]

    def test_zero_weight_metric_ranked_but_not_scored(self, universe):
        weights = WeightVector.from_percentages({"market_cap": 100, "price_to_sales": 0})
        ranked = rank(universe, weights)

        assert [r.symbol for r in ranked] == ["BBB", "CCC", "AAA", "DDD"]
        assert ranked[0].ranks["price_to_sales"] == 4
        assert ranked[0].weighted_score == pytest.approx(1.0)

    def test_score_ties_broken_by_symbol(self):
        universe = [snap("ZZZ", market_cap=1.0), snap("AAA", market_cap=1.0)]
        weights = WeightVector.from_percentages({"market_cap": 100})
        assert [r.symbol for r in rank(universe, weights)] == ["AAA", "ZZZ"]

    def test_idempotent_and_order_independent(self, universe):
        weights = WeightVector.default()
        first = rank(universe, weights)
        second = rank(universe, weights)
        shuffled = rank(list(reversed(universe)), weights)

        assert first == second
        assert [r.symbol for r in first] == [r.symbol for r in shuffled]

    def test_different_weights_do_not_interfere(self, universe):
        engine = RankingEngine()
        cap = WeightVector.from_percentages({"market_cap": 100})
        ps = WeightVector.from_percentages({"price_to_sales": 100})

        assert engine.top(universe, cap, 1)[0].symbol == "BBB"
        assert engine.top(universe, ps, 1)[0].symbol == "CCC"
        assert engine.top(universe, cap, 1)[0].symbol == "BBB"

    def test_merge_applied_before_ranking(self):
        universe = [
            snap("GOOG", adtv=10.0),
            snap("GOOGL", adtv=10.0),
            snap("MSFT", adtv=15.0),
        ]
        ranked = rank(universe, WeightVector.from_percentages({"adtv": 100}))
        assert [r.symbol for r in ranked] == ["GOOG", "MSFT"]

    def test_empty_universe(self):
        assert rank([], WeightVector.default()) == []


class TestFilterByMin:
    """测试最小值过滤"""

    def test_filters_below_minimum_and_missing(self):
        snapshots = [snap("A", market_cap=5e9), snap("B", market_cap=1e9), snap("C")]
        kept = filter_by_min(snapshots, "market_cap", 2e9)
        assert [s.symbol for s in kept] == ["A"]


class TestGARPScreen:
    """测试 GARP 筛选与打分"""

    @pytest.fixture
    def candidates(self):
        return [
            snap("A", pe_ratio=20.0, peg_ratio=1.5, debt_to_equity=0.5, sales_growth=20.0,
                 roic=15.0, operating_margin=25.0, fcf_yield=4.0),
            snap("B", pe_ratio=25.0, roic=12.0),
            snap("C", pe_ratio=40.0),
            snap("D", market_cap=1e9),
            snap("E", pe_ratio=0.0, roic=8.0),
            snap("F", debt_to_equity=0.0, roic=20.0),
        ]

    def test_score_averages_components(self, candidates):
        scores = {s.symbol: garp_score(s) for s in candidates}
        assert scores["A"] == pytest.approx((20 + 15 + 2.5 - 10 - 15 - 25 - 8) / 7)
        assert scores["B"] == pytest.approx(6.5)
        assert scores["F"] == pytest.approx(-10.0)

    def test_score_without_data(self):
        assert garp_score(snap("D", market_cap=1e9)) == RankingConstants.GARP_NO_DATA_SCORE

    def test_filter_and_sort(self, candidates):
        """C 市盈率过高、D 没有数据、E 的 ROIC 不达标；结果按分数升序"""
        kept = filter_by_garp(candidates)

        assert [s.symbol for s in kept] == ["F", "A", "B"]
        assert kept[0].metrics["garp_score"] == pytest.approx(-10.0)
        assert "garp_score" not in candidates[5].metrics

    def test_zero_values_are_not_checked(self, candidates):
        """值为 0 视为没有数据，不触发条件判断"""
        assert passes_garp(candidates[5], GARPCriteria(max_debt_to_equity=-1.0))
        assert not passes_garp(candidates[4], GARPCriteria())

    def test_custom_criteria_and_limit(self, candidates):
        relaxed = filter_by_garp(candidates, GARPCriteria(max_pe=45.0))
        assert [s.symbol for s in relaxed] == ["F", "A", "B", "C"]

        assert [s.symbol for s in filter_by_garp(candidates, GARPCriteria(limit=1))] == ["F"]

    def test_score_usable_as_ranking_metric(self, candidates):
        weights = WeightVector.from_percentages({"garp_score": 100})
        ranked = rank(filter_by_garp(candidates), weights)
        assert [r.symbol for r in ranked] == ["F", "A", "B"]
