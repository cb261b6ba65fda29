"""
QuantRank 常量定义
"""

# 指标方向：higher = 数值越大越好，lower = 数值越小越好
METRIC_DIRECTIONS = {
    # 规模与流动性
    "market_cap": "higher",        # 市值
    "adtv": "higher",              # 日均成交额

    # 估值
    "price_to_sales": "lower",     # 市销率
    "pe_ratio": "lower",           # 市盈率
    "peg_ratio": "lower",          # PEG

    # 成长
    "sales_growth": "higher",      # 营收增长
    "revenue_cagr": "higher",      # 营收复合增长率
    "eps_growth": "higher",        # EPS 增长
    "fcf_growth": "higher",        # 自由现金流增长

    # 质量
    "quality_score": "higher",     # 第三方质量评分（100 = 最好）
    "operating_margin": "higher",  # 营业利润率
    "roic": "higher",              # 投入资本回报率
    "fcf_yield": "higher",         # 自由现金流收益率
    "debt_to_equity": "lower",     # 负债权益比

    # 派生
    "garp_score": "lower",         # GARP 综合分
}

# GARP 筛选写入快照的综合分指标
GARP_SCORE_METRIC = "garp_score"

# 默认权重（百分比，合计 100）
DEFAULT_WEIGHTS = {
    "market_cap": 20.0,
    "adtv": 20.0,
    "price_to_sales": 20.0,
    "sales_growth": 20.0,
    "quality_score": 20.0,
}

# 流动性类指标：合并多重上市时按上市代码求和
LIQUIDITY_METRICS = ("adtv",)

# 同一发行人的多个上市代码 -> 主代码
CANONICAL_LISTINGS = {
    "GOOGL": "GOOG",
    "GOOG": "GOOG",
}


class RankingConstants:
    """排名常量"""

    WEIGHT_TOTAL = 100.0           # 百分比权重合计
    WEIGHT_TOLERANCE = 0.01        # 合计允许误差（百分点）
    DEFAULT_TOP_N = 10
    GARP_NO_DATA_SCORE = 999999.0  # 没有任何 GARP 分项时的分数


class BacktestConstants:
    """回测系统常量"""

    # 默认回测参数
    DEFAULT_PORTFOLIO_SIZE = 10    # 持仓数量 N
    DEFAULT_KEEP_THRESHOLD = 20    # 保留阈值 K
    DEFAULT_HORIZON_YEARS = 5      # 回测年限 H
    DEFAULT_REBALANCE_MONTHS = 3   # 季度再平衡
    DEFAULT_INITIAL_VALUE = 1.0    # 组合初始净值

    # 年化计算参数
    DAYS_PER_YEAR = 365.25
    MULTI_HORIZON_YEARS = (1, 2, 3, 4, 5)


class CacheConstants:
    """结果缓存常量"""

    DEFAULT_TTL_DAYS = 7
    DEFAULT_COLLECTION = "backtest_results"
