"""
QuantRank 异常定义

三类错误：
1. ConfigurationError: 参数非法，计算开始前直接失败
2. UpstreamUnavailableError: 外部数据源出错或超时
3. MissingDataError: 单个标的缺少指标、价格或整份快照

模拟器不会因为 2、3 中止，而是记录为 DataGap 继续运行。
"""


class QuantRankError(Exception):
    """QuantRank 基础异常"""
    pass


class ConfigurationError(QuantRankError, ValueError):
    """配置错误（权重合计、阈值、回测年限等）"""
    pass


class UpstreamUnavailableError(QuantRankError):
    """外部数据源不可用"""

    def __init__(self, key: str, message: str = ""):
        self.key = key
        super().__init__(f"上游数据源不可用 [{key}]: {message}" if message else f"上游数据源不可用 [{key}]")


class MissingDataError(QuantRankError, LookupError):
    """缺失数据"""

    def __init__(self, symbol: str | None, detail: str):
        self.symbol = symbol
        self.detail = detail
        super().__init__(f"{symbol or '*'}: {detail}")


class SimulationInvariantError(QuantRankError, RuntimeError):
    """模拟过程中发现不变式被破坏"""
    pass
