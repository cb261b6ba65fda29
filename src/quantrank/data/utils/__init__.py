"""数据层工具"""

from .retry import RetryConfig, RetryStrategy, calculate_delay, retry_async

__all__ = [
    "RetryConfig",
    "RetryStrategy",
    "calculate_delay",
    "retry_async",
]
