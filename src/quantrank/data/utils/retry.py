"""
重试工具

为外部数据获取提供退避重试：
1. 指数 / 线性 / 固定 / 立即 四种退避策略
2. 错误分类：参数类错误快速失败，网络类错误退避重试
3. 延迟上限控制
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from functools import wraps
from typing import Any, Type

logger = logging.getLogger(__name__)


# ==================== 重试策略配置 ====================

class RetryStrategy(Enum):
    """重试策略"""
    EXPONENTIAL = "exponential"  # 指数退避
    LINEAR = "linear"            # 线性退避
    FIXED = "fixed"              # 固定延迟
    IMMEDIATE = "immediate"      # 立即重试


@dataclass
class RetryConfig:
    """重试配置"""
    max_attempts: int = 3              # 最大尝试次数（含首次）
    base_delay: float = 1.0            # 基础延迟（秒）
    max_delay: float = 60.0            # 最大延迟（秒）
    exponential_base: float = 2.0      # 指数退避基数
    strategy: RetryStrategy = RetryStrategy.EXPONENTIAL

    # 可重试的异常类型
    retriable_exceptions: tuple[Type[BaseException], ...] = (
        ConnectionError,
        TimeoutError,
        asyncio.TimeoutError,
    )

    # 不可重试的异常类型 (快速失败)
    non_retriable_exceptions: tuple[Type[BaseException], ...] = (
        ValueError,
        TypeError,
        KeyError,
    )

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts 必须 >= 1: {self.max_attempts}")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("重试延迟不能为负")


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """
    计算第 attempt 次失败后的等待时间

    - EXPONENTIAL: base * exponential_base ^ (attempt - 1)
    - LINEAR: base * attempt
    - FIXED: base
    - IMMEDIATE: 0
    """
    if config.strategy == RetryStrategy.EXPONENTIAL:
        delay = config.base_delay * (config.exponential_base ** (attempt - 1))
    elif config.strategy == RetryStrategy.LINEAR:
        delay = config.base_delay * attempt
    elif config.strategy == RetryStrategy.FIXED:
        delay = config.base_delay
    else:  # IMMEDIATE
        delay = 0.0

    return min(delay, config.max_delay)


# ==================== 重试装饰器 ====================

def retry_async(
    config: RetryConfig | None = None,
) -> Callable[[Callable[..., Awaitable[Any]]], Callable[..., Awaitable[Any]]]:
    """
    异步函数重试装饰器

    使用示例：
        @retry_async(RetryConfig(max_attempts=3))
        async def fetch_prices(symbol):
            ...

    不可重试的异常立即抛出；其余异常按策略退避重试，
    全部失败后抛出最后一次的异常。
    """
    if config is None:
        config = RetryConfig()

    def decorator(func: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[Any]]:
        name = getattr(func, "__name__", repr(func))

        @wraps(func)
        async def wrapper(*args, **kwargs) -> Any:
            last_exception: BaseException | None = None

            for attempt in range(1, config.max_attempts + 1):
                try:
                    return await func(*args, **kwargs)

                except config.non_retriable_exceptions as e:
                    logger.error(f"❌ 不可重试的异常: {type(e).__name__}: {e}")
                    raise

                except config.retriable_exceptions as e:
                    last_exception = e
                    if attempt >= config.max_attempts:
                        logger.error(f"❌ {name} 尝试{config.max_attempts}次后仍失败")
                        break

                    delay = calculate_delay(attempt, config)
                    logger.warning(
                        f"⚠️ {name} 第{attempt}次失败: {type(e).__name__}: {e}, "
                        f"{delay:.1f}秒后重试"
                    )
                    await asyncio.sleep(delay)

                except Exception as e:
                    # 未预期的异常，记录但仍重试
                    last_exception = e
                    if attempt >= config.max_attempts:
                        logger.error(
                            f"❌ {name} 尝试{config.max_attempts}次后仍失败: "
                            f"{type(e).__name__}: {e}"
                        )
                        break

                    delay = calculate_delay(attempt, config)
                    logger.warning(
                        f"⚠️ {name} 遇到未预期异常: {type(e).__name__}: {e}, "
                        f"{delay:.1f}秒后重试"
                    )
                    await asyncio.sleep(delay)

            assert last_exception is not None
            raise last_exception

        return wrapper
    return decorator
