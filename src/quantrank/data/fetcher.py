"""
限速异步获取能力 (FetchCapability)

所有对外部数据源（价格历史、基本面快照、质量评分）的调用都经过这里：
1. 并发控制（Semaphore）
2. 请求限速（每秒最大请求数）
3. 单次调用超时（asyncio.wait_for）
4. 退避重试（RetryConfig）
5. 错误隔离：批量获取中一个标的失败不影响其他标的

模拟器只依赖注入进来的 FetchCapability，本身不设超时。

教学要点：
1. 批量操作模式
2. 令牌间隔式限速
3. 结果按代码排序合并，保证并发下结果确定
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Iterable
from typing import Any, TypeVar

from quantrank.data.utils.retry import RetryConfig, RetryStrategy, retry_async
from quantrank.errors import UpstreamUnavailableError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class FetchCapability:
    """
    限速异步获取能力

    Args:
        max_concurrency: 最大并发数
        requests_per_second: 每秒最大请求数，None 表示不限速
        timeout: 单次调用超时（秒），None 表示不设超时
        retry_config: 重试配置
    """

    def __init__(
        self,
        max_concurrency: int = 5,
        requests_per_second: float | None = None,
        timeout: float | None = 30.0,
        retry_config: RetryConfig | None = None,
    ):
        if max_concurrency < 1:
            raise ValueError(f"max_concurrency 必须 >= 1: {max_concurrency}")
        if requests_per_second is not None and requests_per_second <= 0:
            raise ValueError(f"requests_per_second 必须 > 0: {requests_per_second}")

        self.max_concurrency = max_concurrency
        self.requests_per_second = requests_per_second
        self.timeout = timeout
        self.retry_config = retry_config or RetryConfig()

        self._semaphore: asyncio.Semaphore | None = None
        self._pace_lock: asyncio.Lock | None = None
        self._next_slot = 0.0

        # 统计信息
        self.stats = {
            "total_requests": 0,
            "successful_requests": 0,
            "failed_requests": 0,
            "total_time": 0.0,
        }

    @classmethod
    def from_settings(cls, settings: Any | None = None) -> "FetchCapability":
        """根据 QuantRankSettings 构造"""
        if settings is None:
            from quantrank.settings import get_settings

            settings = get_settings()
        return cls(
            max_concurrency=settings.fetch_max_concurrency,
            requests_per_second=settings.fetch_requests_per_second,
            timeout=settings.fetch_timeout,
            retry_config=RetryConfig(
                max_attempts=settings.retry_max_attempts,
                base_delay=settings.retry_base_delay,
                max_delay=settings.retry_max_delay,
            ),
        )

    @classmethod
    def immediate(cls, max_concurrency: int = 10, timeout: float | None = None) -> "FetchCapability":
        """不限速、只尝试一次的获取能力（内存数据源 / 测试）"""
        return cls(
            max_concurrency=max_concurrency,
            timeout=timeout,
            retry_config=RetryConfig(max_attempts=1, strategy=RetryStrategy.IMMEDIATE),
        )

    # ==================== 单次获取 ====================

    async def fetch(
        self,
        key: str,
        fetch_fn: Callable[[], Awaitable[T]],
        strict: bool = False,
    ) -> T | None:
        """
        获取单个资源

        Args:
            key: 资源标识（通常是标的代码），用于日志
            fetch_fn: 无参协程工厂，每次重试重新调用
            strict: True 时失败抛出 UpstreamUnavailableError，否则返回 None

        Returns:
            获取结果；失败时返回 None（非 strict 模式）
        """
        start = time.perf_counter()
        self.stats["total_requests"] += 1

        @retry_async(self.retry_config)
        async def attempt() -> T:
            async with self._get_semaphore():
                await self._throttle()
                if self.timeout is None:
                    return await fetch_fn()
                return await asyncio.wait_for(fetch_fn(), timeout=self.timeout)

        try:
            result = await attempt()
        except Exception as e:
            self.stats["failed_requests"] += 1
            self.stats["total_time"] += time.perf_counter() - start
            if strict:
                raise UpstreamUnavailableError(key, f"{type(e).__name__}: {e}") from e
            logger.warning(f"⚠️ 获取失败，按缺失数据处理 [{key}]: {type(e).__name__}: {e}")
            return None

        self.stats["successful_requests"] += 1
        self.stats["total_time"] += time.perf_counter() - start
        return result

    # ==================== 批量获取 ====================

    async def fetch_many(
        self,
        keys: Iterable[str],
        fetch_fn: Callable[[str], Awaitable[T]],
    ) -> dict[str, T | None]:
        """
        批量获取（每个模拟期一批）

        Args:
            keys: 资源标识列表（重复项只获取一次）
            fetch_fn: key -> 协程

        Returns:
            dict[str, T | None]: 按 key 排序的结果，失败项为 None
        """
        ordered = sorted(set(keys))
        if not ordered:
            return {}

        logger.debug(f"📦 开始批量获取: {len(ordered)} 个请求")
        results = await asyncio.gather(
            *[self.fetch(key, lambda key=key: fetch_fn(key)) for key in ordered]
        )

        merged = dict(zip(ordered, results))
        failed = sum(1 for value in results if value is None)
        if failed:
            logger.info(f"📦 批量获取完成: {len(ordered) - failed}/{len(ordered)} 成功")
        return merged

    # ==================== 并发与限速 ====================

    def _get_semaphore(self) -> asyncio.Semaphore:
        # 延迟创建，绑定到实际运行的事件循环
        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self.max_concurrency)
        return self._semaphore

    async def _throttle(self) -> None:
        """按 requests_per_second 为每个请求分配发出时间"""
        if self.requests_per_second is None:
            return
        if self._pace_lock is None:
            self._pace_lock = asyncio.Lock()

        interval = 1.0 / self.requests_per_second
        loop = asyncio.get_running_loop()
        async with self._pace_lock:
            now = loop.time()
            wait = self._next_slot - now
            self._next_slot = max(now, self._next_slot) + interval
        if wait > 0:
            await asyncio.sleep(wait)
