"""
回测结果缓存

1. 参数指纹：策略 + 权重（键有序）+ 持仓数 + 保留阈值 + 回测年限
2. Cache-Aside：命中返回已存结果及其计算时间，未命中调用 compute_fn 并写回
3. 读取时判断新鲜度（默认 7 天 TTL，或显式 refresh）
4. 单飞（single-flight）：同一指纹的并发调用只触发一次计算

教学要点：
1. 缓存击穿防护：并发请求合并到同一个 Task
2. asyncio.shield 防止单个调用方取消影响其他等待者
3. 存储通过构造函数注入，便于替换为内存实现
"""

from __future__ import annotations

import asyncio
import datetime
import hashlib
import json
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any

from quantrank.constants import CacheConstants
from quantrank.data.storage.cache_store import CacheStore, InMemoryCacheStore
from quantrank.models import BacktestResult, CacheEntry, Strategy
from quantrank.ranking.weights import WeightVector

logger = logging.getLogger(__name__)

ComputeFn = Callable[[], Awaitable[BacktestResult]]


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


# ==================== 参数指纹 ====================

def fingerprint(
    strategy: Strategy | str,
    weights: WeightVector | Mapping[str, float],
    portfolio_size: int,
    horizon_years: int | float | None,
    keep_threshold: int | None = None,
    extra: Mapping[str, Any] | None = None,
) -> str:
    """
    计算回测参数指纹

    权重按键排序后参与计算，因此与传入顺序无关。

    Args:
        strategy: 策略
        weights: 权重向量或 指标 -> 权重 映射
        portfolio_size: 持仓数量
        horizon_years: 回测年限
        keep_threshold: 保留阈值（仅 hold_winners）
        extra: 其他影响结果的参数（检查点、再平衡间隔等）

    Returns:
        str: sha256 十六进制摘要
    """
    if isinstance(weights, WeightVector):
        canonical_weights = weights.canonical()
    else:
        canonical_weights = {k: round(float(v), 10) for k, v in sorted(weights.items())}

    payload: dict[str, Any] = {
        "strategy": Strategy(strategy).value,
        "weights": canonical_weights,
        "portfolio_size": portfolio_size,
        "horizon_years": horizon_years,
    }
    if keep_threshold is not None:
        payload["keep_threshold"] = keep_threshold
    if extra:
        payload["extra"] = dict(extra)

    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


# ==================== 结果缓存 ====================

@dataclass(frozen=True)
class CachedResult:
    """get_or_compute 的返回值"""
    payload: BacktestResult
    computed_at: datetime.datetime
    hit: bool


class ResultCache:
    """
    回测结果缓存

    Args:
        store: 缓存存储，默认内存存储
        ttl: 有效期，默认 7 天
        clock: 返回当前 UTC 时间的函数（测试可注入）
    """

    def __init__(
        self,
        store: CacheStore | None = None,
        ttl: datetime.timedelta | None = None,
        clock: Callable[[], datetime.datetime] = utcnow,
    ):
        self.store = store if store is not None else InMemoryCacheStore()
        self.ttl = ttl if ttl is not None else datetime.timedelta(days=CacheConstants.DEFAULT_TTL_DAYS)
        self.clock = clock
        self._in_flight: dict[tuple[str, bool], asyncio.Task] = {}

        # 统计信息
        self.stats = {
            "hits": 0,
            "misses": 0,
            "stale": 0,
            "coalesced": 0,
        }

    @classmethod
    def from_settings(cls, store: CacheStore | None = None, settings: Any | None = None) -> "ResultCache":
        if settings is None:
            from quantrank.settings import get_settings

            settings = get_settings()
        if store is None:
            store = InMemoryCacheStore(max_entries=settings.cache_max_entries)
        return cls(store=store, ttl=datetime.timedelta(days=settings.cache_ttl_days))

    async def get_or_compute(
        self,
        fingerprint: str,
        compute_fn: ComputeFn,
        refresh: bool = False,
    ) -> CachedResult:
        """
        获取缓存结果，未命中或已过期时计算

        同一指纹的并发调用共享同一次计算；refresh 调用只与其他 refresh 调用合并，
        不会被进行中的普通读取吸收。

        Args:
            fingerprint: 参数指纹
            compute_fn: 无参协程工厂，返回 BacktestResult
            refresh: 忽略已有结果，强制重新计算

        Returns:
            CachedResult: 结果、计算时间、是否命中
        """
        key = (fingerprint, refresh)
        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._load(fingerprint, compute_fn, refresh))
            self._in_flight[key] = task
            task.add_done_callback(lambda _t: self._in_flight.pop(key, None))
        else:
            self.stats["coalesced"] += 1
            logger.debug(f"⏳ 等待进行中的计算: {fingerprint[:12]}")

        return await asyncio.shield(task)

    async def invalidate(self, fingerprint: str) -> bool:
        return await self.store.delete(fingerprint)

    async def purge_stale(self) -> int:
        """清理超过 TTL 的条目（存储本身不会自动淘汰）"""
        return await self.store.purge_older_than(self.clock() - self.ttl)

    def is_fresh(self, entry: CacheEntry) -> bool:
        return self.clock() - entry.computed_at < self.ttl

    async def _load(self, fingerprint: str, compute_fn: ComputeFn, refresh: bool) -> CachedResult:
        if not refresh:
            entry = await self.store.get(fingerprint)
            if entry is not None:
                if self.is_fresh(entry):
                    self.stats["hits"] += 1
                    logger.debug(f"📦 缓存命中: {fingerprint[:12]}")
                    return CachedResult(payload=entry.payload, computed_at=entry.computed_at, hit=True)
                self.stats["stale"] += 1
                logger.info(f"⌛ 缓存已过期，重新计算: {fingerprint[:12]}")

        self.stats["misses"] += 1
        payload = await compute_fn()
        entry = CacheEntry(fingerprint=fingerprint, payload=payload, computed_at=self.clock())
        await self.store.put(entry)
        logger.info(f"✅ 回测结果已缓存: {fingerprint[:12]} ({payload.strategy.value})")
        return CachedResult(payload=payload, computed_at=entry.computed_at, hit=False)
