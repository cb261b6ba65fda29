"""
回测结果存储层

1. CacheStore: 存储接口（内存 / MongoDB）
2. ResultCache: 指纹 + TTL + 单飞的结果缓存
"""

from .cache_store import CacheStore, InMemoryCacheStore, MongoCacheStore
from .result_cache import CachedResult, ResultCache, fingerprint

__all__ = [
    "CacheStore",
    "CachedResult",
    "InMemoryCacheStore",
    "MongoCacheStore",
    "ResultCache",
    "fingerprint",
]
