"""
回测结果存储

ResultCache 背后的键值存储，构造时显式注入：
1. InMemoryCacheStore: 内存存储，可选 LRU 容量上限（测试 / 单进程）
2. MongoCacheStore: 基于 motor 的持久化存储

存储本身不判断过期：新鲜度在读取时由 ResultCache 决定，
存储只提供按时间清理旧条目的能力。

教学要点：
1. 仓储接口与实现分离
2. LRU 淘汰策略
3. Pydantic 模型与 MongoDB 文档互转
"""

from __future__ import annotations

import datetime
import logging
import threading
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import TYPE_CHECKING, Any

from pymongo.errors import PyMongoError

from quantrank.errors import UpstreamUnavailableError
from quantrank.models import BacktestResult, CacheEntry

if TYPE_CHECKING:
    from motor.motor_asyncio import AsyncIOMotorCollection

logger = logging.getLogger(__name__)


class CacheStore(ABC):
    """缓存存储接口"""

    @abstractmethod
    async def get(self, fingerprint: str) -> CacheEntry | None:
        pass

    @abstractmethod
    async def put(self, entry: CacheEntry) -> None:
        pass

    @abstractmethod
    async def delete(self, fingerprint: str) -> bool:
        pass

    @abstractmethod
    async def purge_older_than(self, cutoff: datetime.datetime) -> int:
        """删除 computed_at 早于 cutoff 的条目，返回删除数量"""
        pass


# ==================== 内存存储 ====================

class InMemoryCacheStore(CacheStore):
    """
    内存缓存存储

    Args:
        max_entries: 最大条目数，超出时淘汰最久未访问的条目；None 表示不限
    """

    def __init__(self, max_entries: int | None = None):
        if max_entries is not None and max_entries < 1:
            raise ValueError(f"max_entries 必须 >= 1: {max_entries}")
        self.max_entries = max_entries
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = threading.RLock()

        self.stats = {
            "gets": 0,
            "puts": 0,
            "evictions": 0,
        }

    async def get(self, fingerprint: str) -> CacheEntry | None:
        with self._lock:
            self.stats["gets"] += 1
            entry = self._entries.get(fingerprint)
            if entry is not None:
                # 更新访问顺序（LRU）
                self._entries.move_to_end(fingerprint)
            return entry

    async def put(self, entry: CacheEntry) -> None:
        with self._lock:
            self.stats["puts"] += 1
            self._entries[entry.fingerprint] = entry
            self._entries.move_to_end(entry.fingerprint)

            if self.max_entries is not None:
                while len(self._entries) > self.max_entries:
                    lru_key, _ = self._entries.popitem(last=False)
                    self.stats["evictions"] += 1
                    logger.debug(f"🗑️ 缓存淘汰: {lru_key[:12]}")

    async def delete(self, fingerprint: str) -> bool:
        with self._lock:
            return self._entries.pop(fingerprint, None) is not None

    async def purge_older_than(self, cutoff: datetime.datetime) -> int:
        with self._lock:
            stale = [fp for fp, e in self._entries.items() if e.computed_at < cutoff]
            for fp in stale:
                del self._entries[fp]
        if stale:
            logger.info(f"🗑️ 清理过期缓存 {len(stale)} 条")
        return len(stale)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, fingerprint: object) -> bool:
        return fingerprint in self._entries


# ==================== MongoDB 存储 ====================

class MongoCacheStore(CacheStore):
    """
    MongoDB 缓存存储

    文档结构：
        {_id: fingerprint, payload: {...}, computed_at: datetime}

    Args:
        collection: motor 集合（由调用方创建并管理连接）
    """

    def __init__(self, collection: "AsyncIOMotorCollection"):
        self.collection = collection

    @classmethod
    def from_settings(cls, settings: Any | None = None) -> "MongoCacheStore":
        """根据配置创建客户端和集合"""
        from motor.motor_asyncio import AsyncIOMotorClient

        if settings is None:
            from quantrank.settings import get_settings

            settings = get_settings()
        client = AsyncIOMotorClient(settings.mongodb_uri, tz_aware=True)
        collection = client[settings.mongodb_database][settings.cache_collection]
        logger.info(
            f"✓ 结果缓存使用 MongoDB: {settings.mongodb_database}.{settings.cache_collection}"
        )
        return cls(collection)

    async def ensure_indexes(self) -> None:
        await self.collection.create_index("computed_at")

    async def get(self, fingerprint: str) -> CacheEntry | None:
        try:
            doc = await self.collection.find_one({"_id": fingerprint})
        except PyMongoError as e:
            raise UpstreamUnavailableError("mongodb", str(e)) from e
        if doc is None:
            return None
        return self._to_entry(doc)

    async def put(self, entry: CacheEntry) -> None:
        doc = {
            "_id": entry.fingerprint,
            "payload": entry.payload.model_dump(mode="json"),
            "computed_at": entry.computed_at,
        }
        try:
            await self.collection.replace_one({"_id": entry.fingerprint}, doc, upsert=True)
        except PyMongoError as e:
            raise UpstreamUnavailableError("mongodb", str(e)) from e

    async def delete(self, fingerprint: str) -> bool:
        result = await self.collection.delete_one({"_id": fingerprint})
        return result.deleted_count > 0

    async def purge_older_than(self, cutoff: datetime.datetime) -> int:
        result = await self.collection.delete_many({"computed_at": {"$lt": cutoff}})
        if result.deleted_count:
            logger.info(f"🗑️ 清理过期缓存 {result.deleted_count} 条")
        return result.deleted_count

    @staticmethod
    def _to_entry(doc: dict[str, Any]) -> CacheEntry:
        computed_at = doc["computed_at"]
        if isinstance(computed_at, datetime.datetime) and computed_at.tzinfo is None:
            # pymongo 默认返回 UTC 的 naive datetime
            computed_at = computed_at.replace(tzinfo=datetime.timezone.utc)
        return CacheEntry(
            fingerprint=doc["_id"],
            payload=BacktestResult.model_validate(doc["payload"]),
            computed_at=computed_at,
        )
