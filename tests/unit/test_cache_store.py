"""
Unit tests for cache stores

测试覆盖：
1. InMemoryCacheStore 读写、LRU 淘汰、按时间清理
2. MongoCacheStore 文档转换与错误映射（motor 集合用 AsyncMock 代替）
"""
import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
from pymongo.errors import ServerSelectionTimeoutError

from quantrank.data.storage.cache_store import InMemoryCacheStore, MongoCacheStore
from quantrank.errors import UpstreamUnavailableError
from quantrank.models import CacheEntry

UTC = datetime.timezone.utc
NOW = datetime.datetime(2024, 6, 30, 12, 0, tzinfo=UTC)


def entry(fp: str, result, computed_at: datetime.datetime = NOW) -> CacheEntry:
    return CacheEntry(fingerprint=fp, payload=result, computed_at=computed_at)


class TestInMemoryCacheStore:
    """测试内存存储"""

    @pytest.mark.asyncio
    async def test_put_get_delete(self, sample_result):
        store = InMemoryCacheStore()
        await store.put(entry("fp1", sample_result))

        loaded = await store.get("fp1")
        assert loaded.payload == sample_result
        assert "fp1" in store

        assert await store.delete("fp1")
        assert not await store.delete("fp1")
        assert await store.get("fp1") is None

    @pytest.mark.asyncio
    async def test_lru_eviction(self, sample_result):
        store = InMemoryCacheStore(max_entries=2)
        await store.put(entry("a", sample_result))
        await store.put(entry("b", sample_result))
        await store.get("a")  # a 最近被访问
        await store.put(entry("c", sample_result))

        assert "a" in store
        assert "b" not in store
        assert "c" in store
        assert store.stats["evictions"] == 1

    @pytest.mark.asyncio
    async def test_purge_older_than(self, sample_result):
        store = InMemoryCacheStore()
        await store.put(entry("old", sample_result, NOW - datetime.timedelta(days=10)))
        await store.put(entry("new", sample_result, NOW))

        removed = await store.purge_older_than(NOW - datetime.timedelta(days=7))
        assert removed == 1
        assert len(store) == 1
        assert "new" in store

    def test_invalid_capacity(self):
        with pytest.raises(ValueError):
            InMemoryCacheStore(max_entries=0)


class TestMongoCacheStore:
    """测试 MongoDB 存储"""

    @pytest.fixture
    def collection(self):
        return MagicMock(
            find_one=AsyncMock(),
            replace_one=AsyncMock(),
            delete_one=AsyncMock(),
            delete_many=AsyncMock(),
            create_index=AsyncMock(),
        )

    @pytest.mark.asyncio
    async def test_put_writes_json_document(self, collection, sample_result):
        store = MongoCacheStore(collection)
        await store.put(entry("fp1", sample_result))

        collection.replace_one.assert_awaited_once()
        query, doc = collection.replace_one.await_args.args
        assert query == {"_id": "fp1"}
        assert doc["_id"] == "fp1"
        assert doc["computed_at"] == NOW
        assert doc["payload"]["strategy"] == "annual_rebalance"
        assert doc["payload"]["start_date"] == "2023-06-30"
        assert collection.replace_one.await_args.kwargs == {"upsert": True}

    @pytest.mark.asyncio
    async def test_get_round_trip_with_naive_datetime(self, collection, sample_result):
        collection.find_one.return_value = {
            "_id": "fp1",
            "payload": sample_result.model_dump(mode="json"),
            "computed_at": NOW.replace(tzinfo=None),
        }
        store = MongoCacheStore(collection)

        loaded = await store.get("fp1")
        assert loaded.payload == sample_result
        assert loaded.computed_at == NOW
        assert loaded.computed_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_get_missing(self, collection):
        collection.find_one.return_value = None
        assert await MongoCacheStore(collection).get("nope") is None

    @pytest.mark.asyncio
    async def test_errors_mapped_to_upstream(self, collection, sample_result):
        collection.find_one.side_effect = ServerSelectionTimeoutError("no servers")
        collection.replace_one.side_effect = ServerSelectionTimeoutError("no servers")
        store = MongoCacheStore(collection)

        with pytest.raises(UpstreamUnavailableError):
            await store.get("fp1")
        with pytest.raises(UpstreamUnavailableError):
            await store.put(entry("fp1", sample_result))

    @pytest.mark.asyncio
    async def test_delete_and_purge(self, collection):
        collection.delete_one.return_value = MagicMock(deleted_count=1)
        collection.delete_many.return_value = MagicMock(deleted_count=3)
        store = MongoCacheStore(collection)

        assert await store.delete("fp1")
        assert await store.purge_older_than(NOW) == 3
        collection.delete_many.assert_awaited_once_with({"computed_at": {"$lt": NOW}})

    @pytest.mark.asyncio
    async def test_ensure_indexes(self, collection):
        await MongoCacheStore(collection).ensure_indexes()
        collection.create_index.assert_awaited_once_with("computed_at")
