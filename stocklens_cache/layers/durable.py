"""
持久化层
按 (symbol, interval, params) 保存上游原始响应与拉取时间，进程重启后仍可读取。
后端优先级：MongoDB → 文件（本地）
"""

import asyncio
import hashlib
import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Optional
from urllib.parse import quote

from stocklens_cache.config import DataServiceSettings, settings as default_settings
from stocklens_cache.exceptions import StorageError
from stocklens_cache.models.market import CacheKey, CacheRecord

logger = logging.getLogger(__name__)


def _utc(dt: datetime) -> datetime:
    """MongoDB / 文件中可能取回不带时区的时间，统一为 UTC"""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


class DurableStore(ABC):
    """持久化键值表：每个键最多一条记录，写入为 upsert"""

    name = "abstract"

    @abstractmethod
    async def get(self, key: CacheKey) -> Optional[CacheRecord]: ...

    @abstractmethod
    async def put(self, record: CacheRecord) -> None: ...

    @abstractmethod
    async def prune_older_than(self, days: int) -> int:
        """删除 days 天前拉取的记录，返回删除条数"""

    @abstractmethod
    async def stats(self) -> dict: ...


# ── MongoDB ───────────────────────────────────────────────

class MongoDurableStore(DurableStore):
    name = "mongodb"

    def __init__(self, db, collection: str = "alpha_cache"):
        self._collection = db[collection]
        self._indexed = False

    @staticmethod
    def _filter(key: CacheKey) -> dict:
        return {"symbol": key.symbol, "interval": key.data_class.value, "params": key.params}

    async def ensure_indexes(self) -> None:
        if self._indexed:
            return
        try:
            await self._collection.create_index(
                [("symbol", 1), ("interval", 1), ("params", 1)], unique=True
            )
            self._indexed = True
        except Exception as exc:
            raise StorageError(f"MongoDB 创建索引失败: {exc}") from exc

    async def get(self, key: CacheKey) -> Optional[CacheRecord]:
        try:
            doc = await self._collection.find_one(self._filter(key))
        except Exception as exc:
            raise StorageError(f"MongoDB 读取失败: {exc}") from exc
        if not doc:
            return None
        return CacheRecord(key=key, raw_payload=doc["raw_json"], fetched_at=_utc(doc["fetched_at"]))

    async def put(self, record: CacheRecord) -> None:
        await self.ensure_indexes()
        try:
            await self._collection.update_one(
                self._filter(record.key),
                {"$set": {
                    **self._filter(record.key),
                    "fetched_at": record.fetched_at,
                    "raw_json": record.raw_payload,
                }},
                upsert=True,
            )
        except Exception as exc:
            raise StorageError(f"MongoDB 写入失败: {exc}") from exc
        logger.debug(f"持久化写入（MongoDB）: {record.key}")

    async def prune_older_than(self, days: int) -> int:
        cutoff = datetime.now(tz=timezone.utc) - timedelta(days=days)
        try:
            result = await self._collection.delete_many({"fetched_at": {"$lt": cutoff}})
        except Exception as exc:
            raise StorageError(f"MongoDB 清理失败: {exc}") from exc
        return result.deleted_count

    async def stats(self) -> dict:
        try:
            count = await self._collection.count_documents({})
            return {"backend": self.name, "records": count, "status": "healthy"}
        except Exception as exc:
            return {"backend": self.name, "status": "error", "error": str(exc)}


# ── 文件 ──────────────────────────────────────────────────

class FileDurableStore(DurableStore):
    """每个键一个 JSON 文件；写临时文件后 os.replace，保证替换原子性"""

    name = "file"

    def __init__(self, cache_dir: str):
        self.cache_dir = cache_dir

    def _path(self, key: CacheKey) -> str:
        # quote 对代码做可逆转义，不同的键不会落到同一个文件
        name = f"{quote(key.symbol, safe='')}_{key.data_class.value}"
        if key.params:
            name += "_" + hashlib.md5(key.params.encode()).hexdigest()
        return os.path.join(self.cache_dir, f"{name}.json")

    @staticmethod
    def _matches(doc: dict, key: CacheKey) -> bool:
        return (
            doc.get("symbol") == key.symbol
            and doc.get("interval") == key.data_class.value
            and doc.get("params", "") == key.params
        )

    def _read(self, key: CacheKey) -> Optional[CacheRecord]:
        path = self._path(key)
        if not os.path.exists(path):
            return None
        with open(path, "r", encoding="utf-8") as fh:
            doc = json.load(fh)
        if not self._matches(doc, key):
            logger.warning(f"缓存文件与键不一致，按未命中处理: {path} ≠ {key}")
            return None
        return CacheRecord(
            key=key,
            raw_payload=doc["raw_json"],
            fetched_at=_utc(datetime.fromisoformat(doc["fetched_at"])),
        )

    def _write(self, record: CacheRecord) -> None:
        os.makedirs(self.cache_dir, exist_ok=True)
        path = self._path(record.key)
        doc = {
            "symbol": record.key.symbol,
            "interval": record.key.data_class.value,
            "params": record.key.params,
            "fetched_at": _utc(record.fetched_at).isoformat(),
            "raw_json": record.raw_payload,
        }
        # 每次写入使用独立的临时文件，并发 put 同一个键时互不干扰
        fd, tmp = tempfile.mkstemp(dir=self.cache_dir, prefix=".write-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(doc, fh, ensure_ascii=False)
            os.replace(tmp, path)
        except Exception:
            if os.path.exists(tmp):
                os.remove(tmp)
            raise

    def _prune(self, cutoff: datetime) -> int:
        if not os.path.isdir(self.cache_dir):
            return 0
        removed = 0
        for name in os.listdir(self.cache_dir):
            if not name.endswith(".json"):
                continue
            path = os.path.join(self.cache_dir, name)
            with open(path, "r", encoding="utf-8") as fh:
                doc = json.load(fh)
            if _utc(datetime.fromisoformat(doc["fetched_at"])) < cutoff:
                os.remove(path)
                removed += 1
        return removed

    async def get(self, key: CacheKey) -> Optional[CacheRecord]:
        try:
            return await asyncio.to_thread(self._read, key)
        except (OSError, ValueError, KeyError) as exc:
            raise StorageError(f"文件存储读取失败: {exc}") from exc

    async def put(self, record: CacheRecord) -> None:
        try:
            await asyncio.to_thread(self._write, record)
        except (OSError, TypeError, ValueError) as exc:
            raise StorageError(f"文件存储写入失败: {exc}") from exc
        logger.debug(f"持久化写入（文件）: {record.key}")

    async def prune_older_than(self, days: int) -> int:
        cutoff = datetime.now(tz=timezone.utc) - timedelta(days=days)
        try:
            return await asyncio.to_thread(self._prune, cutoff)
        except (OSError, ValueError, KeyError) as exc:
            raise StorageError(f"文件存储清理失败: {exc}") from exc

    async def stats(self) -> dict:
        try:
            files = [
                f for f in os.listdir(self.cache_dir) if f.endswith(".json")
            ] if os.path.isdir(self.cache_dir) else []
            return {"backend": self.name, "records": len(files), "dir": self.cache_dir, "status": "healthy"}
        except OSError as exc:
            return {"backend": self.name, "status": "error", "error": str(exc)}


def build_durable_store(db=None, cfg: DataServiceSettings = None) -> DurableStore:
    """
    按配置选择持久化后端

    auto：MongoDB 可用时使用 MongoDB，否则降级为文件存储
    """
    cfg = cfg or default_settings
    backend = cfg.DURABLE_BACKEND.lower()
    if backend == "mongodb" and db is None:
        logger.warning("⚠️ 配置要求 MongoDB 但连接不可用，降级为文件存储")
    if backend in ("auto", "mongodb") and db is not None:
        return MongoDurableStore(db, cfg.ALPHA_CACHE_COLLECTION)
    return FileDurableStore(cfg.CACHE_DIR)
