"""
缓存门面
优先级：内存 → 持久化 → 上游

  - 内存命中且未过期：直接返回，无 I/O
  - 持久化命中且未过期：解码后回填内存并返回
  - 持久化命中但已过期：立即返回旧值，同时调度去重的后台刷新
  - 均未命中（或持久化数据损坏 / 读取失败）：同步拉取上游并写入两级缓存
"""

import json
import logging
from datetime import datetime, timezone
from functools import partial
from typing import Callable, Dict, Iterable, List, Optional

from stocklens_cache.config import DataServiceSettings, settings as default_settings
from stocklens_cache.exceptions import DecodeError, MarketDataError, StorageError
from stocklens_cache.layers.acquisition import UpstreamClient
from stocklens_cache.layers.durable import DurableStore, build_durable_store
from stocklens_cache.layers.memory import MemoryCache
from stocklens_cache.layers.notifier import CACHE_HIT, Notifier
from stocklens_cache.layers.processing import ProcessingLayer, get_processing_layer
from stocklens_cache.layers.refresh import RefreshCoordinator
from stocklens_cache.models.market import (
    CacheKey,
    CacheRecord,
    CacheResult,
    DataClass,
    OHLCV,
    ParsedData,
    Quote,
    ttl_for,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class MarketDataCache:
    """两级读穿透缓存，应用启动时构造一次，通过 app.state 共享"""

    def __init__(
        self,
        upstream: UpstreamClient,
        durable: DurableStore,
        memory: MemoryCache = None,
        notifier: Notifier = None,
        coordinator: RefreshCoordinator = None,
        processor: ProcessingLayer = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.upstream = upstream
        self.durable = durable
        self.memory = memory or MemoryCache()
        self.notifier = notifier or Notifier()
        self.coordinator = coordinator or RefreshCoordinator(self.notifier)
        self._proc = processor or get_processing_layer()
        self._clock = clock

    # ── 三个对外读取接口 ───────────────────────────────────

    async def get_monthly_adjusted(self, symbol: str) -> List[OHLCV]:
        return await self.fetch(symbol, DataClass.MONTHLY)

    async def get_daily_adjusted(self, symbol: str) -> List[OHLCV]:
        return await self.fetch(symbol, DataClass.DAILY)

    async def get_quote(self, symbol: str) -> Quote:
        return await self.fetch(symbol, DataClass.QUOTE)

    # ── 读穿透 ────────────────────────────────────────────

    async def fetch(self, symbol: str, data_class: DataClass, params: str = "") -> ParsedData:
        result = await self.fetch_result(symbol, data_class, params)
        return result.value

    async def fetch_result(self, symbol: str, data_class: DataClass, params: str = "") -> CacheResult:
        """读取并返回值及其来源；只有在两级缓存都没有数据且同步拉取失败时才抛出异常"""
        key = CacheKey.of(symbol, data_class, params)
        ttl = ttl_for(key.data_class)
        now = self._clock()

        entry = await self.memory.get(key)
        if entry is not None:
            if entry.is_fresh(now):
                logger.debug(f"缓存命中（内存）: {key}")
                self._announce_hit(key, stale=False)
                return CacheResult(entry.value, "memory")
            if self.coordinator.is_refreshing(key):
                # 刷新进行中，直接复用已解码的旧值
                self._announce_hit(key, stale=True)
                return CacheResult(entry.value, "memory", stale=True)

        record = await self._read_durable(key)
        if record is not None:
            try:
                value = self._proc.decode(record.raw_payload, key.data_class, key.symbol)
            except DecodeError as exc:
                logger.warning(f"持久化数据损坏，改为从上游拉取: {key}: {exc}")
            else:
                await self.memory.set(key, value, record.fetched_at + ttl)
                stale = now - record.fetched_at >= ttl
                if stale:
                    logger.debug(f"缓存过期（持久化），后台刷新: {key}")
                    await self.coordinator.schedule_refresh(key, partial(self._fetch_and_store, key))
                else:
                    logger.debug(f"缓存命中（持久化）: {key}")
                self._announce_hit(key, stale=stale)
                return CacheResult(value, "durable", stale=stale)

        try:
            value = await self._fetch_and_store(key)
        except MarketDataError:
            if entry is None:
                raise
            logger.warning(f"上游拉取失败，返回内存中的旧值: {key}", exc_info=True)
            self._announce_hit(key, stale=True)
            return CacheResult(entry.value, "memory", stale=True)
        return CacheResult(value, "upstream")

    async def get_cached(self, symbol: str, data_class: DataClass, params: str = "") -> Optional[CacheResult]:
        """只读缓存（不访问网络，也不需要 API Key），无可用数据时返回 None"""
        key = CacheKey.of(symbol, data_class, params)
        ttl = ttl_for(key.data_class)
        now = self._clock()

        entry = await self.memory.get(key)
        if entry is not None:
            stale = not entry.is_fresh(now)
            self._announce_hit(key, stale=stale)
            return CacheResult(entry.value, "memory", stale=stale)

        record = await self._read_durable(key)
        if record is None:
            return None
        try:
            value = self._proc.decode(record.raw_payload, key.data_class, key.symbol)
        except DecodeError as exc:
            logger.warning(f"持久化数据损坏: {key}: {exc}")
            return None
        await self.memory.set(key, value, record.fetched_at + ttl)
        stale = now - record.fetched_at >= ttl
        self._announce_hit(key, stale=stale)
        return CacheResult(value, "durable", stale=stale)

    # ── 内部步骤 ──────────────────────────────────────────

    async def _read_durable(self, key: CacheKey) -> Optional[CacheRecord]:
        try:
            return await self.durable.get(key)
        except StorageError as exc:
            logger.warning(f"持久化读取失败，按未命中处理: {key}: {exc}")
            return None

    async def _fetch_and_store(self, key: CacheKey) -> ParsedData:
        """上游拉取 → 解码 → 写持久化（失败仅记录） → 写内存"""
        payload = await self.upstream.fetch(key.symbol, key.data_class)
        value = self._proc.decode(payload, key.data_class, key.symbol)
        fetched_at = self._clock()

        record = CacheRecord(key=key, raw_payload=json.dumps(payload), fetched_at=fetched_at)
        try:
            await self.durable.put(record)
        except StorageError as exc:
            logger.warning(f"持久化写入失败，仅保留内存副本: {key}: {exc}")

        await self.memory.set(key, value, fetched_at + ttl_for(key.data_class))
        logger.info(f"上游数据已缓存: {key}")
        return value

    def _announce_hit(self, key: CacheKey, stale: bool) -> None:
        self.notifier.publish(
            CACHE_HIT,
            {"symbol": key.symbol, "interval": key.data_class.value, "stale": stale},
        )

    # ── 维护 ──────────────────────────────────────────────

    async def prefetch(
        self, symbols: Iterable[str], data_class: DataClass = DataClass.MONTHLY
    ) -> Dict[str, object]:
        """逐个预热缓存，单个失败不影响其他代码"""
        success: List[str] = []
        failed: Dict[str, str] = {}
        for symbol in symbols:
            try:
                await self.fetch(symbol, data_class)
                success.append(symbol.strip().upper())
            except (MarketDataError, ValueError) as exc:
                logger.warning(f"预取失败（{symbol}）: {exc}")
                failed[symbol] = str(exc)
        return {"success": success, "failed": failed}

    async def stats(self) -> dict:
        return {
            "memory": {"entries": await self.memory.size()},
            "refreshing": self.coordinator.in_flight_count(),
            "durable": await self.durable.stats(),
        }

    async def aclose(self) -> None:
        await self.coordinator.drain()
        await self.upstream.aclose()


def build_market_cache(db=None, cfg: DataServiceSettings = None) -> MarketDataCache:
    """按配置组装缓存门面"""
    cfg = cfg or default_settings
    durable = build_durable_store(db, cfg)
    logger.info(f"持久化后端: {durable.name}")
    return MarketDataCache(upstream=UpstreamClient.from_settings(cfg), durable=durable)
