"""进程内缓存层：键 → (解析后的值, 过期时间)，进程生命周期内有效"""

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from stocklens_cache.models.market import CacheKey


@dataclass(frozen=True)
class MemoryCacheEntry:
    value: Any
    expires_at: datetime

    def is_fresh(self, now: datetime) -> bool:
        return self.expires_at > now


class MemoryCache:
    """
    无淘汰策略：键空间为少量已知代码，条目只会被覆盖不会被删除。
    返回的条目可能已过期，由调用方用 is_fresh 判断。
    """

    def __init__(self):
        self._entries: Dict[CacheKey, MemoryCacheEntry] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: CacheKey) -> Optional[MemoryCacheEntry]:
        async with self._lock:
            return self._entries.get(key)

    async def set(self, key: CacheKey, value: Any, expires_at: datetime) -> None:
        async with self._lock:
            self._entries[key] = MemoryCacheEntry(value=value, expires_at=expires_at)

    async def size(self) -> int:
        async with self._lock:
            return len(self._entries)

    def __contains__(self, key: CacheKey) -> bool:
        return key in self._entries
