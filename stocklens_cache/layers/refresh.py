"""
后台刷新协调
同一缓存键同一时刻最多一个上游刷新在执行；刷新结束（成功或失败）后无条件移出登记表。
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Optional

from stocklens_cache.layers.notifier import HISTORICAL_UPDATED, Notifier
from stocklens_cache.models.market import CacheKey

logger = logging.getLogger(__name__)

RefreshFn = Callable[[], Awaitable[object]]


class RefreshCoordinator:
    def __init__(self, notifier: Optional[Notifier] = None):
        self._notifier = notifier or Notifier()
        self._in_flight: Dict[CacheKey, asyncio.Task] = {}
        self._lock = asyncio.Lock()

    async def schedule_refresh(self, key: CacheKey, refresh_fn: RefreshFn) -> asyncio.Task:
        """
        登记并启动刷新任务

        该键已有刷新在执行时不追加任何工作，直接返回已有任务；
        调用方无需等待返回的任务。
        """
        async with self._lock:
            task = self._in_flight.get(key)
            if task is not None:
                logger.debug(f"刷新已在进行，跳过: {key}")
                return task
            task = asyncio.create_task(self._run(key, refresh_fn), name=f"refresh:{key}")
            self._in_flight[key] = task
            return task

    async def _run(self, key: CacheKey, refresh_fn: RefreshFn) -> bool:
        succeeded = False
        try:
            await refresh_fn()
            succeeded = True
        except Exception:
            logger.warning(f"后台刷新失败: {key}", exc_info=True)
        finally:
            async with self._lock:
                self._in_flight.pop(key, None)

        if succeeded:
            logger.info(f"后台刷新完成: {key}")
            self._notifier.publish(
                HISTORICAL_UPDATED,
                {"symbol": key.symbol, "interval": key.data_class.value},
            )
        return succeeded

    def is_refreshing(self, key: CacheKey) -> bool:
        return key in self._in_flight

    def in_flight_count(self) -> int:
        return len(self._in_flight)

    async def drain(self) -> None:
        """等待当前所有刷新结束（刷新不可取消）"""
        while True:
            async with self._lock:
                tasks = list(self._in_flight.values())
            if not tasks:
                return
            await asyncio.gather(*tasks, return_exceptions=True)
