"""
进程内发布 / 订阅
同步投递，按注册顺序调用；单个处理器异常只记录日志，不影响其他处理器。
"""

import logging
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

# ── 对外事件主题 ──────────────────────────────────────────
HISTORICAL_UPDATED = "historical-updated"   # {symbol, interval}
CACHE_HIT = "alpha_cache_hit"               # {symbol, interval, stale}

Handler = Callable[[Any], Any]


class Notifier:
    def __init__(self):
        self._handlers: Dict[str, List[Handler]] = {}

    def subscribe(self, topic: str, handler: Handler) -> Callable[[], None]:
        """注册处理器，返回取消订阅函数（可重复调用）"""
        self._handlers.setdefault(topic, []).append(handler)

        def unsubscribe() -> None:
            handlers = self._handlers.get(topic)
            if handlers and handler in handlers:
                handlers.remove(handler)
                if not handlers:
                    del self._handlers[topic]

        return unsubscribe

    def publish(self, topic: str, payload: Any = None) -> None:
        for handler in list(self._handlers.get(topic, ())):
            try:
                handler(payload)
            except Exception:
                logger.exception(f"事件处理器执行失败: {topic}")

    def subscriber_count(self, topic: str) -> int:
        return len(self._handlers.get(topic, ()))
