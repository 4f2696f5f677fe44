"""
测试公共桩件：可控时钟、内存版持久化存储、基于 httpx.MockTransport 的上游
"""

import asyncio
import os
import sys
from datetime import date, datetime, timedelta, timezone

import httpx
import pytest

# 确保项目根目录在 sys.path
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from stocklens_cache.exceptions import StorageError  # noqa: E402
from stocklens_cache.layers.acquisition import UpstreamClient  # noqa: E402
from stocklens_cache.layers.durable import DurableStore  # noqa: E402


# ─────────────────────────────────────────────────────────
# 示例上游响应
# ─────────────────────────────────────────────────────────

def series_payload(name: str, dates: list, base: float = 100.0) -> dict:
    rows = {}
    for i, d in enumerate(dates):
        price = base + i
        rows[d] = {
            "1. open": f"{price:.4f}",
            "2. high": f"{price + 5:.4f}",
            "3. low": f"{price - 1:.4f}",
            "4. close": f"{price + 4:.4f}",
            "5. adjusted close": f"{price + 4:.4f}",
            "6. volume": str(1000000 + i),
        }
    return {"Meta Data": {"2. Symbol": "AAPL"}, name: rows}


def monthly_payload(n: int = 3, base: float = 100.0) -> dict:
    dates = [f"2024-{m:02d}-28" for m in range(n, 0, -1)]
    return series_payload("Monthly Adjusted Time Series", dates, base)


def daily_payload(today: date, n: int = 5, base: float = 100.0) -> dict:
    dates = [(today - timedelta(days=i)).isoformat() for i in range(n)]
    return series_payload("Time Series (Daily)", dates, base)


def quote_payload(price: float = 150.0, symbol: str = "AAPL") -> dict:
    return {
        "Global Quote": {
            "01. symbol": symbol,
            "05. price": f"{price:.4f}",
            "07. latest trading day": "2024-05-01",
        }
    }


def run(coro):
    return asyncio.run(coro)


# ─────────────────────────────────────────────────────────
# 桩件
# ─────────────────────────────────────────────────────────

class FakeClock:
    def __init__(self, now: datetime = None):
        self.now = now or datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeDurableStore(DurableStore):
    name = "fake"

    def __init__(self):
        self.records = {}
        self.fail_get = False
        self.fail_put = False
        self.put_calls = 0

    async def get(self, key):
        if self.fail_get:
            raise StorageError("disk unavailable")
        return self.records.get(key)

    async def put(self, record):
        self.put_calls += 1
        if self.fail_put:
            raise StorageError("disk full")
        self.records[record.key] = record

    async def prune_older_than(self, days):
        return 0

    async def stats(self):
        return {"backend": self.name, "records": len(self.records)}


class UpstreamStub:
    """
    记录每次请求；responses 按顺序消费，最后一个重复使用。
    响应可以是 (status, body) 或异常实例；gate 设置后请求会等待其放行。
    """

    def __init__(self, *responses):
        self.calls = []
        self.responses = list(responses) or [(200, {})]
        self.gate = None

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        if self.gate is not None:
            await self.gate.wait()
        response = self.responses[0] if len(self.responses) == 1 else self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        status, body = response
        if isinstance(body, (str, bytes)):
            return httpx.Response(status, content=body)
        return httpx.Response(status, json=body)

    def client(self, api_key: str = "test-api-key", **kwargs) -> UpstreamClient:
        kwargs.setdefault("backoff_base", 0)
        transport = httpx.MockTransport(self.handler)
        return UpstreamClient(
            api_key=api_key,
            client=httpx.AsyncClient(transport=transport),
            **kwargs,
        )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return FakeDurableStore()
