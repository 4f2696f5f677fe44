"""
数据获取层
通过 HTTP 调用 Alpha Vantage 行情接口，负责重试、指数退避与带内错误分类。
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from stocklens_cache.config import DataServiceSettings, settings as default_settings
from stocklens_cache.exceptions import (
    ConfigurationError,
    RateLimitError,
    TransientNetworkError,
    UpstreamDataError,
)
from stocklens_cache.models.market import DataClass

logger = logging.getLogger(__name__)


# ── 各数据类别对应的接口参数 ──────────────────────────────
_FUNCTION_PARAMS = {
    DataClass.MONTHLY: {"function": "TIME_SERIES_MONTHLY_ADJUSTED"},
    DataClass.DAILY: {"function": "TIME_SERIES_DAILY_ADJUSTED", "outputsize": "full"},
    DataClass.QUOTE: {"function": "GLOBAL_QUOTE"},
}

_ERROR_FIELD = "Error Message"
_ADVISORY_FIELDS = ("Note", "Information")


def classify_payload(payload: Any) -> None:
    """在解析正常结构前检查带内错误字段，命中则抛出对应异常"""
    if not isinstance(payload, dict):
        return
    if payload.get(_ERROR_FIELD):
        raise UpstreamDataError(f"AlphaVantage API Error: {payload[_ERROR_FIELD]}", field=_ERROR_FIELD)
    for field in _ADVISORY_FIELDS:
        if payload.get(field):
            raise RateLimitError(f"AlphaVantage {field}: {payload[field]}", field=field)


class UpstreamClient:
    """Alpha Vantage 客户端：单次请求带超时，失败按固定预算重试"""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://www.alphavantage.co/query",
        timeout: float = 10.0,
        max_attempts: int = 3,
        backoff_base: float = 0.25,
        retry_data_errors: bool = True,
        client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.api_key = api_key
        self.base_url = base_url
        self.max_attempts = max(1, max_attempts)
        self.backoff_base = backoff_base
        self.retry_data_errors = retry_data_errors
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._sleep = sleep

    @classmethod
    def from_settings(cls, cfg: DataServiceSettings = None, **kwargs) -> "UpstreamClient":
        cfg = cfg or default_settings
        return cls(
            api_key=cfg.ALPHA_VANTAGE_API_KEY,
            base_url=cfg.ALPHA_VANTAGE_BASE_URL,
            timeout=cfg.UPSTREAM_TIMEOUT_SECONDS,
            max_attempts=cfg.UPSTREAM_MAX_ATTEMPTS,
            backoff_base=cfg.UPSTREAM_BACKOFF_BASE_SECONDS,
            retry_data_errors=cfg.UPSTREAM_RETRY_DATA_ERRORS,
            **kwargs,
        )

    # ── 对外接口 ──────────────────────────────────────────

    async def fetch(self, symbol: str, data_class: DataClass) -> Dict[str, Any]:
        """按数据类别拉取原始 JSON；缺少 API Key 时不发起任何请求"""
        if not self.api_key:
            raise ConfigurationError(
                "Alpha Vantage API key not configured. Set ALPHA_VANTAGE_API_KEY in the environment."
            )
        params = dict(_FUNCTION_PARAMS[DataClass(data_class)])
        params["symbol"] = symbol
        params["apikey"] = self.api_key
        return await self.fetch_json(self.base_url, params=params)

    async def fetch_json(self, url: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        请求 url 并返回 JSON 对象

        每次失败后等待 backoff_base * 2^attempt 秒再重试，
        用尽 max_attempts 次后抛出最后一次的异常。
        """
        last_exc: Optional[Exception] = None
        for attempt in range(self.max_attempts):
            try:
                return await self._request_once(url, params)
            except UpstreamDataError as exc:
                last_exc = exc
                if not exc.retryable and not self.retry_data_errors:
                    raise
            except TransientNetworkError as exc:
                last_exc = exc

            # 最后一次失败后不 sleep：默认配置下总等待为 0.25s + 0.5s，不是 0.25s × (1+2+4)
            if attempt < self.max_attempts - 1:
                delay = self.backoff_base * (2 ** attempt)
                logger.warning(
                    f"上游请求失败（第 {attempt + 1}/{self.max_attempts} 次），{delay:.2f}s 后重试: {last_exc}"
                )
                await self._sleep(delay)

        logger.warning(f"上游请求重试耗尽: {last_exc}")
        raise last_exc

    async def _request_once(self, url: str, params: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        try:
            response = await self._client.get(url, params=params)
        except httpx.HTTPError as exc:
            raise TransientNetworkError(f"AlphaVantage request failed: {exc}") from exc

        if not response.is_success:
            raise TransientNetworkError(
                f"AlphaVantage HTTP error {response.status_code}",
                status_code=response.status_code,
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise TransientNetworkError(f"AlphaVantage returned invalid JSON: {exc}") from exc

        classify_payload(payload)
        return payload

    async def aclose(self) -> None:
        await self._client.aclose()
