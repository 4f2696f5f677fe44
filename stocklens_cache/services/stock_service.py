"""
股票数据服务
在缓存门面之上提供面向调用方的历史窗口与报价接口
"""

import logging
from datetime import date, timedelta
from typing import Any, Callable, Dict, List

from stocklens_cache.layers.cache import MarketDataCache
from stocklens_cache.layers.processing import get_processing_layer
from stocklens_cache.models.market import Quote

logger = logging.getLogger(__name__)

_DAILY_WINDOW_DAYS = 365


class StockService:
    """股票数据业务服务"""

    def __init__(self, cache: MarketDataCache, today: Callable[[], date] = date.today):
        self._cache = cache
        self._proc = get_processing_layer()
        self._today = today

    async def get_historical_for_ticker(self, symbol: str, years: int = 5) -> List[Dict[str, Any]]:
        """
        获取最近 years 年的 OHLCV

        years <= 1 使用日线并保留最近一年；否则使用月线，保留最近 max(12 * years, 12) 个月
        """
        if years <= 1:
            series = await self._cache.get_daily_adjusted(symbol)
            df = self._proc.normalize_ohlcv(series)
            cutoff = (self._today() - timedelta(days=_DAILY_WINDOW_DAYS)).isoformat()
            df = self._proc.filter_date_range(df, cutoff, None)
        else:
            series = await self._cache.get_monthly_adjusted(symbol)
            df = self._proc.normalize_ohlcv(series)
            df = self._proc.tail(df, max(12 * years, 12))
        return self._proc.to_records(df)

    async def get_quote(self, symbol: str) -> Quote:
        return await self._cache.get_quote(symbol)
