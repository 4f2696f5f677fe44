"""
股票行情路由
GET /api/stocks/{symbol}/monthly   - 月度复权序列
GET /api/stocks/{symbol}/daily     - 日度复权序列
GET /api/stocks/{symbol}/quote     - 最新报价
GET /api/stocks/{symbol}/history   - 最近 N 年历史
"""

from fastapi import APIRouter, Depends, Query

from stocklens_cache.exceptions import MarketDataError
from stocklens_cache.layers.cache import MarketDataCache
from stocklens_cache.models.market import CacheResult, DataClass
from stocklens_cache.models.response import ApiResponse
from stocklens_cache.routers.deps import get_market_cache, get_stock_service, to_http_error
from stocklens_cache.services.stock_service import StockService

router = APIRouter(prefix="/api/stocks", tags=["股票行情"])


def _series_response(symbol: str, data_class: DataClass, result: CacheResult) -> ApiResponse:
    return ApiResponse.ok(
        data={
            "symbol": symbol.upper(),
            "interval": data_class.value,
            "count": len(result.value),
            "data": [r.model_dump() for r in result.value],
        },
        meta={"source": result.source, "stale": result.stale},
    )


async def _read(cache: MarketDataCache, symbol: str, data_class: DataClass) -> CacheResult:
    try:
        return await cache.fetch_result(symbol, data_class)
    except (MarketDataError, ValueError) as exc:
        raise to_http_error(exc) from exc


@router.get("/{symbol}/monthly", response_model=ApiResponse)
async def get_monthly(symbol: str, cache: MarketDataCache = Depends(get_market_cache)):
    """月度复权序列（TTL 30 天）"""
    result = await _read(cache, symbol, DataClass.MONTHLY)
    return _series_response(symbol, DataClass.MONTHLY, result)


@router.get("/{symbol}/daily", response_model=ApiResponse)
async def get_daily(symbol: str, cache: MarketDataCache = Depends(get_market_cache)):
    """日度复权序列（TTL 1 天）"""
    result = await _read(cache, symbol, DataClass.DAILY)
    return _series_response(symbol, DataClass.DAILY, result)


@router.get("/{symbol}/quote", response_model=ApiResponse)
async def get_quote(symbol: str, cache: MarketDataCache = Depends(get_market_cache)):
    """最新报价（TTL 5 分钟）"""
    result = await _read(cache, symbol, DataClass.QUOTE)
    return ApiResponse.ok(
        data=result.value.model_dump(),
        meta={"source": result.source, "stale": result.stale},
    )


@router.get("/{symbol}/history", response_model=ApiResponse)
async def get_history(
    symbol: str,
    years: int = Query(default=5, ge=1, le=30, description="年数，1 年及以内使用日线"),
    svc: StockService = Depends(get_stock_service),
):
    """最近 N 年历史 OHLCV"""
    try:
        records = await svc.get_historical_for_ticker(symbol, years=years)
    except (MarketDataError, ValueError) as exc:
        raise to_http_error(exc) from exc
    return ApiResponse.ok(
        data={
            "symbol": symbol.upper(),
            "years": years,
            "count": len(records),
            "data": records,
        },
    )
