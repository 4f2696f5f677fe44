"""路由公共依赖：从 app.state 取得缓存门面，并把异常映射为 HTTP 状态码"""

from fastapi import HTTPException, Request, status

from stocklens_cache.exceptions import ConfigurationError, MarketDataError
from stocklens_cache.layers.cache import MarketDataCache
from stocklens_cache.services.stock_service import StockService


def get_market_cache(request: Request) -> MarketDataCache:
    return request.app.state.market_cache


def get_stock_service(request: Request) -> StockService:
    return StockService(get_market_cache(request))


def to_http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, ValueError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if isinstance(exc, ConfigurationError):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    if isinstance(exc, MarketDataError):
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))
