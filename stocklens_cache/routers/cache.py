"""
缓存管理路由
GET  /api/cache/stats                      - 缓存统计
GET  /api/cache/{symbol}/{data_class}      - 只读缓存（不访问上游）
POST /api/cache/prune                      - 清理过旧的持久化记录
POST /api/cache/prefetch                   - 预热缓存
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from stocklens_cache.config import settings
from stocklens_cache.exceptions import StorageError
from stocklens_cache.layers.cache import MarketDataCache
from stocklens_cache.models.market import DataClass
from stocklens_cache.models.response import ApiResponse
from stocklens_cache.routers.deps import get_market_cache, to_http_error

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/cache", tags=["缓存管理"])


class PruneRequest(BaseModel):
    days: int = Field(ge=1)


class PrefetchRequest(BaseModel):
    tickers: Optional[List[str]] = None
    data_class: DataClass = DataClass.MONTHLY


@router.get("/stats", response_model=ApiResponse)
async def cache_stats(cache: MarketDataCache = Depends(get_market_cache)):
    """内存条目数、进行中的刷新数、持久化后端统计"""
    return ApiResponse.ok(data=await cache.stats())


@router.post("/prune", response_model=ApiResponse)
async def prune_cache(body: PruneRequest, cache: MarketDataCache = Depends(get_market_cache)):
    """删除 days 天前拉取的持久化记录"""
    try:
        removed = await cache.durable.prune_older_than(body.days)
    except StorageError as exc:
        logger.warning(f"持久化清理失败: {exc}")
        raise to_http_error(exc) from exc
    return ApiResponse.ok(data={"removed": removed}, message=f"已清理 {removed} 条记录")


@router.post("/prefetch", response_model=ApiResponse)
async def prefetch(body: PrefetchRequest, cache: MarketDataCache = Depends(get_market_cache)):
    """预热指定代码（默认使用配置中的预取列表）"""
    tickers = body.tickers or settings.PREFETCH_TICKERS
    result = await cache.prefetch(tickers, body.data_class)
    return ApiResponse.ok(data=result)


@router.get("/{symbol}/{data_class}", response_model=ApiResponse)
async def cached_only(
    symbol: str,
    data_class: DataClass,
    cache: MarketDataCache = Depends(get_market_cache),
):
    """仅读取缓存；无缓存时返回 404，不会访问上游"""
    try:
        result = await cache.get_cached(symbol, data_class)
    except ValueError as exc:
        raise to_http_error(exc) from exc
    if result is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{symbol} 无缓存数据")
    value = result.value
    data = value.model_dump() if data_class is DataClass.QUOTE else [r.model_dump() for r in value]
    return ApiResponse.ok(data=data, meta={"source": result.source, "stale": result.stale})
