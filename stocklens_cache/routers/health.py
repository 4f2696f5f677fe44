"""健康检查路由"""

import time

from fastapi import APIRouter, Request

from stocklens_cache import __version__
from stocklens_cache.db import check_health

router = APIRouter(tags=["健康检查"])


@router.get("/health")
async def health(request: Request):
    """服务健康检查"""
    db_health = await check_health()
    cache = getattr(request.app.state, "market_cache", None)
    return {
        "success": True,
        "data": {
            "status": "ok",
            "version": __version__,
            "timestamp": int(time.time()),
            "service": "StockLens CacheService",
            "databases": db_health,
            "durable_backend": cache.durable.name if cache else None,
            "api_key_configured": bool(cache and cache.upstream.api_key),
        },
        "message": "服务运行正常",
    }


@router.get("/healthz")
async def healthz():
    """Kubernetes liveness probe"""
    return {"status": "ok"}


@router.get("/readyz")
async def readyz(request: Request):
    """Kubernetes readiness probe：缓存门面构造完成后就绪"""
    return {"ready": getattr(request.app.state, "market_cache", None) is not None}
