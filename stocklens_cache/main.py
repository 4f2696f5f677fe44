"""
StockLens 行情缓存服务
独立 FastAPI 应用程序入口

启动方式:
    uvicorn stocklens_cache.main:app --host 0.0.0.0 --port 8001
    python -m stocklens_cache.main
"""

import logging
import time
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from stocklens_cache import __version__
from stocklens_cache.config import settings
from stocklens_cache.db import close_connections, get_mongo_db, init_mongodb
from stocklens_cache.exceptions import StorageError
from stocklens_cache.layers.cache import build_market_cache
from stocklens_cache.routers import cache, health, stocks

# ── 日志配置 ──────────────────────────────────────────────
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


# ── 生命周期管理 ──────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用启动/关闭生命周期钩子：缓存门面在此构造一次，关闭时等待后台刷新结束"""
    logger.info("=" * 60)
    logger.info(f"🚀 StockLens CacheService v{__version__} 启动中")
    logger.info(f"   Durable   : {settings.DURABLE_BACKEND}")
    logger.info(f"   MongoDB   : {settings.MONGODB_HOST}:{settings.MONGODB_PORT}")
    logger.info(f"   Upstream  : {settings.ALPHA_VANTAGE_BASE_URL}")
    logger.info("=" * 60)

    # 初始化数据库连接（失败不阻断启动，降级运行）
    mongo_ok = await init_mongodb()
    if not mongo_ok:
        logger.warning("⚠️ MongoDB 不可用，持久化降级为文件模式")
    if not settings.ALPHA_VANTAGE_API_KEY:
        logger.warning("⚠️ 未配置 ALPHA_VANTAGE_API_KEY，仅能返回已缓存数据")

    market_cache = build_market_cache(get_mongo_db() if mongo_ok else None)
    app.state.market_cache = market_cache

    if settings.CACHE_PRUNE_DAYS > 0:
        try:
            removed = await market_cache.durable.prune_older_than(settings.CACHE_PRUNE_DAYS)
            logger.info(f"已清理 {removed} 条 {settings.CACHE_PRUNE_DAYS} 天前的缓存记录")
        except StorageError as exc:
            logger.warning(f"启动清理失败: {exc}")

    if settings.PREFETCH_ON_STARTUP:
        result = await market_cache.prefetch(settings.PREFETCH_TICKERS)
        logger.info(f"预取完成：成功 {len(result['success'])}，失败 {len(result['failed'])}")

    yield

    logger.info("🔄 行情缓存服务正在关闭...")
    await market_cache.aclose()
    await close_connections()
    logger.info("✅ 行情缓存服务已关闭")


# ── 应用实例 ──────────────────────────────────────────────
app = FastAPI(
    title="StockLens 行情缓存服务",
    description=(
        "Alpha Vantage 行情的两级读穿透缓存：\n"
        "- ⚡ 进程内缓存，命中时无 I/O\n"
        "- 🗄️ 持久化缓存（MongoDB → 文件），重启后仍可用\n"
        "- ♻️ 过期数据立即返回，同时后台去重刷新\n"
        "- ⏱️ TTL：月线 30 天 / 日线 1 天 / 报价 5 分钟"
    ),
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# ── CORS 中间件 ───────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── 请求计时中间件 ─────────────────────────────────────────
@app.middleware("http")
async def add_process_time(request: Request, call_next):
    start = time.time()
    response = await call_next(request)
    response.headers["X-Process-Time"] = f"{(time.time() - start) * 1000:.1f}ms"
    return response


# ── 全局异常处理 ──────────────────────────────────────────
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"未处理的异常: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "内部服务错误", "message": str(exc)},
    )


# ── 注册路由 ──────────────────────────────────────────────
app.include_router(health.router)
app.include_router(stocks.router)
app.include_router(cache.router)


# ── 根路由 ───────────────────────────────────────────────
@app.get("/", include_in_schema=False)
async def root():
    return {
        "service": "StockLens CacheService",
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
    }


# ── 直接运行入口 ──────────────────────────────────────────
if __name__ == "__main__":
    uvicorn.run(
        "stocklens_cache.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )
