"""
MongoDB 连接管理
持久化缓存的 MongoDB 后端在这里建立连接；连接失败时服务降级为文件存储
"""

import logging
from typing import Any, Dict, Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from stocklens_cache.config import DataServiceSettings, settings

logger = logging.getLogger(__name__)

_mongo_client: Optional[AsyncIOMotorClient] = None
_mongo_db: Optional[AsyncIOMotorDatabase] = None


def _mongo_wanted(cfg: DataServiceSettings) -> bool:
    return cfg.MONGODB_ENABLED and cfg.DURABLE_BACKEND.lower() in ("auto", "mongodb")


def _client_options(cfg: DataServiceSettings) -> Dict[str, Any]:
    # fetched_at 读回时带 UTC 时区，和文件后端保持一致
    return {
        "maxPoolSize": cfg.MONGO_MAX_CONNECTIONS,
        "minPoolSize": cfg.MONGO_MIN_CONNECTIONS,
        "serverSelectionTimeoutMS": cfg.MONGO_SERVER_SELECTION_TIMEOUT_MS,
        "connectTimeoutMS": cfg.MONGO_CONNECT_TIMEOUT_MS,
        "socketTimeoutMS": cfg.MONGO_SOCKET_TIMEOUT_MS,
        "tz_aware": True,
    }


async def init_mongodb() -> bool:
    """建立连接并 ping 一次，返回持久化缓存能否使用 MongoDB"""
    global _mongo_client, _mongo_db
    if not _mongo_wanted(settings):
        logger.info(f"持久化后端为 {settings.DURABLE_BACKEND}，不连接 MongoDB")
        return False
    client = AsyncIOMotorClient(settings.MONGO_URI, **_client_options(settings))
    try:
        await client.admin.command("ping")
    except Exception as exc:
        logger.warning(f"⚠️ MongoDB 不可用（{settings.MONGODB_HOST}:{settings.MONGODB_PORT}）: {exc}")
        client.close()
        return False
    _mongo_client = client
    _mongo_db = client[settings.MONGODB_DATABASE]
    logger.info(f"✅ MongoDB 已连接: {settings.MONGODB_HOST}:{settings.MONGODB_PORT}/{settings.MONGODB_DATABASE}")
    return True


async def close_connections():
    global _mongo_client, _mongo_db
    if _mongo_client is None:
        return
    _mongo_client.close()
    _mongo_client = None
    _mongo_db = None
    logger.info("MongoDB 连接已关闭")


def get_mongo_db() -> Optional[AsyncIOMotorDatabase]:
    """未连接时返回 None"""
    return _mongo_db


async def check_health() -> dict:
    if _mongo_client is None:
        status = "disconnected" if _mongo_wanted(settings) else "disabled"
        return {"mongodb": {"status": status}}
    try:
        await _mongo_client.admin.command("ping")
    except Exception as exc:
        return {"mongodb": {"status": "unhealthy", "error": str(exc)}}
    return {
        "mongodb": {
            "status": "healthy",
            "host": settings.MONGODB_HOST,
            "collection": settings.ALPHA_CACHE_COLLECTION,
        }
    }
