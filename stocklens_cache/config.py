"""
行情缓存服务配置模块
支持从环境变量读取配置，自动检测 Docker 容器环境并启用服务发现
"""

import os
from functools import lru_cache
from typing import List

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _is_docker() -> bool:
    """检测当前是否运行在 Docker 容器内"""
    return (
        os.path.exists("/.dockerenv")
        or os.environ.get("DOCKER_CONTAINER", "").lower() in ("1", "true", "yes")
    )


def _default_mongo_host() -> str:
    """Docker 环境使用服务名 'mongodb'，本地使用 'localhost'"""
    return "mongodb" if _is_docker() else "localhost"


_DEFAULT_PREFETCH = ["NVDA", "AAPL", "MSFT", "TSLA", "NKE", "AMZN", "GOOGL", "META", "JPM", "UNH"]


class DataServiceSettings(BaseSettings):
    """行情缓存服务配置"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── 基础配置 ──────────────────────────────────────────
    HOST: str = Field(default="0.0.0.0")
    PORT: int = Field(default=8001)
    DEBUG: bool = Field(default=False)
    ALLOWED_ORIGINS: List[str] = Field(
        default_factory=lambda: ["*"]
    )

    # ── Alpha Vantage 上游配置 ─────────────────────────────
    # 兼容移动端沿用的几种环境变量名
    ALPHA_VANTAGE_API_KEY: str = Field(
        default="",
        validation_alias=AliasChoices(
            "ALPHA_VANTAGE_API_KEY",
            "ALPHA_VANTAGE_KEY",
            "EXPO_PUBLIC_ALPHA_VANTAGE_API_KEY",
        ),
    )
    ALPHA_VANTAGE_BASE_URL: str = Field(default="https://www.alphavantage.co/query")
    UPSTREAM_TIMEOUT_SECONDS: float = Field(default=10.0)
    UPSTREAM_MAX_ATTEMPTS: int = Field(default=3)
    UPSTREAM_BACKOFF_BASE_SECONDS: float = Field(default=0.25)
    # False 时 "Error Message" 类错误不再重试（限流提示仍会重试）
    UPSTREAM_RETRY_DATA_ERRORS: bool = Field(default=True)

    # ── 持久化存储配置 ─────────────────────────────────────
    DURABLE_BACKEND: str = Field(default="auto")    # auto / mongodb / file
    CACHE_DIR: str = Field(default="./cache")       # 文件存储目录
    ALPHA_CACHE_COLLECTION: str = Field(default="alpha_cache")

    # ── MongoDB 配置（支持服务发现） ───────────────────────
    MONGODB_HOST: str = Field(default_factory=_default_mongo_host)
    MONGODB_PORT: int = Field(default=27017)
    MONGODB_USERNAME: str = Field(default="")
    MONGODB_PASSWORD: str = Field(default="")
    MONGODB_DATABASE: str = Field(default="stocklens")
    MONGODB_AUTH_SOURCE: str = Field(default="admin")
    MONGODB_ENABLED: bool = Field(default=True)
    MONGO_MAX_CONNECTIONS: int = Field(default=20)
    MONGO_MIN_CONNECTIONS: int = Field(default=1)
    MONGO_CONNECT_TIMEOUT_MS: int = Field(default=30000)
    MONGO_SOCKET_TIMEOUT_MS: int = Field(default=60000)
    MONGO_SERVER_SELECTION_TIMEOUT_MS: int = Field(default=5000)

    @property
    def MONGO_URI(self) -> str:
        if self.MONGODB_USERNAME and self.MONGODB_PASSWORD:
            return (
                f"mongodb://{self.MONGODB_USERNAME}:{self.MONGODB_PASSWORD}"
                f"@{self.MONGODB_HOST}:{self.MONGODB_PORT}"
                f"/{self.MONGODB_DATABASE}?authSource={self.MONGODB_AUTH_SOURCE}"
            )
        return f"mongodb://{self.MONGODB_HOST}:{self.MONGODB_PORT}/{self.MONGODB_DATABASE}"

    # ── 预取 / 清理 ───────────────────────────────────────
    PREFETCH_TICKERS: List[str] = Field(default_factory=lambda: list(_DEFAULT_PREFETCH))
    PREFETCH_ON_STARTUP: bool = Field(default=False)
    CACHE_PRUNE_DAYS: int = Field(default=0)        # 0 表示启动时不清理

    # ── 日志配置 ──────────────────────────────────────────
    LOG_LEVEL: str = Field(default="INFO")


@lru_cache
def get_settings() -> DataServiceSettings:
    """获取全局配置（单例）"""
    return DataServiceSettings()


settings = get_settings()
