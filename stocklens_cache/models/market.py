"""行情数据模型：缓存键、持久化记录、解析后的序列与报价"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from types import MappingProxyType
from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict


class DataClass(str, Enum):
    """数据类别，取值同时作为持久化表中的 interval 列"""
    MONTHLY = "monthly"
    DAILY = "daily"
    QUOTE = "quote"


# 全局 TTL 策略，运行期不可修改
TTL_POLICY = MappingProxyType({
    DataClass.MONTHLY: timedelta(days=30),
    DataClass.DAILY: timedelta(days=1),
    DataClass.QUOTE: timedelta(minutes=5),
})


def ttl_for(data_class: DataClass) -> timedelta:
    return TTL_POLICY[DataClass(data_class)]


@dataclass(frozen=True)
class CacheKey:
    symbol: str
    data_class: DataClass
    params: str = ""

    @classmethod
    def of(cls, symbol: str, data_class, params: str = "") -> "CacheKey":
        """规范化代码（去空白、大写）后构造键"""
        if not symbol or not symbol.strip():
            raise ValueError("symbol must be a non-empty string")
        return cls(symbol.strip().upper(), DataClass(data_class), params or "")

    def __str__(self) -> str:
        return f"av:{self.data_class.value}:{self.symbol}:{self.params}"


@dataclass(frozen=True)
class CacheRecord:
    """持久化层中的唯一表示：原始上游响应 + 拉取时间"""
    key: CacheKey
    raw_payload: str
    fetched_at: datetime


class OHLCV(BaseModel):
    model_config = ConfigDict(frozen=True)

    date: str
    open: float
    high: float
    low: float
    close: float
    adjusted_close: Optional[float] = None
    volume: Optional[int] = None


class Quote(BaseModel):
    model_config = ConfigDict(frozen=True)

    symbol: str
    price: float
    timestamp: Optional[str] = None


ParsedSeries = List[OHLCV]
ParsedData = Union[ParsedSeries, Quote]


@dataclass(frozen=True)
class CacheResult:
    """一次读取的结果及其来源：memory / durable / upstream"""
    value: Any
    source: str
    stale: bool = False
