"""
数据处理层
把持久化的原始 JSON 解码为类型化的序列 / 报价，
并提供基于 pandas 的规范化与时间窗口裁剪。
"""

import json
import logging
from typing import Any, Dict, List, Optional, Union

import pandas as pd

from stocklens_cache.exceptions import DecodeError
from stocklens_cache.models.market import OHLCV, DataClass, ParsedData, Quote

logger = logging.getLogger(__name__)

# 同一接口的几种返回形态
_SERIES_KEYS = {
    DataClass.MONTHLY: ("Monthly Adjusted Time Series", "Monthly Time Series"),
    DataClass.DAILY: ("Time Series (Daily)", "Daily Time Series"),
}
_QUOTE_KEY = "Global Quote"


def _load(raw: Union[str, bytes, Dict[str, Any]]) -> Dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    try:
        payload = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise DecodeError(f"原始数据不是合法 JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise DecodeError("原始数据顶层不是对象")
    return payload


def _optional_float(row: Dict[str, Any], field: str) -> Optional[float]:
    value = row.get(field)
    return float(value) if value not in (None, "") else None


def _optional_int(row: Dict[str, Any], field: str) -> Optional[int]:
    value = row.get(field)
    return int(float(value)) if value not in (None, "") else None


class ProcessingLayer:
    """数据处理层：解码 + 规范化"""

    # ── 解码 ──────────────────────────────────────────────

    def decode(self, raw: Union[str, bytes, Dict[str, Any]], data_class: DataClass, symbol: str = "") -> ParsedData:
        """按数据类别解码原始响应，结构不符时抛出 DecodeError"""
        data_class = DataClass(data_class)
        if data_class is DataClass.QUOTE:
            return self.decode_quote(raw, symbol)
        return self.decode_series(raw, data_class)

    def decode_series(self, raw: Union[str, bytes, Dict[str, Any]], data_class: DataClass) -> List[OHLCV]:
        """
        解析月度 / 日度复权时间序列，按日期升序返回

        每个条目形如 {"1. open": "100", ..., "5. adjusted close": "104", "6. volume": "1000"}
        """
        payload = _load(raw)
        series = None
        for name in _SERIES_KEYS[DataClass(data_class)]:
            if isinstance(payload.get(name), dict):
                series = payload[name]
                break
        if series is None:
            raise DecodeError(f"未找到 {data_class.value} 时间序列字段")

        records = []
        try:
            for date, row in series.items():
                records.append(OHLCV(
                    date=date,
                    open=float(row["1. open"]),
                    high=float(row["2. high"]),
                    low=float(row["3. low"]),
                    close=float(row["4. close"]),
                    adjusted_close=_optional_float(row, "5. adjusted close"),
                    volume=_optional_int(row, "6. volume"),
                ))
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise DecodeError(f"时间序列条目格式错误: {exc}") from exc

        records.sort(key=lambda r: r.date)
        return records

    def decode_quote(self, raw: Union[str, bytes, Dict[str, Any]], symbol: str = "") -> Quote:
        """解析 GLOBAL_QUOTE 响应；空报价对象（未知代码）视为解码失败"""
        payload = _load(raw)
        quote = payload.get(_QUOTE_KEY)
        if quote is None:
            # 部分变体的键名带有后缀
            name = next((k for k in payload if k.startswith(_QUOTE_KEY)), None)
            quote = payload[name] if name else payload
        if not isinstance(quote, dict):
            raise DecodeError("报价字段不是对象")

        price = quote.get("05. price", quote.get("price"))
        if price in (None, ""):
            raise DecodeError("报价缺少价格字段")
        try:
            price = float(price)
        except (TypeError, ValueError) as exc:
            raise DecodeError(f"价格无法解析: {price!r}") from exc

        return Quote(
            symbol=quote.get("01. symbol") or symbol,
            price=price,
            timestamp=quote.get("07. latest trading day"),
        )

    # ── 规范化 / 窗口 ─────────────────────────────────────

    def normalize_ohlcv(self, records: List[Union[OHLCV, Dict[str, Any]]]) -> pd.DataFrame:
        """
        将 OHLCV 记录列表标准化为 DataFrame

        标准列：date, open, high, low, close, adjusted_close, volume
        """
        if not records:
            return pd.DataFrame()

        df = pd.DataFrame([
            r.model_dump() if isinstance(r, OHLCV) else dict(r) for r in records
        ])

        for col in ["open", "high", "low", "close"]:
            if col not in df.columns:
                df[col] = 0.0
            df[col] = pd.to_numeric(df[col], errors="coerce").fillna(0.0)
        for col in ["adjusted_close", "volume"]:
            if col in df.columns:
                df[col] = pd.to_numeric(df[col], errors="coerce")

        df["date"] = pd.to_datetime(df["date"], errors="coerce")
        df = df.dropna(subset=["date"])
        df["date"] = df["date"].dt.strftime("%Y-%m-%d")

        df = df.drop_duplicates(subset=["date"], keep="last")
        df = df.sort_values("date").reset_index(drop=True)

        return df

    def filter_date_range(
        self,
        df: pd.DataFrame,
        start_date: Optional[str],
        end_date: Optional[str],
    ) -> pd.DataFrame:
        """按日期范围过滤数据"""
        if df.empty:
            return df
        if start_date:
            df = df[df["date"] >= start_date]
        if end_date:
            df = df[df["date"] <= end_date]
        return df.reset_index(drop=True)

    def tail(self, df: pd.DataFrame, n: int) -> pd.DataFrame:
        """保留最近 n 条"""
        if df.empty:
            return df
        return df.tail(n).reset_index(drop=True)

    def to_records(self, df: pd.DataFrame) -> List[Dict[str, Any]]:
        """DataFrame 转换为字典列表，缺失值转为 None 以便 JSON 序列化"""
        if df.empty:
            return []
        df = df.astype(object).where(pd.notna(df), None)
        records = df.to_dict(orient="records")
        for record in records:
            if record.get("volume") is not None:
                record["volume"] = int(record["volume"])
        return records


# ── 模块级别单例 ──────────────────────────────────────────
_processor: Optional[ProcessingLayer] = None


def get_processing_layer() -> ProcessingLayer:
    global _processor
    if _processor is None:
        _processor = ProcessingLayer()
    return _processor
