"""
行情缓存异常体系

  MarketDataError
    ├── ConfigurationError     缺少 API Key 等配置问题，不重试
    ├── TransientNetworkError  HTTP 非 2xx / 连接失败 / 超时，可重试
    ├── UpstreamDataError      上游返回了错误字段（如无效代码）
    │     └── RateLimitError   上游返回限流 / 提示字段
    ├── DecodeError            响应结构不符合预期，视为缓存未命中
    └── StorageError           持久化层读写失败，降级继续
"""


class MarketDataError(Exception):
    """行情缓存相关异常的基类"""


class ConfigurationError(MarketDataError):
    pass


class TransientNetworkError(MarketDataError):
    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.status_code = status_code


class UpstreamDataError(MarketDataError):
    retryable = False

    def __init__(self, message: str, field: str = None):
        super().__init__(message)
        self.field = field


class RateLimitError(UpstreamDataError):
    retryable = True


class DecodeError(MarketDataError):
    pass


class StorageError(MarketDataError):
    pass
