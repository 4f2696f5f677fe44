"""
StockLens 行情缓存服务
位于应用与 Alpha Vantage 行情接口之间的两级读穿透缓存

架构分层：
  数据获取层 (Acquisition)  → 调用上游 HTTP 接口，重试 + 错误分类
  持久化层   (Durable)      → MongoDB / 文件，进程重启后仍可用
  内存层     (Memory)       → 进程内最快路径
  刷新协调   (Refresh)      → 同一键同一时刻最多一个后台刷新
  通知       (Notifier)     → 刷新完成 / 缓存命中事件发布
  缓存门面   (Cache)        → 按数据类别 TTL 组织以上各层
"""

__version__ = "1.0.0"
