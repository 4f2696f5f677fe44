"""
缓存分层
  acquisition : Alpha Vantage HTTP 客户端（重试 / 退避 / 错误分类）
  processing  : 原始 JSON 解码、pandas 规范化
  durable     : 持久化（MongoDB → 文件）
  memory      : 进程内缓存
  refresh     : 后台刷新去重
  notifier    : 事件发布 / 订阅
  cache       : 缓存门面
"""
