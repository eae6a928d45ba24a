"""
多周期动量分析服务
独立的动量分析微服务，提供 HTTP 接口

架构分层：
  数据获取层 (Acquisition)  → 从 K 线数据提供商拉取原始数据
  处理层     (Processing)   → 数据清洗、格式化、标准化
  分析层     (Analysis)     → RSI / MACD / 成交量比 → 动量评分
  缓存层     (Cache)        → 进程内 TTL + LRU 结果缓存
  编排层     (Services)     → 多周期并发分析、周期一致性与汇总判断
"""

__version__ = "1.0.0"
