"""
数据流分层架构
  Layer 1 – Acquisition  : K 线获取（合成数据 / yfinance）
  Layer 2 – Processing   : OHLCV 清洗与标准化
  Layer 3 – Analysis     : 技术指标与单周期动量评分
  Layer 4 – Cache        : 进程内结果缓存（TTL + LRU）
"""
