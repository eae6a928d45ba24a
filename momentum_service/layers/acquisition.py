"""
Layer 1 – 数据获取层
从数据提供商拉取 K 线，统一规范化后向上层提供
``get_candles(symbol, timeframe, limit)`` 接口。
"""

import asyncio
import hashlib
import logging
import time
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

import numpy as np

from momentum_service.layers.processing import get_processing_layer
from momentum_service.models.errors import DataProviderError
from momentum_service.models.momentum import Candle, Timeframe

logger = logging.getLogger(__name__)


@runtime_checkable
class DataProvider(Protocol):
    """K 线数据源接口，失败时抛出异常"""

    async def get_candles(
        self, symbol: str, timeframe: Timeframe, limit: int
    ) -> List[Candle]:
        ...


# ── 合成数据 ──────────────────────────────────────────────

class SyntheticDataProvider:
    """
    随机游走 K 线生成器

    同一 seed + symbol + timeframe 生成的序列固定，便于测试与演示；
    不代表任何交易所的真实行情。
    """

    name = "synthetic"

    def __init__(
        self,
        seed: Optional[int] = None,
        base_price: float = 100.0,
        volatility: float = 0.02,
        drift: float = 0.0004,
    ):
        self.seed = seed
        self.base_price = base_price
        self.volatility = volatility
        self.drift = drift

    def _rng(self, symbol: str, timeframe: Timeframe) -> np.random.Generator:
        if self.seed is None:
            return np.random.default_rng()
        digest = hashlib.md5(f"{self.seed}:{symbol}:{timeframe.value}".encode()).hexdigest()
        return np.random.default_rng(int(digest[:16], 16))

    def generate(
        self, symbol: str, timeframe: Timeframe, limit: int, end_ms: Optional[int] = None
    ) -> List[Candle]:
        rng = self._rng(symbol, timeframe)
        end_ms = end_ms or int(time.time() * 1000)
        end_ms -= end_ms % timeframe.ms

        returns = rng.normal(self.drift, self.volatility, size=limit)
        closes = self.base_price * np.exp(np.cumsum(returns))
        opens = np.concatenate(([self.base_price], closes[:-1]))
        spread = np.abs(rng.normal(0, self.volatility / 2, size=limit))
        highs = np.maximum(opens, closes) * (1 + spread)
        lows = np.minimum(opens, closes) * (1 - spread)
        volumes = rng.uniform(1_000_000, 6_000_000, size=limit)

        start_ms = end_ms - (limit - 1) * timeframe.ms
        return [
            Candle(
                timestamp=start_ms + i * timeframe.ms,
                open=float(opens[i]),
                high=float(highs[i]),
                low=float(lows[i]),
                close=float(closes[i]),
                volume=float(volumes[i]),
            )
            for i in range(limit)
        ]

    async def get_candles(
        self, symbol: str, timeframe: Timeframe, limit: int
    ) -> List[Candle]:
        return self.generate(symbol, timeframe, limit)


# ── yfinance ──────────────────────────────────────────────

# yfinance 不提供 4h 周期，使用 1h 重采样
_YF_INTERVALS: Dict[Timeframe, str] = {
    Timeframe.M1: "1m",
    Timeframe.M5: "5m",
    Timeframe.M15: "15m",
    Timeframe.H1: "1h",
    Timeframe.H4: "1h",
    Timeframe.D1: "1d",
}

# 各周期可请求的最长历史
_YF_PERIODS: Dict[Timeframe, str] = {
    Timeframe.M1: "7d",
    Timeframe.M5: "60d",
    Timeframe.M15: "60d",
    Timeframe.H1: "730d",
    Timeframe.H4: "730d",
    Timeframe.D1: "5y",
}


class YFinanceDataProvider:
    """通过 yfinance 获取 K 线（同步接口放到线程池执行）"""

    name = "yfinance"

    def __init__(self):
        self._proc = get_processing_layer()

    def _fetch(self, symbol: str, timeframe: Timeframe, limit: int) -> List[Candle]:
        import yfinance as yf

        df = yf.Ticker(symbol).history(
            period=_YF_PERIODS[timeframe], interval=_YF_INTERVALS[timeframe]
        )
        if df is None or df.empty:
            raise DataProviderError(
                f"yfinance 未返回数据: {symbol} {timeframe.value}",
                timeframe=timeframe,
                symbol=symbol,
            )
        if timeframe is Timeframe.H4:
            df = df.resample("4h").agg({
                "Open": "first",
                "High": "max",
                "Low": "min",
                "Close": "last",
                "Volume": "sum",
            }).dropna()

        df = df.reset_index()
        time_col = df.columns[0]
        records: List[Dict[str, Any]] = [
            {
                "timestamp": row[time_col],
                "open": row["Open"],
                "high": row["High"],
                "low": row["Low"],
                "close": row["Close"],
                "volume": row["Volume"],
            }
            for _, row in df.iterrows()
        ]
        normalized = self._proc.tail(self._proc.normalize_ohlcv(records), limit)
        return self._proc.to_candles(normalized)

    async def get_candles(
        self, symbol: str, timeframe: Timeframe, limit: int
    ) -> List[Candle]:
        try:
            return await asyncio.to_thread(self._fetch, symbol, timeframe, limit)
        except DataProviderError:
            raise
        except Exception as exc:
            logger.warning(f"yfinance K 线获取失败（{symbol} {timeframe.value}）: {exc}")
            raise DataProviderError(
                f"yfinance K 线获取失败: {exc}", timeframe=timeframe, symbol=symbol
            ) from exc


# ── 工厂 ──────────────────────────────────────────────────

def get_data_provider(name: str, seed: Optional[int] = None) -> DataProvider:
    """根据名称创建数据提供商，mock 为 synthetic 的别名"""
    key = name.lower()
    if key in ("synthetic", "mock"):
        return SyntheticDataProvider(seed=seed)
    if key == "yfinance":
        return YFinanceDataProvider()
    raise ValueError(f"未知的数据提供商: {name}")
