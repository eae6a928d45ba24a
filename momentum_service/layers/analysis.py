"""
Layer 3 – 动量分析层
在单一周期的 K 线序列上计算 RSI / MACD / 成交量比率，合成动量评分
"""

import logging
import time
from typing import Optional, Sequence

import pandas as pd

from momentum_service.config import AnalyzerConfig
from momentum_service.layers import indicators
from momentum_service.models.errors import InsufficientDataError
from momentum_service.models.momentum import (
    Candle,
    MomentumDirection,
    MomentumResult,
    MomentumStrength,
    Timeframe,
)

logger = logging.getLogger(__name__)

# ── 评分阈值 ──────────────────────────────────────────────
DIRECTION_THRESHOLD = 15
STRONG_THRESHOLD = 60
MODERATE_THRESHOLD = 30

RSI_SCORE_RANGE = 50
MACD_SCORE_RANGE = 30
PRICE_SCORE_RANGE = 20
PRICE_CHANGE_WINDOW = 5
VOLUME_MULTIPLIER_RANGE = (0.8, 1.5)


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def classify_direction(score: float) -> MomentumDirection:
    if score > DIRECTION_THRESHOLD:
        return MomentumDirection.BULLISH
    if score < -DIRECTION_THRESHOLD:
        return MomentumDirection.BEARISH
    return MomentumDirection.NEUTRAL


def classify_strength(score: float) -> MomentumStrength:
    magnitude = abs(score)
    if magnitude > STRONG_THRESHOLD:
        return MomentumStrength.STRONG
    if magnitude > MODERATE_THRESHOLD:
        return MomentumStrength.MODERATE
    return MomentumStrength.WEAK


class MomentumAnalyzer:
    """单周期动量分析器，除配置外无状态"""

    def __init__(self, config: Optional[AnalyzerConfig] = None):
        self.config = config or AnalyzerConfig()

    @property
    def min_candles(self) -> int:
        return self.config.min_candles

    def analyze(
        self, symbol: str, timeframe: Timeframe, candles: Sequence[Candle]
    ) -> MomentumResult:
        """
        分析一组 K 线的动量

        Args:
            symbol: 交易标的
            timeframe: K 线周期
            candles: 按时间升序排列的 K 线

        Raises:
            InsufficientDataError: K 线数量少于 macd_slow + macd_signal
        """
        cfg = self.config
        if len(candles) < self.min_candles:
            raise InsufficientDataError(
                required=self.min_candles,
                actual=len(candles),
                symbol=symbol,
                timeframe=timeframe,
            )

        closes = pd.Series([c.close for c in candles], dtype=float)
        volumes = pd.Series([c.volume for c in candles], dtype=float)

        rsi = indicators.rsi(closes, cfg.rsi_period)
        histogram = indicators.macd(
            closes, cfg.macd_fast, cfg.macd_slow, cfg.macd_signal
        ).histogram
        volume_ratio = indicators.volume_ratio(volumes, cfg.volume_avg_period)
        price_change = indicators.price_change_pct(closes, PRICE_CHANGE_WINDOW)

        score = self.score(rsi, histogram, volume_ratio, price_change)
        logger.debug(
            f"{symbol} {timeframe.value}: rsi={rsi:.2f} hist={histogram:.4f} "
            f"vol_ratio={volume_ratio:.2f} score={score:.2f}"
        )

        return MomentumResult(
            symbol=symbol,
            timeframe=timeframe,
            timestamp=int(time.time() * 1000),
            direction=classify_direction(score),
            strength=classify_strength(score),
            score=score,
            rsi=rsi,
            macd_signal=histogram,
            volume_ratio=volume_ratio,
            metadata={
                "candle_count": len(candles),
                "latest_close": float(closes.iloc[-1]),
            },
        )

    # ── 评分 ──────────────────────────────────────────────

    def rsi_score(self, rsi: float) -> float:
        """超买 / 超卖区非线性放大，中性区线性衰减"""
        ob, os_ = self.config.rsi_overbought, self.config.rsi_oversold
        if rsi > ob:
            value = (rsi - ob) / (100 - ob) * RSI_SCORE_RANGE
        elif rsi < os_:
            value = -(os_ - rsi) / os_ * RSI_SCORE_RANGE
        else:
            value = (rsi - 50) / 20 * 25
        return clamp(value, -RSI_SCORE_RANGE, RSI_SCORE_RANGE)

    def score(
        self,
        rsi: float,
        macd_histogram: float,
        volume_ratio: float,
        price_change: float,
    ) -> float:
        """合成动量评分，范围 [-100, 100]"""
        macd_score = clamp(macd_histogram * 10, -MACD_SCORE_RANGE, MACD_SCORE_RANGE)
        price_score = clamp(price_change * 5, -PRICE_SCORE_RANGE, PRICE_SCORE_RANGE)
        multiplier = clamp(0.8 + volume_ratio * 0.2, *VOLUME_MULTIPLIER_RANGE)
        raw = (self.rsi_score(rsi) + macd_score + price_score) * multiplier
        return clamp(raw, -100, 100)
