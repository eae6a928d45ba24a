"""
多标的动量扫描服务
在同一周期上扫描多个标的，按动量强度排序并给出置信度
"""

import asyncio
import logging
import time
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from momentum_service.config import AnalyzerConfig, ScannerConfig, settings
from momentum_service.layers.acquisition import DataProvider, get_data_provider
from momentum_service.layers.analysis import MomentumAnalyzer
from momentum_service.models.errors import InvalidTimeframesError
from momentum_service.models.momentum import (
    MomentumDirection,
    MomentumResult,
    MomentumStrength,
    Timeframe,
    is_valid_timeframe,
    to_timeframe,
)

logger = logging.getLogger(__name__)


class SignalFilter(str, Enum):
    ALL = "all"
    BULLISH = "bullish"
    BEARISH = "bearish"


# ── 请求 / 响应模型 ───────────────────────────────────────

class ScanRequest(BaseModel):
    symbols: List[str] = Field(min_length=1)
    timeframe: Optional[str] = None
    signal_filter: SignalFilter = SignalFilter.ALL
    min_confidence: float = Field(default=0, ge=0, le=100)
    limit: int = Field(default=50, ge=1, le=100)
    lookback: Optional[int] = Field(default=None, gt=0)


class RankedScanResult(BaseModel):
    symbol: str
    timeframe: Timeframe
    momentum_score: float
    direction: MomentumDirection
    strength: MomentumStrength
    rsi: Optional[float] = None
    macd_histogram: Optional[float] = None
    volume_ratio: Optional[float] = None
    confidence: int
    timestamp: int


class ScanResponse(BaseModel):
    total_scanned: int
    results_returned: int
    timeframe: Timeframe
    signal_filter: SignalFilter
    results: List[RankedScanResult]
    timestamp: int


def calculate_confidence(result: MomentumResult) -> int:
    """
    根据指标一致性计算置信度（0-100）

    基础 50 分，强度加分；方向非中性时 RSI 未过热、MACD 柱同向、
    放量（> 1.2 倍）各加 10 分
    """
    confidence = 50
    if result.strength is MomentumStrength.STRONG:
        confidence += 30
    elif result.strength is MomentumStrength.MODERATE:
        confidence += 15

    direction = result.direction
    if direction is not MomentumDirection.NEUTRAL:
        if result.rsi is not None and 30 < result.rsi < 70:
            confidence += 10
        hist = result.macd_signal
        if hist is not None and (
            (direction is MomentumDirection.BULLISH and hist > 0)
            or (direction is MomentumDirection.BEARISH and hist < 0)
        ):
            confidence += 10
        if result.volume_ratio is not None and result.volume_ratio > 1.2:
            confidence += 10

    return int(min(100, max(0, round(confidence))))


class ScannerService:
    """多标的扫描"""

    def __init__(
        self,
        provider: DataProvider,
        analyzer_config: Optional[AnalyzerConfig] = None,
        config: Optional[ScannerConfig] = None,
    ):
        self.config = config or ScannerConfig()
        self._provider = provider
        self._analyzer = MomentumAnalyzer(analyzer_config)

    async def scan(self, request: ScanRequest) -> ScanResponse:
        if len(request.symbols) > self.config.max_symbols_per_scan:
            raise ValueError(
                f"单次最多扫描 {self.config.max_symbols_per_scan} 个标的，"
                f"实际 {len(request.symbols)} 个"
            )
        if request.timeframe is None:
            timeframe = self.config.default_timeframe
        elif is_valid_timeframe(request.timeframe):
            timeframe = to_timeframe(request.timeframe)
        else:
            raise InvalidTimeframesError(message=f"不支持的时间周期: {request.timeframe}")

        lookback = request.lookback or self.config.default_lookback
        semaphore = asyncio.Semaphore(self.config.concurrent_scans)

        async def _scan_one(symbol: str) -> Optional[RankedScanResult]:
            async with semaphore:
                try:
                    candles = await self._provider.get_candles(symbol, timeframe, lookback)
                    result = self._analyzer.analyze(symbol, timeframe, candles)
                except Exception as exc:
                    logger.warning(f"扫描 {symbol} 失败，已跳过: {exc}")
                    return None
            return RankedScanResult(
                symbol=symbol,
                timeframe=timeframe,
                momentum_score=result.score,
                direction=result.direction,
                strength=result.strength,
                rsi=result.rsi,
                macd_histogram=result.macd_signal,
                volume_ratio=result.volume_ratio,
                confidence=calculate_confidence(result),
                timestamp=result.timestamp,
            )

        scanned = await asyncio.gather(*(_scan_one(s) for s in request.symbols))
        ranked = [r for r in scanned if r is not None]

        if request.signal_filter is not SignalFilter.ALL:
            wanted = MomentumDirection(request.signal_filter.value)
            ranked = [r for r in ranked if r.direction is wanted]
        ranked = [r for r in ranked if r.confidence >= request.min_confidence]
        ranked.sort(key=lambda r: abs(r.momentum_score), reverse=True)
        ranked = ranked[:request.limit]

        logger.info(
            f"扫描完成: {len(request.symbols)} 个标的，返回 {len(ranked)} 条（{timeframe.value}）"
        )
        return ScanResponse(
            total_scanned=len(request.symbols),
            results_returned=len(ranked),
            timeframe=timeframe,
            signal_filter=request.signal_filter,
            results=ranked,
            timestamp=int(time.time() * 1000),
        )


# ── 模块级别单例 ──────────────────────────────────────────
_scanner_service: Optional[ScannerService] = None


def get_scanner_service() -> ScannerService:
    global _scanner_service
    if _scanner_service is None:
        provider = get_data_provider(settings.DATA_PROVIDER, seed=settings.DATA_PROVIDER_SEED)
        _scanner_service = ScannerService(
            provider, settings.analyzer_config(), settings.scanner_config()
        )
    return _scanner_service
