"""
多周期动量分析服务
整合数据获取层 + 分析层 + 缓存层，计算多周期方向一致性与共振评分
"""

import asyncio
import logging
import time
from typing import Dict, List, Optional, Tuple

from momentum_service.config import MultiTimeframeConfig, settings
from momentum_service.layers.acquisition import DataProvider, get_data_provider
from momentum_service.layers.analysis import (
    MomentumAnalyzer,
    classify_direction,
    classify_strength,
)
from momentum_service.layers.cache import CacheStats, ResultCache
from momentum_service.models.errors import InvalidTimeframesError
from momentum_service.models.momentum import (
    TIMEFRAMES,
    AnalysisRequest,
    MomentumDirection,
    MomentumResult,
    MomentumStrength,
    MultiTimeframeResult,
    Timeframe,
    TimeframeAlignment,
    parse_timeframes,
)

logger = logging.getLogger(__name__)

STRONG_OVERALL_THRESHOLD = 50
MODERATE_OVERALL_THRESHOLD = 30


def _chunks(items: List[Timeframe], size: int) -> List[List[Timeframe]]:
    return [items[i:i + size] for i in range(0, len(items), size)]


def calculate_alignment(
    results: Dict[Timeframe, MomentumResult], threshold: float
) -> TimeframeAlignment:
    """
    计算多周期方向一致性

    主导方向取看多 / 看空中累计权重较大的一方，相等时为中性；
    alignment_score 为与主导方向一致的周期占比，
    weighted_score 为主导方向（或中性）所占权重比例。
    """
    buckets: Dict[MomentumDirection, Dict[str, float]] = {
        d: {"count": 0, "weight": 0.0} for d in MomentumDirection
    }
    for tf, result in results.items():
        buckets[result.direction]["count"] += 1
        buckets[result.direction]["weight"] += tf.weight

    bull = buckets[MomentumDirection.BULLISH]["weight"]
    bear = buckets[MomentumDirection.BEARISH]["weight"]
    if bull > bear:
        dominant = MomentumDirection.BULLISH
    elif bear > bull:
        dominant = MomentumDirection.BEARISH
    else:
        dominant = MomentumDirection.NEUTRAL

    total = len(results)
    total_weight = sum(b["weight"] for b in buckets.values())
    alignment_score = buckets[dominant]["count"] / total * 100 if total else 0.0
    weighted_score = buckets[dominant]["weight"] / total_weight * 100 if total_weight else 0.0

    aligned_timeframes = [tf for tf, r in results.items() if r.direction == dominant]
    divergent_timeframes = [
        tf for tf, r in results.items()
        if r.direction != dominant and r.direction != MomentumDirection.NEUTRAL
    ]

    return TimeframeAlignment(
        aligned=alignment_score >= threshold * 100,
        aligned_timeframes=aligned_timeframes,
        divergent_timeframes=divergent_timeframes,
        dominant_direction=dominant,
        alignment_score=alignment_score,
        weighted_score=weighted_score,
    )


def calculate_overall_momentum(
    results: Dict[Timeframe, MomentumResult], alignment: TimeframeAlignment
) -> Tuple[MomentumDirection, MomentumStrength, float]:
    """按周期权重加权平均评分，得到整体方向、强度与共振评分"""
    if not results:
        return MomentumDirection.NEUTRAL, MomentumStrength.WEAK, 0.0

    total_weight = sum(tf.weight for tf in results)
    avg_score = sum(r.score * tf.weight for tf, r in results.items()) / total_weight
    magnitude = abs(avg_score)

    if alignment.aligned and magnitude > STRONG_OVERALL_THRESHOLD:
        strength = MomentumStrength.STRONG
    elif alignment.aligned or magnitude > MODERATE_OVERALL_THRESHOLD:
        strength = MomentumStrength.MODERATE
    else:
        strength = MomentumStrength.WEAK

    aligned_ratio = len(alignment.aligned_timeframes) / len(results)
    confluence = min(
        100.0,
        alignment.weighted_score * 0.4 + magnitude * 0.4 + aligned_ratio * 100 * 0.2,
    )
    return classify_direction(avg_score), strength, confluence


class MultiTimeframeService:
    """多周期动量编排：缓存优先，缺失周期分组并发拉取与分析"""

    def __init__(
        self,
        provider: DataProvider,
        config: Optional[MultiTimeframeConfig] = None,
        cache: Optional[ResultCache] = None,
        analyzer: Optional[MomentumAnalyzer] = None,
    ):
        self.config = config or MultiTimeframeConfig()
        self._provider = provider
        self._analyzer = analyzer or MomentumAnalyzer(self.config.analyzer)
        self._cache = cache or ResultCache(self.config.cache)

    @property
    def cache(self) -> ResultCache:
        return self._cache

    # ── 多周期分析 ────────────────────────────────────────

    async def analyze(self, request: AnalysisRequest) -> MultiTimeframeResult:
        """
        多周期动量分析

        单个周期获取或分析失败只记录警告并从结果中剔除；
        只有在没有任何可识别周期时才抛出 InvalidTimeframesError。
        """
        symbol = request.symbol
        lookback = request.lookback or self.config.default_lookback

        timeframes = parse_timeframes(request.timeframes)
        if not timeframes:
            raise InvalidTimeframesError(symbol=symbol)

        cached, missing = self._partition(symbol, timeframes)
        if cached:
            logger.debug(f"{symbol} 缓存命中周期: {[tf.value for tf in cached]}")

        fresh = await self._analyze_missing(symbol, missing, lookback)
        self._cache.set_many(fresh.values())

        results: Dict[Timeframe, MomentumResult] = {}
        for tf in timeframes:
            if tf in cached:
                results[tf] = cached[tf]
            elif tf in fresh:
                results[tf] = fresh[tf]

        alignment = calculate_alignment(results, self.config.alignment_threshold)
        direction, strength, confluence = calculate_overall_momentum(results, alignment)

        logger.info(
            f"{symbol} 多周期分析完成: {len(results)}/{len(timeframes)} 个周期，"
            f"方向 {direction.value}，共振 {confluence:.1f}"
        )
        return MultiTimeframeResult(
            symbol=symbol,
            timestamp=int(time.time() * 1000),
            results=results,
            alignment=alignment,
            overall_direction=direction,
            overall_strength=strength,
            confluence_score=confluence,
        )

    async def analyze_all_timeframes(
        self, symbol: str, lookback: Optional[int] = None
    ) -> MultiTimeframeResult:
        """分析全部支持的周期"""
        return await self.analyze(
            AnalysisRequest(symbol=symbol, timeframes=[tf.value for tf in TIMEFRAMES], lookback=lookback)
        )

    async def analyze_single(
        self, symbol: str, timeframe: Timeframe, lookback: Optional[int] = None
    ) -> MomentumResult:
        """单周期分析（缓存优先），异常直接抛出"""
        cached = self._cache.get(symbol, timeframe)
        if cached is not None:
            return cached
        result = await self._fetch_and_analyze(
            symbol, timeframe, lookback or self.config.default_lookback
        )
        self._cache.set(result)
        return result

    # ── 内部步骤 ──────────────────────────────────────────

    def _partition(
        self, symbol: str, timeframes: List[Timeframe]
    ) -> Tuple[Dict[Timeframe, MomentumResult], List[Timeframe]]:
        cached: Dict[Timeframe, MomentumResult] = {}
        missing: List[Timeframe] = []
        for tf, result in self._cache.get_many(symbol, timeframes).items():
            if result is None:
                missing.append(tf)
            else:
                cached[tf] = result
        return cached, missing

    async def _fetch_and_analyze(
        self, symbol: str, timeframe: Timeframe, lookback: int
    ) -> MomentumResult:
        fetch = self._provider.get_candles(symbol, timeframe, lookback)
        if self.config.fetch_timeout_s is not None:
            candles = await asyncio.wait_for(fetch, timeout=self.config.fetch_timeout_s)
        else:
            candles = await fetch
        return self._analyzer.analyze(symbol, timeframe, candles)

    async def _analyze_missing(
        self, symbol: str, timeframes: List[Timeframe], lookback: int
    ) -> Dict[Timeframe, MomentumResult]:
        """
        按 max_concurrency 分组：组内并发，组间顺序执行，
        任意时刻最多 max_concurrency 个拉取在进行
        """
        results: Dict[Timeframe, MomentumResult] = {}
        for group in _chunks(timeframes, self.config.max_concurrency):
            outcomes = await asyncio.gather(
                *(self._fetch_and_analyze(symbol, tf, lookback) for tf in group),
                return_exceptions=True,
            )
            for tf, outcome in zip(group, outcomes):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                if isinstance(outcome, BaseException):
                    logger.warning(
                        f"{symbol} {tf.value} 分析失败，已跳过: "
                        f"{type(outcome).__name__}: {outcome}"
                    )
                    continue
                results[tf] = outcome
        return results

    # ── 缓存管理 ──────────────────────────────────────────

    def get_cache_stats(self) -> CacheStats:
        return self._cache.stats()

    def clear_cache(self) -> None:
        self._cache.clear()
        logger.info("动量结果缓存已清空")

    def invalidate_cache(self, symbol: str, timeframe: Optional[Timeframe] = None) -> int:
        return self._cache.invalidate(symbol, timeframe)

    def cleanup_cache(self) -> int:
        return self._cache.cleanup()


# ── 模块级别单例 ──────────────────────────────────────────
_multi_timeframe_service: Optional[MultiTimeframeService] = None


def get_multi_timeframe_service() -> MultiTimeframeService:
    global _multi_timeframe_service
    if _multi_timeframe_service is None:
        provider = get_data_provider(settings.DATA_PROVIDER, seed=settings.DATA_PROVIDER_SEED)
        _multi_timeframe_service = MultiTimeframeService(
            provider, settings.multi_timeframe_config()
        )
    return _multi_timeframe_service
