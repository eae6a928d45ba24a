"""
Layer 4 – 结果缓存层
进程内动量结果缓存：按周期设置 TTL，按条目数上限做 LRU 淘汰

缓存只在事件循环线程内同步访问（方法内没有 await），无需加锁；
如需多线程访问，调用方必须在外部加互斥锁。
"""

import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional

from momentum_service.config import CacheConfig
from momentum_service.models.momentum import MomentumResult, Timeframe

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


def _now_ms() -> float:
    return time.time() * 1000


def _make_key(symbol: str, timeframe: Timeframe) -> str:
    """生成规范化缓存键 "<symbol>:<timeframe>" """
    return f"{symbol}:{timeframe.value}"


@dataclass(frozen=True)
class CacheEntry:
    data: MomentumResult
    timestamp: float
    expires_at: float


@dataclass(frozen=True)
class CacheStats:
    size: int
    max_entries: int
    hits: int = 0
    misses: int = 0
    evictions: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "size": self.size,
            "max_entries": self.max_entries,
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
        }


class ResultCache:
    """
    TTL + LRU 动量结果缓存

    OrderedDict 同时承担键值存储与访问顺序（最久未使用的在最前），
    淘汰和刷新访问顺序均为 O(1)。过期条目在读取时惰性删除，
    cleanup() 用于定期批量清理。
    """

    def __init__(self, config: Optional[CacheConfig] = None, clock: Optional[Clock] = None):
        self.config = config or CacheConfig()
        self._clock = clock or _now_ms
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def __len__(self) -> int:
        return len(self._entries)

    def _is_expired(self, entry: CacheEntry, now: float) -> bool:
        return now > entry.expires_at

    # ── 读取 ──────────────────────────────────────────────

    def get(self, symbol: str, timeframe: Timeframe) -> Optional[MomentumResult]:
        key = _make_key(symbol, timeframe)
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return None
        if self._is_expired(entry, self._clock()):
            del self._entries[key]
            self._misses += 1
            logger.debug(f"缓存过期: {key}")
            return None
        self._entries.move_to_end(key)
        self._hits += 1
        logger.debug(f"缓存命中: {key}")
        return entry.data

    def get_many(
        self, symbol: str, timeframes: Iterable[Timeframe]
    ) -> Dict[Timeframe, Optional[MomentumResult]]:
        return {tf: self.get(symbol, tf) for tf in timeframes}

    def has(self, symbol: str, timeframe: Timeframe) -> bool:
        return self.get(symbol, timeframe) is not None

    # ── 写入 ──────────────────────────────────────────────

    def set(self, result: MomentumResult) -> None:
        key = _make_key(result.symbol, result.timeframe)
        now = self._clock()
        ttl = self.config.ttl_for(result.timeframe)

        # 覆盖已有键时先移除旧条目，避免为自身腾位置
        self._entries.pop(key, None)
        while len(self._entries) >= self.config.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            self._evictions += 1
            logger.debug(f"缓存淘汰（LRU）: {evicted}")

        self._entries[key] = CacheEntry(data=result, timestamp=now, expires_at=now + ttl)
        logger.debug(f"缓存写入: {key} ttl={ttl:.0f}ms")

    def set_many(self, results: Iterable[MomentumResult]) -> None:
        for result in results:
            self.set(result)

    # ── 失效 / 清理 ───────────────────────────────────────

    def invalidate(self, symbol: str, timeframe: Optional[Timeframe] = None) -> int:
        """删除指定周期的缓存；不指定周期时删除该标的全部缓存，返回删除条数"""
        if timeframe is not None:
            return 1 if self._entries.pop(_make_key(symbol, timeframe), None) else 0

        keys = [k for k, e in self._entries.items() if e.data.symbol == symbol]
        for key in keys:
            del self._entries[key]
        return len(keys)

    def clear(self) -> None:
        self._entries.clear()

    def cleanup(self) -> int:
        """批量清除所有已过期条目，返回清除数量"""
        now = self._clock()
        expired = [k for k, e in self._entries.items() if self._is_expired(e, now)]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.info(f"缓存清理: 移除 {len(expired)} 条过期结果")
        return len(expired)

    def keys(self) -> List[str]:
        """按访问顺序返回缓存键（最久未使用在前）"""
        return list(self._entries)

    def stats(self) -> CacheStats:
        return CacheStats(
            size=len(self._entries),
            max_entries=self.config.max_entries,
            hits=self._hits,
            misses=self._misses,
            evictions=self._evictions,
        )
