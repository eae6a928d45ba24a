"""
动量分析数据模型
K 线、时间周期、单周期动量结果、多周期共振结果
"""

from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ── 时间周期 ──────────────────────────────────────────────

class Timeframe(str, Enum):
    """支持的时间周期（按从短到长排列）"""

    M1 = "1m"
    M5 = "5m"
    M15 = "15m"
    H1 = "1h"
    H4 = "4h"
    D1 = "1d"

    @property
    def ms(self) -> int:
        """周期时长（毫秒）"""
        return TIMEFRAME_MS[self]

    @property
    def weight(self) -> int:
        """共振计算权重，周期越长权重越高"""
        return TIMEFRAME_WEIGHT[self]

    @property
    def rank(self) -> int:
        return TIMEFRAMES.index(self)


TIMEFRAMES: List[Timeframe] = list(Timeframe)

TIMEFRAME_MS: Dict[Timeframe, int] = {
    Timeframe.M1: 60 * 1000,
    Timeframe.M5: 5 * 60 * 1000,
    Timeframe.M15: 15 * 60 * 1000,
    Timeframe.H1: 60 * 60 * 1000,
    Timeframe.H4: 4 * 60 * 60 * 1000,
    Timeframe.D1: 24 * 60 * 60 * 1000,
}

TIMEFRAME_WEIGHT: Dict[Timeframe, int] = {
    Timeframe.M1: 1,
    Timeframe.M5: 2,
    Timeframe.M15: 3,
    Timeframe.H1: 5,
    Timeframe.H4: 8,
    Timeframe.D1: 13,
}

_VALUES = {tf.value: tf for tf in TIMEFRAMES}


def is_valid_timeframe(value: Any) -> bool:
    """判断给定值是否为受支持的时间周期"""
    if isinstance(value, Timeframe):
        return True
    return isinstance(value, str) and value in _VALUES


def to_timeframe(value: Any) -> Timeframe:
    if isinstance(value, Timeframe):
        return value
    try:
        return _VALUES[value]
    except (KeyError, TypeError):
        raise ValueError(f"不支持的时间周期: {value!r}") from None


def parse_timeframes(values: Iterable[Any]) -> List[Timeframe]:
    """
    过滤出可识别的时间周期

    保留输入顺序，忽略未知值与重复值，例如
    ``['1h', 'bogus', '4h']`` -> ``[Timeframe.H1, Timeframe.H4]``
    """
    result: List[Timeframe] = []
    for value in values:
        if not is_valid_timeframe(value):
            continue
        tf = to_timeframe(value)
        if tf not in result:
            result.append(tf)
    return result


def compare_timeframes(a: Timeframe, b: Timeframe) -> int:
    """a 短于 b 返回负数，相同返回 0，否则返回正数"""
    return a.rank - b.rank


# ── 方向 / 强度 ───────────────────────────────────────────

class MomentumDirection(str, Enum):
    BULLISH = "bullish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"


class MomentumStrength(str, Enum):
    STRONG = "strong"
    MODERATE = "moderate"
    WEAK = "weak"


# ── K 线 ──────────────────────────────────────────────────

class Candle(BaseModel):
    """单根 OHLCV K 线，时间戳为毫秒"""

    model_config = ConfigDict(frozen=True)

    timestamp: int
    open: float
    high: float
    low: float
    close: float
    volume: float


# ── 分析结果 ──────────────────────────────────────────────

class MomentumResult(BaseModel):
    """单一周期的动量分析结果"""

    model_config = ConfigDict(frozen=True)

    symbol: str
    timeframe: Timeframe
    timestamp: int
    direction: MomentumDirection
    strength: MomentumStrength
    score: float = Field(ge=-100, le=100)
    rsi: Optional[float] = None
    # MACD 柱状值（MACD 线 - 信号线）
    macd_signal: Optional[float] = None
    volume_ratio: Optional[float] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class TimeframeAlignment(BaseModel):
    """多周期方向一致性"""

    model_config = ConfigDict(frozen=True)

    aligned: bool
    aligned_timeframes: List[Timeframe]
    divergent_timeframes: List[Timeframe]
    dominant_direction: MomentumDirection
    alignment_score: float = Field(ge=0, le=100)
    weighted_score: float = Field(ge=0, le=100)


class MultiTimeframeResult(BaseModel):
    """多周期共振分析结果"""

    model_config = ConfigDict(frozen=True)

    symbol: str
    timestamp: int
    results: Dict[Timeframe, MomentumResult]
    alignment: TimeframeAlignment
    overall_direction: MomentumDirection
    overall_strength: MomentumStrength
    confluence_score: float = Field(ge=0, le=100)


# ── 请求模型 ──────────────────────────────────────────────

class AnalysisRequest(BaseModel):
    """多周期分析请求，未知周期在服务层过滤"""

    symbol: str = Field(min_length=1)
    timeframes: List[str] = Field(default_factory=list)
    lookback: Optional[int] = Field(default=None, gt=0)

    @field_validator("symbol")
    @classmethod
    def _strip_symbol(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("symbol 不能为空")
        return v

    @field_validator("timeframes", mode="before")
    @classmethod
    def _coerce_timeframes(cls, v):
        if isinstance(v, (set, frozenset, tuple)):
            v = list(v)
        if isinstance(v, list):
            return [item.value if isinstance(item, Enum) else item for item in v]
        return v
