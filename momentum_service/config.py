"""
动量分析服务配置模块
环境变量 / .env 读取服务配置，并生成各组件使用的不可变配置对象
"""

from functools import lru_cache
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from momentum_service.models.momentum import Timeframe

_DAY_MS = 24 * 60 * 60 * 1000


def _default_ttl_multipliers() -> Dict[Timeframe, float]:
    """短周期缓存时间短，长周期缓存时间长"""
    return {
        Timeframe.M1: 0.5,
        Timeframe.M5: 1,
        Timeframe.M15: 2,
        Timeframe.H1: 4,
        Timeframe.H4: 8,
        Timeframe.D1: 24,
    }


# ── 组件配置（不可变） ────────────────────────────────────

class AnalyzerConfig(BaseModel):
    """单周期动量分析器参数"""

    model_config = ConfigDict(frozen=True)

    rsi_period: int = Field(default=14, ge=2, le=100)
    rsi_overbought: float = Field(default=70, ge=0, le=100)
    rsi_oversold: float = Field(default=30, ge=0, le=100)
    macd_fast: int = Field(default=12, ge=2)
    macd_slow: int = Field(default=26, ge=2, le=200)
    macd_signal: int = Field(default=9, ge=2)
    volume_avg_period: int = Field(default=20, ge=1, le=200)

    @model_validator(mode="after")
    def _check_ranges(self) -> "AnalyzerConfig":
        if self.rsi_overbought <= self.rsi_oversold:
            raise ValueError("rsi_overbought 必须大于 rsi_oversold")
        if self.rsi_oversold <= 0:
            raise ValueError("rsi_oversold 必须大于 0")
        if self.rsi_overbought >= 100:
            raise ValueError("rsi_overbought 必须小于 100")
        if self.macd_fast >= self.macd_slow:
            raise ValueError("macd_fast 必须小于 macd_slow")
        return self

    @property
    def min_candles(self) -> int:
        """分析所需的最少 K 线数量"""
        return self.macd_slow + self.macd_signal


class CacheConfig(BaseModel):
    """结果缓存参数"""

    model_config = ConfigDict(frozen=True)

    default_ttl_ms: int = Field(default=30_000, gt=0, le=_DAY_MS)
    max_entries: int = Field(default=1000, ge=1, le=100_000)
    timeframe_ttl_multiplier: Dict[Timeframe, float] = Field(
        default_factory=_default_ttl_multipliers
    )

    @field_validator("timeframe_ttl_multiplier")
    @classmethod
    def _check_multipliers(cls, v: Dict[Timeframe, float]) -> Dict[Timeframe, float]:
        for tf, multiplier in v.items():
            if multiplier <= 0 or multiplier > 1000:
                raise ValueError(f"{tf.value} 的 TTL 倍数必须在 (0, 1000] 之间")
        return v

    def ttl_for(self, timeframe: Timeframe) -> float:
        """计算指定周期的缓存 TTL（毫秒），未配置倍数时按 1 处理"""
        return self.default_ttl_ms * self.timeframe_ttl_multiplier.get(timeframe, 1)


class MultiTimeframeConfig(BaseModel):
    """多周期编排参数"""

    model_config = ConfigDict(frozen=True)

    analyzer: AnalyzerConfig = Field(default_factory=AnalyzerConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    default_lookback: int = Field(default=100, ge=10, le=1000)
    max_concurrency: int = Field(default=6, ge=1, le=50)
    alignment_threshold: float = Field(default=0.6, gt=0, le=1)
    # None 表示不设置拉取超时
    fetch_timeout_s: Optional[float] = Field(default=None, gt=0)

    @model_validator(mode="after")
    def _check_lookback(self) -> "MultiTimeframeConfig":
        if self.default_lookback < self.analyzer.min_candles:
            raise ValueError(
                f"default_lookback ({self.default_lookback}) 小于分析所需的最少 K 线数 "
                f"({self.analyzer.min_candles})"
            )
        return self


class ScannerConfig(BaseModel):
    """多标的扫描参数"""

    model_config = ConfigDict(frozen=True)

    default_timeframe: Timeframe = Timeframe.H1
    default_lookback: int = Field(default=100, ge=10, le=1000)
    max_symbols_per_scan: int = Field(default=100, ge=1)
    concurrent_scans: int = Field(default=5, ge=1, le=50)


# ── 服务配置（环境变量） ──────────────────────────────────

class MomentumServiceSettings(BaseSettings):
    """动量分析服务配置"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # ── 基础配置 ──────────────────────────────────────────
    HOST: str = Field(default="0.0.0.0")
    PORT: int = Field(default=8002)
    DEBUG: bool = Field(default=False)
    ALLOWED_ORIGINS: List[str] = Field(
        default_factory=lambda: ["*"]
    )

    # ── 数据源配置 ─────────────────────────────────────────
    DATA_PROVIDER: str = Field(default="synthetic")  # synthetic / yfinance
    DATA_PROVIDER_SEED: Optional[int] = Field(default=None)
    FETCH_TIMEOUT_S: Optional[float] = Field(default=None)

    # ── 指标配置 ──────────────────────────────────────────
    RSI_PERIOD: int = Field(default=14)
    RSI_OVERBOUGHT: float = Field(default=70)
    RSI_OVERSOLD: float = Field(default=30)
    MACD_FAST: int = Field(default=12)
    MACD_SLOW: int = Field(default=26)
    MACD_SIGNAL: int = Field(default=9)
    VOLUME_AVG_PERIOD: int = Field(default=20)

    # ── 缓存配置 ──────────────────────────────────────────
    CACHE_DEFAULT_TTL_MS: int = Field(default=30_000)
    CACHE_MAX_ENTRIES: int = Field(default=1000)
    CACHE_TTL_MULTIPLIERS: Dict[Timeframe, float] = Field(
        default_factory=_default_ttl_multipliers
    )
    CACHE_CLEANUP_INTERVAL_S: float = Field(default=60)  # 0 表示关闭定时清理

    # ── 编排配置 ──────────────────────────────────────────
    DEFAULT_LOOKBACK: int = Field(default=100)
    MAX_CONCURRENCY: int = Field(default=6)
    ALIGNMENT_THRESHOLD: float = Field(default=0.6)
    DEFAULT_TIMEFRAMES: List[Timeframe] = Field(
        default_factory=lambda: [Timeframe.H1, Timeframe.H4, Timeframe.D1]
    )

    # ── 扫描配置 ──────────────────────────────────────────
    SCANNER_TIMEFRAME: Timeframe = Field(default=Timeframe.H1)
    MAX_SYMBOLS_PER_SCAN: int = Field(default=100)
    CONCURRENT_SCANS: int = Field(default=5)

    # ── 日志配置 ──────────────────────────────────────────
    LOG_LEVEL: str = Field(default="INFO")

    def analyzer_config(self) -> AnalyzerConfig:
        return AnalyzerConfig(
            rsi_period=self.RSI_PERIOD,
            rsi_overbought=self.RSI_OVERBOUGHT,
            rsi_oversold=self.RSI_OVERSOLD,
            macd_fast=self.MACD_FAST,
            macd_slow=self.MACD_SLOW,
            macd_signal=self.MACD_SIGNAL,
            volume_avg_period=self.VOLUME_AVG_PERIOD,
        )

    def cache_config(self) -> CacheConfig:
        return CacheConfig(
            default_ttl_ms=self.CACHE_DEFAULT_TTL_MS,
            max_entries=self.CACHE_MAX_ENTRIES,
            timeframe_ttl_multiplier=self.CACHE_TTL_MULTIPLIERS,
        )

    def multi_timeframe_config(self) -> MultiTimeframeConfig:
        return MultiTimeframeConfig(
            analyzer=self.analyzer_config(),
            cache=self.cache_config(),
            default_lookback=self.DEFAULT_LOOKBACK,
            max_concurrency=self.MAX_CONCURRENCY,
            alignment_threshold=self.ALIGNMENT_THRESHOLD,
            fetch_timeout_s=self.FETCH_TIMEOUT_S,
        )

    def scanner_config(self) -> ScannerConfig:
        return ScannerConfig(
            default_timeframe=self.SCANNER_TIMEFRAME,
            default_lookback=self.DEFAULT_LOOKBACK,
            max_symbols_per_scan=self.MAX_SYMBOLS_PER_SCAN,
            concurrent_scans=self.CONCURRENT_SCANS,
        )


@lru_cache
def get_settings() -> MomentumServiceSettings:
    """获取全局配置（单例）"""
    return MomentumServiceSettings()


settings = get_settings()
