"""
技术指标计算
RSI（Wilder 平滑）、EMA、MACD、成交量比率、近期涨跌幅

所有函数均为纯函数，输入为按时间升序排列的价格 / 成交量序列
"""

import logging
from typing import NamedTuple, Sequence, Union

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

SeriesLike = Union[pd.Series, Sequence[float]]


class MacdValues(NamedTuple):
    macd: float
    signal: float
    histogram: float


def _to_series(values: SeriesLike) -> pd.Series:
    if isinstance(values, pd.Series):
        return values.astype(float).reset_index(drop=True)
    return pd.Series(list(values), dtype=float)


def _seeded_ewm(values: pd.Series, period: int, alpha: float) -> pd.Series:
    """
    以前 period 个值的简单平均作为种子的指数平滑

    种子位于 period - 1，此前的位置为 NaN
    """
    out = pd.Series(np.nan, index=values.index, dtype=float)
    if len(values) < period:
        return out
    seed = values.iloc[:period].mean()
    tail = pd.concat([pd.Series([seed]), values.iloc[period:]], ignore_index=True)
    out.iloc[period - 1:] = tail.ewm(alpha=alpha, adjust=False).mean().to_numpy()
    return out


# ── EMA ───────────────────────────────────────────────────

def ema_series(values: SeriesLike, period: int) -> pd.Series:
    """
    指数移动平均序列，乘数 2 / (period + 1)

    种子之前的位置直接取原值
    """
    if period <= 0:
        raise ValueError("period 必须为正整数")
    s = _to_series(values)
    return _seeded_ewm(s, period, 2 / (period + 1)).fillna(s)


def ema(values: SeriesLike, period: int) -> float:
    """最新的 EMA 值；空序列返回 0"""
    s = _to_series(values)
    if s.empty:
        return 0.0
    return float(ema_series(s, period).iloc[-1])


# ── RSI ───────────────────────────────────────────────────

def rsi_series(closes: SeriesLike, period: int = 14) -> pd.Series:
    """Wilder 平滑 RSI 序列，前 period 个位置为 NaN"""
    s = _to_series(closes)
    delta = s.diff()
    gains = delta.clip(lower=0).fillna(0.0)
    losses = (-delta).clip(lower=0).fillna(0.0)

    # 第 0 个差分无意义，从第 1 个开始平滑
    avg_gain = _seeded_ewm(gains.iloc[1:], period, 1 / period)
    avg_loss = _seeded_ewm(losses.iloc[1:], period, 1 / period)

    with np.errstate(divide="ignore", invalid="ignore"):
        rs = avg_gain / avg_loss
        values = 100 - 100 / (1 + rs)
    values = values.where(avg_loss != 0, np.where(avg_gain > 0, 100.0, 50.0))
    values = values.where(avg_gain.notna())
    return values.reindex(s.index)


def rsi(closes: SeriesLike, period: int = 14) -> float:
    """
    最新 RSI 值

    收盘价数量不足 period + 1 时返回中性值 50
    """
    s = _to_series(closes)
    if len(s) < period + 1:
        return 50.0
    return float(rsi_series(s, period).iloc[-1])


# ── MACD ──────────────────────────────────────────────────

def macd(
    closes: SeriesLike,
    fast: int = 12,
    slow: int = 26,
    signal: int = 9,
) -> MacdValues:
    """
    MACD 最新值

    MACD 线 = EMA(fast) - EMA(slow)，逐根计算；
    信号线 = MACD 线最近 2 * signal 个值的 EMA(signal)
    """
    s = _to_series(closes)
    if s.empty:
        return MacdValues(0.0, 0.0, 0.0)
    line = ema_series(s, fast) - ema_series(s, slow)
    macd_value = float(line.iloc[-1])
    signal_value = ema(line.iloc[-signal * 2:], signal)
    return MacdValues(macd_value, signal_value, macd_value - signal_value)


# ── 成交量 / 价格 ─────────────────────────────────────────

def volume_ratio(volumes: SeriesLike, period: int = 20) -> float:
    """最新成交量 / 此前 period 根的平均成交量（不含最新一根）"""
    s = _to_series(volumes)
    window = min(period, len(s) - 1)
    if window < 1:
        return 1.0
    avg = s.iloc[-window - 1:-1].mean()
    if avg == 0:
        return 1.0
    return float(s.iloc[-1] / avg)


def price_change_pct(closes: SeriesLike, window: int = 5) -> float:
    """最近 window 根 K 线的涨跌幅（%）"""
    s = _to_series(closes)
    if len(s) < window:
        return 0.0
    base = s.iloc[-window]
    if base == 0:
        return 0.0
    return float((s.iloc[-1] - base) / base * 100)
