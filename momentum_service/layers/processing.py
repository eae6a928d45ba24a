"""
Layer 2 – 数据处理层
将数据提供商返回的原始 OHLCV 记录清洗、标准化为 Candle 序列
"""

import logging
from typing import Any, Dict, List, Optional

import pandas as pd

from momentum_service.models.momentum import Candle

logger = logging.getLogger(__name__)

_PRICE_COLS = ["open", "high", "low", "close"]
_REQUIRED_COLS = ["timestamp"] + _PRICE_COLS + ["volume"]


class ProcessingLayer:
    """数据处理层：清洗 + 格式化 + 标准化"""

    def normalize_ohlcv(self, records: List[Dict[str, Any]]) -> pd.DataFrame:
        """
        将原始 OHLCV 记录列表标准化为 DataFrame

        标准列：timestamp（毫秒）, open, high, low, close, volume
        timestamp 可以是毫秒整数，也可以是可解析的日期 / 时间字符串
        """
        if not records:
            return pd.DataFrame(columns=_REQUIRED_COLS)

        df = pd.DataFrame(records)

        if "timestamp" not in df.columns:
            for alt in ("date", "datetime", "open_time"):
                if alt in df.columns:
                    df = df.rename(columns={alt: "timestamp"})
                    break
            else:
                raise ValueError("OHLCV 记录缺少 timestamp 字段")

        # 价格缺失的记录无法参与计算，成交量缺失按 0 处理
        for col in _PRICE_COLS:
            if col not in df.columns:
                df[col] = float("nan")
            df[col] = pd.to_numeric(df[col], errors="coerce")
        if "volume" not in df.columns:
            df["volume"] = 0.0
        df["volume"] = pd.to_numeric(df["volume"], errors="coerce").fillna(0.0)

        df["timestamp"] = self._to_epoch_ms(df["timestamp"])
        before = len(df)
        df = df.dropna(subset=["timestamp"] + _PRICE_COLS)
        if len(df) < before:
            logger.debug(f"丢弃 {before - len(df)} 条无效 OHLCV 记录")

        # 删除重复时间戳，保留最新数据
        df = df.drop_duplicates(subset=["timestamp"], keep="last")
        df = df.sort_values("timestamp").reset_index(drop=True)
        df["timestamp"] = df["timestamp"].astype("int64")
        return df[_REQUIRED_COLS]

    def tail(self, df: pd.DataFrame, limit: Optional[int]) -> pd.DataFrame:
        """保留最近 limit 根 K 线"""
        if df.empty or not limit:
            return df
        return df.tail(limit).reset_index(drop=True)

    def to_candles(self, df: pd.DataFrame) -> List[Candle]:
        """DataFrame 转换为 Candle 列表"""
        if df.empty:
            return []
        return [Candle(**row) for row in df[_REQUIRED_COLS].to_dict(orient="records")]

    @staticmethod
    def _to_epoch_ms(col: pd.Series) -> pd.Series:
        if pd.api.types.is_datetime64_any_dtype(col):
            parsed = pd.to_datetime(col, utc=True)
        else:
            numeric = pd.to_numeric(col, errors="coerce")
            if numeric.notna().sum() == col.notna().sum():
                return numeric
            parsed = pd.to_datetime(col, errors="coerce", utc=True)
        return (parsed - pd.Timestamp(0, tz="UTC")) // pd.Timedelta(milliseconds=1)


# ── 模块级别单例 ──────────────────────────────────────────
_processor: Optional[ProcessingLayer] = None


def get_processing_layer() -> ProcessingLayer:
    global _processor
    if _processor is None:
        _processor = ProcessingLayer()
    return _processor
