"""动量分析异常类型"""

from typing import Any, Dict, Optional

from momentum_service.models.momentum import Timeframe


class AnalysisError(Exception):
    """分析异常基类，携带错误码以及标的 / 周期上下文"""

    code = "ANALYSIS_ERROR"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        timeframe: Optional[Timeframe] = None,
        symbol: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.timeframe = timeframe
        self.symbol = symbol

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "symbol": self.symbol,
            "timeframe": self.timeframe.value if self.timeframe else None,
        }


class InvalidTimeframesError(AnalysisError):
    """请求中没有任何可识别的时间周期"""

    code = "INVALID_TIMEFRAMES"

    def __init__(self, symbol: Optional[str] = None, message: str = "没有可识别的时间周期"):
        super().__init__(message, symbol=symbol)


class InsufficientDataError(AnalysisError):
    """K 线数量不足以完成指标计算"""

    code = "INSUFFICIENT_DATA"

    def __init__(self, required: int, actual: int, symbol: str, timeframe: Timeframe):
        super().__init__(
            f"K 线数量不足，至少需要 {required} 根，实际 {actual} 根",
            timeframe=timeframe,
            symbol=symbol,
        )
        self.required = required
        self.actual = actual

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({"required": self.required, "actual": self.actual})
        return data


class DataProviderError(AnalysisError):
    """数据提供商获取 K 线失败"""

    code = "DATA_PROVIDER_ERROR"
