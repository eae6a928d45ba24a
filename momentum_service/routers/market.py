"""
市场元数据路由
GET /api/markets/timeframes  - 支持的时间周期（时长与权重）
GET /api/markets/providers   - 可用 K 线数据提供商
"""

from fastapi import APIRouter

from momentum_service.config import settings
from momentum_service.models.momentum import TIMEFRAMES
from momentum_service.models.response import ApiResponse

router = APIRouter(prefix="/api/markets", tags=["市场元数据"])

_PROVIDERS = [
    {
        "id": "synthetic",
        "name": "Synthetic",
        "description": "随机游走合成 K 线，无需网络，适合演示与测试",
    },
    {
        "id": "yfinance",
        "name": "Yahoo Finance",
        "description": "通过 yfinance 获取股票 / 加密货币 K 线（4h 由 1h 重采样）",
    },
]


@router.get("/timeframes", response_model=ApiResponse)
async def get_timeframes():
    """获取支持的时间周期列表（由短到长）"""
    timeframes = [
        {"timeframe": tf.value, "ms": tf.ms, "weight": tf.weight}
        for tf in TIMEFRAMES
    ]
    return ApiResponse.ok(
        data={
            "timeframes": timeframes,
            "default": [tf.value for tf in settings.DEFAULT_TIMEFRAMES],
        },
    )


@router.get("/providers", response_model=ApiResponse)
async def get_providers():
    """获取可用的数据提供商"""
    providers = [
        {**p, "enabled": p["id"] == settings.DATA_PROVIDER.lower()}
        for p in _PROVIDERS
    ]
    return ApiResponse.ok(data={"providers": providers, "default": settings.DATA_PROVIDER})
