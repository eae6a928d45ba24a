"""
动量分析路由
POST /api/momentum/analyze               - 多周期动量分析
GET  /api/momentum/{symbol}              - 多周期动量分析（查询参数形式）
GET  /api/momentum/{symbol}/{timeframe}  - 单周期动量分析
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from momentum_service.models.errors import AnalysisError, InvalidTimeframesError
from momentum_service.models.momentum import (
    TIMEFRAMES,
    AnalysisRequest,
    is_valid_timeframe,
    to_timeframe,
)
from momentum_service.models.response import ApiResponse
from momentum_service.services.multi_timeframe_service import (
    MultiTimeframeService,
    get_multi_timeframe_service,
)

router = APIRouter(prefix="/api/momentum", tags=["动量分析"])


@router.post("/analyze", response_model=ApiResponse)
async def analyze_momentum(
    body: AnalysisRequest,
    svc: MultiTimeframeService = Depends(get_multi_timeframe_service),
):
    """
    多周期动量分析

    - 未知周期会被忽略，全部未知时返回 400
    - 单个周期失败不影响其他周期，失败周期不出现在 `results` 中
    """
    result = await svc.analyze(body)
    return ApiResponse.ok(data=result.model_dump(mode="json"))


@router.get("/{symbol}", response_model=ApiResponse)
async def get_momentum(
    symbol: str,
    timeframes: Optional[str] = Query(
        default=None,
        description=f"逗号分隔的周期列表，支持: {', '.join(tf.value for tf in TIMEFRAMES)}，不填则分析全部",
    ),
    lookback: Optional[int] = Query(default=None, gt=0, description="每个周期使用的 K 线数量"),
    svc: MultiTimeframeService = Depends(get_multi_timeframe_service),
):
    """获取标的的多周期动量"""
    if timeframes:
        tf_list = [t.strip() for t in timeframes.split(",") if t.strip()]
        result = await svc.analyze(
            AnalysisRequest(symbol=symbol, timeframes=tf_list, lookback=lookback)
        )
    else:
        result = await svc.analyze_all_timeframes(symbol, lookback)
    return ApiResponse.ok(data=result.model_dump(mode="json"))


@router.get("/{symbol}/{timeframe}", response_model=ApiResponse)
async def get_single_timeframe_momentum(
    symbol: str,
    timeframe: str,
    lookback: Optional[int] = Query(default=None, gt=0),
    svc: MultiTimeframeService = Depends(get_multi_timeframe_service),
):
    """获取标的在单一周期上的动量"""
    if not is_valid_timeframe(timeframe):
        raise InvalidTimeframesError(symbol=symbol, message=f"不支持的时间周期: {timeframe}")
    try:
        result = await svc.analyze_single(symbol, to_timeframe(timeframe), lookback)
    except AnalysisError:
        raise
    except Exception as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"K 线获取失败: {exc}",
        )
    return ApiResponse.ok(data=result.model_dump(mode="json"))
