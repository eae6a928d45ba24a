"""
缓存管理路由
GET  /api/cache/stats       - 缓存统计
POST /api/cache/clear       - 清空缓存
POST /api/cache/invalidate  - 使指定标的（周期）的缓存失效
POST /api/cache/cleanup     - 清除已过期条目
"""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from momentum_service.models.errors import InvalidTimeframesError
from momentum_service.models.momentum import is_valid_timeframe, to_timeframe
from momentum_service.models.response import ApiResponse
from momentum_service.services.multi_timeframe_service import (
    MultiTimeframeService,
    get_multi_timeframe_service,
)

router = APIRouter(prefix="/api/cache", tags=["缓存管理"])


class InvalidateRequest(BaseModel):
    symbol: str = Field(min_length=1)
    timeframe: Optional[str] = None


@router.get("/stats", response_model=ApiResponse)
async def cache_stats(svc: MultiTimeframeService = Depends(get_multi_timeframe_service)):
    """获取缓存统计信息（条目数、上限、命中率相关计数）"""
    return ApiResponse.ok(data=svc.get_cache_stats().to_dict())


@router.post("/clear", response_model=ApiResponse)
async def clear_cache(svc: MultiTimeframeService = Depends(get_multi_timeframe_service)):
    """清空全部动量结果缓存"""
    svc.clear_cache()
    return ApiResponse.ok(message="缓存已清空")


@router.post("/invalidate", response_model=ApiResponse)
async def invalidate_cache(
    body: InvalidateRequest,
    svc: MultiTimeframeService = Depends(get_multi_timeframe_service),
):
    """不指定周期时删除该标的的全部缓存"""
    timeframe = None
    if body.timeframe is not None:
        if not is_valid_timeframe(body.timeframe):
            raise InvalidTimeframesError(
                symbol=body.symbol, message=f"不支持的时间周期: {body.timeframe}"
            )
        timeframe = to_timeframe(body.timeframe)
    removed = svc.invalidate_cache(body.symbol, timeframe)
    suffix = f":{timeframe.value}" if timeframe else ""
    return ApiResponse.ok(
        data={"removed": removed},
        message=f"缓存已失效: {body.symbol}{suffix}",
    )


@router.post("/cleanup", response_model=ApiResponse)
async def cleanup_cache(svc: MultiTimeframeService = Depends(get_multi_timeframe_service)):
    """立即清除已过期的缓存条目"""
    removed = svc.cleanup_cache()
    return ApiResponse.ok(data={"removed": removed})
