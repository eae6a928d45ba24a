"""健康检查路由"""

import time

from fastapi import APIRouter, Depends

from momentum_service import __version__
from momentum_service.config import settings
from momentum_service.services.multi_timeframe_service import (
    MultiTimeframeService,
    get_multi_timeframe_service,
)

router = APIRouter(tags=["健康检查"])


@router.get("/health")
async def health(svc: MultiTimeframeService = Depends(get_multi_timeframe_service)):
    """服务健康检查"""
    return {
        "success": True,
        "data": {
            "status": "ok",
            "version": __version__,
            "timestamp": int(time.time()),
            "service": "MomentumService",
            "data_provider": settings.DATA_PROVIDER,
            "cache": svc.get_cache_stats().to_dict(),
        },
        "message": "服务运行正常",
    }


@router.get("/healthz")
async def healthz():
    """Kubernetes liveness probe"""
    return {"status": "ok"}


@router.get("/readyz")
async def readyz():
    """Kubernetes readiness probe"""
    return {"ready": True}
