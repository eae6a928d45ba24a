"""
多标的扫描路由
POST /api/scanner/scan  - 扫描多个标的并按动量强度排序
"""

from fastapi import APIRouter, Depends, HTTPException, status

from momentum_service.models.response import ApiResponse
from momentum_service.services.scanner_service import (
    ScannerService,
    ScanRequest,
    get_scanner_service,
)

router = APIRouter(prefix="/api/scanner", tags=["多标的扫描"])


@router.post("/scan", response_model=ApiResponse)
async def scan_symbols(
    body: ScanRequest,
    svc: ScannerService = Depends(get_scanner_service),
):
    """
    扫描多个标的的动量信号

    - `signal_filter`: all / bullish / bearish
    - `min_confidence`: 置信度下限（0-100）
    - 结果按动量评分绝对值降序排列
    """
    try:
        result = await svc.scan(body)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return ApiResponse.ok(data=result.model_dump(mode="json"))
