"""
多周期动量分析服务
独立 FastAPI 应用程序入口

启动方式:
    uvicorn momentum_service.main:app --host 0.0.0.0 --port 8002
    python -m momentum_service.main
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from momentum_service import __version__
from momentum_service.config import settings
from momentum_service.models.errors import AnalysisError
from momentum_service.models.response import ApiResponse
from momentum_service.routers import cache, health, market, momentum, scanner
from momentum_service.services.multi_timeframe_service import (
    MultiTimeframeService,
    get_multi_timeframe_service,
)

# ── 日志配置 ──────────────────────────────────────────────
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# 分析错误码 → HTTP 状态码
_ERROR_STATUS = {
    "INVALID_TIMEFRAMES": 400,
    "INSUFFICIENT_DATA": 422,
    "DATA_PROVIDER_ERROR": 502,
}


async def _periodic_cache_cleanup(svc: MultiTimeframeService, interval_s: float) -> None:
    """定时清除过期缓存条目"""
    while True:
        await asyncio.sleep(interval_s)
        try:
            svc.cleanup_cache()
        except Exception as e:
            logger.error(f"定时清理缓存失败: {e}", exc_info=True)


# ── 生命周期管理 ──────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用启动/关闭生命周期钩子"""
    logger.info("=" * 60)
    logger.info(f"🚀 MomentumService v{__version__} 启动中")
    logger.info(f"   数据源    : {settings.DATA_PROVIDER}")
    logger.info(f"   默认周期  : {', '.join(tf.value for tf in settings.DEFAULT_TIMEFRAMES)}")
    logger.info(f"   最大并发  : {settings.MAX_CONCURRENCY}")
    logger.info(f"   缓存上限  : {settings.CACHE_MAX_ENTRIES} 条")
    logger.info("=" * 60)

    svc = get_multi_timeframe_service()
    cleanup_task = None
    if settings.CACHE_CLEANUP_INTERVAL_S > 0:
        cleanup_task = asyncio.create_task(
            _periodic_cache_cleanup(svc, settings.CACHE_CLEANUP_INTERVAL_S)
        )
        logger.info(f"✅ 缓存定时清理已启动，间隔 {settings.CACHE_CLEANUP_INTERVAL_S}s")

    yield

    logger.info("🔄 动量分析服务正在关闭...")
    if cleanup_task is not None:
        cleanup_task.cancel()
        try:
            await cleanup_task
        except asyncio.CancelledError:
            pass
    svc.clear_cache()
    logger.info("✅ 动量分析服务已关闭")


# ── 应用实例 ──────────────────────────────────────────────
app = FastAPI(
    title="多周期动量分析服务",
    description=(
        "独立的多周期动量分析微服务，提供以下功能：\n"
        "- 📈 单周期动量分析（RSI / MACD / 成交量比 → -100~100 评分）\n"
        "- 🕒 多周期并发分析与周期一致性判断（1m / 5m / 15m / 1h / 4h / 1d）\n"
        "- 🔎 多标的动量扫描与排序\n"
        "- 🗄️ 进程内 TTL + LRU 结果缓存\n\n"
        "**分层架构**\n"
        "```\n"
        "Acquisition Layer  ← 从数据提供商拉取 K 线\n"
        "Processing Layer   ← 数据清洗、格式化、标准化\n"
        "Analysis Layer     ← 技术指标与动量评分\n"
        "Cache Layer        ← 按周期设定 TTL 的 LRU 缓存\n"
        "```"
    ),
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# ── CORS 中间件 ───────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── 请求计时中间件 ─────────────────────────────────────────
@app.middleware("http")
async def add_process_time(request: Request, call_next):
    start = time.time()
    response = await call_next(request)
    response.headers["X-Process-Time"] = f"{(time.time() - start) * 1000:.1f}ms"
    return response


# ── 异常处理 ──────────────────────────────────────────────
@app.exception_handler(AnalysisError)
async def analysis_error_handler(request: Request, exc: AnalysisError):
    logger.warning(f"分析失败 [{exc.code}]: {exc.message}")
    body = ApiResponse.fail(
        error=exc.message,
        message="分析失败",
        code=exc.code,
        data=exc.to_dict(),
    )
    return JSONResponse(
        status_code=_ERROR_STATUS.get(exc.code, 400),
        content=body.model_dump(),
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"未处理的异常: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "内部服务错误", "message": str(exc)},
    )


# ── 注册路由 ──────────────────────────────────────────────
app.include_router(health.router)
app.include_router(momentum.router)
app.include_router(scanner.router)
app.include_router(market.router)
app.include_router(cache.router)


# ── 根路由 ───────────────────────────────────────────────
@app.get("/", include_in_schema=False)
async def root():
    return {
        "service": "MomentumService",
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
    }


# ── 直接运行入口 ──────────────────────────────────────────
if __name__ == "__main__":
    uvicorn.run(
        "momentum_service.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )
