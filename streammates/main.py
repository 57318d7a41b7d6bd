"""
streammates.main
~~~~~~~~~~~~~~~~

FastAPI 应用入口 —— 注册路由、挂载限流器、定义生命周期。

``LocalBackend`` 在 lifespan 中创建并挂载到 ``app.state.backend``，
进程内只有这一份信令 + 文档存储实例。
"""
from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from streammates.api import rooms, signal_ws
from streammates.core.config import settings
from streammates.core.logging import get_logger, setup_logging
from streammates.core.rate_limit import limiter
from streammates.db.storage import StorageUnavailableError
from streammates.schemas.api_response import ApiResponse
from streammates.services.local_backend import LocalBackend

# 初始化日志系统（必须在其他模块之前）
setup_logging()
logger = get_logger(__name__)


# ── 生命周期 ──────────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """应用生命周期钩子，仅在 worker 启动/关闭时各执行一次。"""
    # ── 启动 ──
    backend = LocalBackend(settings)
    backend.startup()
    app.state.backend = backend
    logger.info(
        "应用已启动 | env=%s | storage=%s | log_level=%s",
        settings.ENVIRONMENT,
        settings.STORAGE_BACKEND,
        settings.effective_log_level,
    )
    yield
    # ── 关闭 ──
    backend.shutdown()
    logger.info("应用已关闭")


# ── 创建 FastAPI 实例 ─────────────────────────────────────────────────

app: FastAPI = FastAPI(
    title=settings.PROJECT_NAME,
    description="本地信令总线 + 文档存储",
    version=settings.VERSION,
    debug=settings.debug,
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# ── 路由挂载 ──────────────────────────────────────────────────────────
app.include_router(rooms.router, prefix="/api", tags=["Rooms"])
app.include_router(signal_ws.router, tags=["Signaling"])


# ── 全局异常处理器 ────────────────────────────────────────────────────

@app.exception_handler(StorageUnavailableError)
async def storage_unavailable_handler(request: Request, exc: StorageUnavailableError) -> JSONResponse:
    """存储介质不可用时返回 503，与普通的“未找到”区分开。"""
    logger.error("存储介质不可用: %s %s -> %s", request.method, request.url, exc)
    response = ApiResponse.fail(msg=str(exc), code=503, data=None)
    return JSONResponse(status_code=503, content=response.model_dump())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """捕获所有未处理异常，返回统一的 ApiResponse.fail() 格式。"""
    logger.error("未捕获异常: %s %s -> %s", request.method, request.url, exc, exc_info=True)
    # 非 prod 环境返回详细错误信息，prod 环境隐藏内部细节
    detail = str(exc) if not settings.is_prod else "服务器内部错误"
    response = ApiResponse.fail(msg=detail, code=500, data=None)
    return JSONResponse(status_code=500, content=response.model_dump())


@app.get("/health", tags=["System"])
async def health_check(request: Request) -> JSONResponse:
    """验证服务是否正常运行。"""
    backend: LocalBackend = request.app.state.backend
    return JSONResponse(
        content={
            "status": "ok",
            "environment": settings.ENVIRONMENT,
            "debug": settings.debug,
            "storage": settings.STORAGE_BACKEND,
            "buses": backend.bus_count,
        },
    )


def run() -> None:
    """命令行入口：``streammates``。"""
    import uvicorn

    uvicorn.run(
        "streammates.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.reload,  # 仅 dev 环境开启热重载
        log_level=settings.effective_log_level.lower(),
    )


if __name__ == "__main__":
    run()
