"""FastAPI 应用主文件

app 创建 + lifespan 管理：DB 初始化/关闭 + 实时推送组件初始化 + 路由注册。
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from chatsync.core.config import MEDIA_URL_PREFIX, get_db_path, get_media_dir
from chatsync.core.exceptions import ChatError
from chatsync.core.store import create_store_group
from fastapi import FastAPI, Request
from fastapi.staticfiles import StaticFiles
from starlette.responses import JSONResponse

from .middleware.logging_config import setup_logfire, setup_logging
from .middleware.request_context_mw import RequestContextMiddleware
from .routes import health, messages, stream
from .services.connection_registry import ConnectionRegistry
from .services.delivery import DeliveryCoordinator

log = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """应用生命周期管理：启动时初始化 DB 与推送组件，关闭时清理连接"""
    store_group = await create_store_group(get_db_path(), get_media_dir())
    app.state.store_group = store_group

    registry = ConnectionRegistry()
    app.state.connection_registry = registry
    app.state.coordinator = DeliveryCoordinator(registry)
    log.info("gateway_started", db_path=get_db_path())

    yield

    # 关闭：断开所有实时连接，清理数据库连接
    for user_id in registry.online_user_ids():
        registry.unregister(user_id)
    if hasattr(app.state, "store_group") and app.state.store_group:
        await app.state.store_group.conn.close()


async def chat_error_handler(request: Request, exc: ChatError) -> JSONResponse:
    """把消息核心异常映射为统一错误响应"""
    log.info(
        "request_rejected",
        code=exc.code,
        status_code=exc.status_code,
        message=exc.message,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": {
                "code": exc.code,
                "message": exc.message,
            }
        },
    )


def install_exception_handlers(app: FastAPI) -> None:
    """注册异常处理器"""
    app.add_exception_handler(ChatError, chat_error_handler)


def create_app() -> FastAPI:
    """创建 FastAPI 应用实例"""
    app = FastAPI(
        title="ChatSync Gateway",
        version="0.1.0",
        description="私信消息同步 API",
        lifespan=lifespan,
    )

    app.add_middleware(RequestContextMiddleware)

    install_exception_handlers(app)

    # 初始化日志
    setup_logging()
    setup_logfire(app)

    # 注册路由
    app.include_router(messages.router, tags=["messages"])
    app.include_router(stream.router, tags=["stream"])
    app.include_router(health.router, tags=["health"])

    # 本地图片存储的静态访问
    # 目录由 lifespan 中的 create_store_group 创建
    app.mount(
        MEDIA_URL_PREFIX,
        StaticFiles(directory=str(get_media_dir()), check_dir=False),
        name="media",
    )

    return app


# 默认 app 实例（uvicorn 入口）
app = create_app()
