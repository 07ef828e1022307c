"""gateway 测试配置 -- 手动初始化 app.state 的 FastAPI 实例 + httpx AsyncClient"""

import os
from collections.abc import AsyncGenerator

import pytest_asyncio
from chatsync.core.store import StoreGroup
from chatsync.gateway.services.connection_registry import ConnectionRegistry
from chatsync.gateway.services.delivery import DeliveryCoordinator
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient


def build_test_app(store_group: StoreGroup, registry: ConnectionRegistry) -> FastAPI:
    """创建测试用 FastAPI app，手动初始化 lifespan 状态"""
    from chatsync.gateway.main import install_exception_handlers
    from chatsync.gateway.routes import health, messages, stream

    app = FastAPI()
    install_exception_handlers(app)
    app.include_router(messages.router)
    app.include_router(stream.router)
    app.include_router(health.router)

    app.state.store_group = store_group
    app.state.connection_registry = registry
    app.state.coordinator = DeliveryCoordinator(registry)
    return app


@pytest_asyncio.fixture
async def app_factory():
    """按给定 StoreGroup / ConnectionRegistry 构造测试 app"""
    return build_test_app


@pytest_asyncio.fixture
async def registry() -> ConnectionRegistry:
    return ConnectionRegistry()


@pytest_asyncio.fixture
async def test_app(store_group: StoreGroup, registry: ConnectionRegistry) -> FastAPI:
    os.environ["LOGFIRE_SEND_TO_LOGFIRE"] = "false"
    yield build_test_app(store_group, registry)
    os.environ.pop("LOGFIRE_SEND_TO_LOGFIRE", None)


@pytest_asyncio.fixture
async def client(test_app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """提供 httpx AsyncClient（身份通过每个请求的 X-User-Id 指定）"""
    async with AsyncClient(
        transport=ASGITransport(app=test_app),
        base_url="http://test",
    ) as ac:
        yield ac
