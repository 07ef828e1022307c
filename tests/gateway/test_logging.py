"""日志配置 + RequestContextMiddleware 测试

测试内容：
1. data URL 截断处理器
2. setup_logging 按格式配置处理链与根 handler
3. 中间件绑定 request_id / 操作者并回写 X-Request-ID
"""

import logging

import pytest
import structlog
from chatsync.gateway.middleware.logging_config import redact_data_urls, setup_logging
from chatsync.gateway.middleware.request_context_mw import RequestContextMiddleware
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    structlog.reset_defaults()
    root.handlers[:] = handlers
    root.setLevel(level)


class TestRedactDataUrls:
    """data URL 截断"""

    def test_long_data_url_truncated(self):
        image = "data:image/png;base64," + "A" * 400
        event = redact_data_urls(None, "info", {"event": "x", "image": image})
        assert event["image"].startswith("data:image/png;base64,")
        assert event["image"].endswith(f"<{len(image)} chars>")
        assert len(event["image"]) < 100

    def test_other_values_untouched(self):
        event = {"event": "x", "image": "https://cdn.example.com/a.png", "count": 3}
        assert redact_data_urls(None, "info", dict(event)) == event


class TestSetupLogging:
    """setup_logging"""

    def test_json_mode(self, restore_logging):
        setup_logging(log_format="json", log_level="debug")

        assert redact_data_urls in structlog.get_config()["processors"]
        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert logging.getLogger("aiosqlite").level == logging.WARNING

    def test_level_from_env(self, restore_logging, monkeypatch):
        monkeypatch.setenv("CHATSYNC_LOG_LEVEL", "warning")
        monkeypatch.setenv("CHATSYNC_LOG_FORMAT", "dev")
        setup_logging()
        assert logging.getLogger().level == logging.WARNING


class TestRequestContextMiddleware:
    """请求上下文绑定"""

    @pytest.fixture
    def context_app(self) -> FastAPI:
        app = FastAPI()
        app.add_middleware(RequestContextMiddleware)

        @app.get("/context")
        async def context():
            return structlog.contextvars.get_contextvars()

        return app

    async def test_binds_actor_and_request_id(self, context_app: FastAPI):
        async with AsyncClient(
            transport=ASGITransport(app=context_app), base_url="http://test"
        ) as client:
            resp = await client.get("/context", headers={"X-User-Id": "alice"})

        bound = resp.json()
        assert bound["actor_id"] == "alice"
        assert bound["path"] == "/context"
        assert bound["request_id"] == resp.headers["X-Request-ID"]

    async def test_anonymous_request(self, context_app: FastAPI):
        async with AsyncClient(
            transport=ASGITransport(app=context_app), base_url="http://test"
        ) as client:
            first = await client.get("/context")
            second = await client.get("/context")

        assert "actor_id" not in first.json()
        assert first.headers["X-Request-ID"] != second.headers["X-Request-ID"]
