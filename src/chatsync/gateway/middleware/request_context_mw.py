"""RequestContextMiddleware

每个请求生成 ULID request_id，连同路由与操作者身份（X-User-Id）一起绑定到
structlog contextvars。身份是否有效由 deps.get_current_user_id 校验，这里只做日志关联。

事件流是长连接：call_next 在响应头就绪时返回，只记录连接建立，
断开由 stream 路由记录。
"""

import time

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from ulid import ULID

ACTOR_HEADER = "X-User-Id"
REQUEST_ID_HEADER = "X-Request-ID"
STREAM_PATH = "/api/stream/events"

log = structlog.get_logger()


class RequestContextMiddleware(BaseHTTPMiddleware):
    """请求上下文中间件"""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = str(ULID())
        context = {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
        }
        actor_id = request.headers.get(ACTOR_HEADER)
        if actor_id:
            context["actor_id"] = actor_id

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(**context)

        started = time.perf_counter()
        response = await call_next(request)

        if request.url.path == STREAM_PATH:
            await log.ainfo("event_stream_accepted", status_code=response.status_code)
        else:
            await log.ainfo(
                "request_completed",
                status_code=response.status_code,
                elapsed_ms=round((time.perf_counter() - started) * 1000, 1),
            )

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
