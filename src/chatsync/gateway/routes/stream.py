"""SSE 事件流路由

GET /api/stream/events: 当前用户的实时事件流。
- 流开始时注册连接（替换该用户的旧连接），结束时注销
- 第一帧为 stream-ready，客户端据此重拉状态（推送不重放）
- 心跳保活；连接被新连接替换或队列溢出时结束
"""

import asyncio
import json

import structlog
from chatsync.core.config import CONNECTION_QUEUE_MAXSIZE, SSE_HEARTBEAT_INTERVAL
from chatsync.core.models import DeliveryEvent, DeliveryEventType, StreamReadyPayload
from fastapi import APIRouter, Depends
from sse_starlette.sse import EventSourceResponse

from ..deps import get_connection_registry, get_current_user_id
from ..services.connection_registry import ClientConnection, ConnectionRegistry

log = structlog.get_logger()

router = APIRouter()


def _event_to_sse(event: DeliveryEvent) -> dict:
    """将 DeliveryEvent 转换为 SSE 帧"""
    return {
        "id": event.event_id,
        "event": event.type.value,
        "data": json.dumps(event.payload, ensure_ascii=False),
    }


@router.get("/api/stream/events")
async def stream_events(
    user_id: str = Depends(get_current_user_id),
    registry: ConnectionRegistry = Depends(get_connection_registry),
):
    """SSE 事件流端点"""

    async def event_generator():
        connection = ClientConnection(user_id, queue_maxsize=CONNECTION_QUEUE_MAXSIZE)
        registry.register(user_id, connection)
        structlog.contextvars.bind_contextvars(connection_id=connection.connection_id)
        log.info("event_stream_opened", user_id=user_id)
        try:
            yield {
                "id": connection.connection_id,
                "event": DeliveryEventType.STREAM_READY.value,
                "data": StreamReadyPayload(user_id=user_id).model_dump_json(),
            }

            while True:
                try:
                    event = await asyncio.wait_for(
                        connection.queue.get(), timeout=SSE_HEARTBEAT_INTERVAL
                    )
                except TimeoutError:
                    if connection.closed:
                        return
                    yield {"comment": "heartbeat"}
                    continue

                if event is None:
                    # 关闭哨兵：被新连接替换或已注销
                    return
                yield _event_to_sse(event)
        finally:
            registry.unregister(user_id, connection)
            log.info("event_stream_closed", user_id=user_id)

    return EventSourceResponse(event_generator())
