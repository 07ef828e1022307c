"""EventStreamListener -- 保持事件流连接

事件流是 at-most-once 的：每次（重新）连上都会先收到 stream-ready，
引擎据此 resync，从查询接口补回断线期间丢失的状态。
"""

import asyncio

import structlog

from .api import ChatApiClient
from .engine import ChatSyncEngine
from .exceptions import ChatApiError, ServerUnreachableError

log = structlog.get_logger()


class EventStreamListener:
    """事件流监听器，断线后按固定间隔重连"""

    def __init__(
        self,
        api: ChatApiClient,
        engine: ChatSyncEngine,
        reconnect_delay_s: float = 2.0,
    ) -> None:
        self._api = api
        self._engine = engine
        self._reconnect_delay_s = reconnect_delay_s
        self._stopped = False

    def stop(self) -> None:
        """当前连接结束后不再重连"""
        self._stopped = True

    async def run(self, max_connections: int | None = None) -> None:
        """持续监听

        Args:
            max_connections: 最多建立的连接次数，None 表示直到 stop() 或被取消
        """
        connections = 0
        while not self._stopped:
            connections += 1
            try:
                async for event_type, payload in self._api.stream_events():
                    await self._engine.handle_event(event_type, payload)
                log.info("event_stream_ended", user_id=self._engine.user_id)
            except ServerUnreachableError as e:
                log.warning("event_stream_unreachable", error=str(e.original_error))
            except ChatApiError as e:
                if e.status_code == 401:
                    raise
                log.warning("event_stream_rejected", status_code=e.status_code, code=e.code)

            if max_connections is not None and connections >= max_connections:
                return
            if not self._stopped:
                await asyncio.sleep(self._reconnect_delay_s)
