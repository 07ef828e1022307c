"""ChatApiClient -- gateway 请求/响应边界的 httpx 封装

所有请求携带 X-User-Id（由上游认证层提供的身份）。
错误响应统一转换为 ChatApiError，传输层失败转换为 ServerUnreachableError。
"""

import json
from collections.abc import AsyncIterator
from typing import Any

import httpx
import structlog
from chatsync.core.models import ChatPartner, Message, User

from .config import ClientConfig
from .exceptions import ChatApiError, ServerUnreachableError

log = structlog.get_logger()

_API_PREFIX = "/api/messages"
_STREAM_PATH = "/api/stream/events"


class ChatApiClient:
    """gateway 客户端"""

    def __init__(
        self,
        base_url: str,
        user_id: str,
        timeout_s: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Args:
            base_url: gateway 基础 URL
            user_id: 当前用户 ID
            timeout_s: 普通请求超时（秒）；事件流不设读超时
            transport: 自定义传输层（测试时注入 ASGITransport / MockTransport）
        """
        self._base_url = base_url.rstrip("/")
        self.user_id = user_id
        self._http = httpx.AsyncClient(
            base_url=self._base_url,
            headers={"X-User-Id": user_id},
            timeout=timeout_s,
            transport=transport,
        )

    @classmethod
    def from_config(cls, config: ClientConfig) -> "ChatApiClient":
        return cls(config.base_url, config.user_id, timeout_s=config.timeout_s)

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "ChatApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def fetch_contacts(self) -> list[User]:
        data = await self._request("GET", f"{_API_PREFIX}/contacts")
        return [User.model_validate(item) for item in data]

    async def fetch_chat_partners(self) -> list[ChatPartner]:
        data = await self._request("GET", f"{_API_PREFIX}/chats")
        return [ChatPartner.model_validate(item) for item in data]

    async def fetch_conversation(self, peer_id: str) -> list[Message]:
        data = await self._request("GET", f"{_API_PREFIX}/{peer_id}")
        return [Message.model_validate(item) for item in data]

    async def fetch_pinned(self, peer_id: str) -> list[Message]:
        data = await self._request("GET", f"{_API_PREFIX}/pinned/{peer_id}")
        return [Message.model_validate(item) for item in data]

    async def send_message(
        self,
        peer_id: str,
        text: str | None = None,
        image: str | None = None,
    ) -> Message:
        data = await self._request(
            "POST",
            f"{_API_PREFIX}/send/{peer_id}",
            json={"text": text, "image": image},
        )
        return Message.model_validate(data)

    async def mark_read(self, peer_id: str) -> int:
        data = await self._request("PATCH", f"{_API_PREFIX}/mark-read/{peer_id}")
        return data["updated"]

    async def pin(self, message_id: str) -> Message:
        data = await self._request("PATCH", f"{_API_PREFIX}/pin/{message_id}")
        return Message.model_validate(data)

    async def unpin(self, message_id: str) -> Message:
        data = await self._request("PATCH", f"{_API_PREFIX}/unpin/{message_id}")
        return Message.model_validate(data)

    async def delete_for_everyone(self, message_id: str) -> None:
        await self._request("DELETE", f"{_API_PREFIX}/delete-for-everyone/{message_id}")

    async def delete_for_me(self, message_id: str) -> None:
        await self._request("DELETE", f"{_API_PREFIX}/delete-for-me/{message_id}")

    async def stream_events(self) -> AsyncIterator[tuple[str, dict[str, Any]]]:
        """打开事件流，逐个产出 (event, data)

        事件流是 at-most-once 的通知通道，断开即结束迭代；
        心跳注释行被忽略。
        """
        try:
            async with self._http.stream(
                "GET",
                _STREAM_PATH,
                timeout=httpx.Timeout(None, connect=self._http.timeout.connect),
            ) as response:
                if response.status_code >= 400:
                    await response.aread()
                    raise self._to_api_error(response)

                event_name = "message"
                data_lines: list[str] = []
                async for line in response.aiter_lines():
                    if not line:
                        # 空行：一个事件帧结束
                        if data_lines:
                            yield event_name, json.loads("\n".join(data_lines))
                        event_name = "message"
                        data_lines = []
                        continue
                    if line.startswith(":"):
                        continue
                    field, _, value = line.partition(":")
                    value = value.removeprefix(" ")
                    if field == "event":
                        event_name = value
                    elif field == "data":
                        data_lines.append(value)
        except httpx.TransportError as e:
            raise ServerUnreachableError(self._base_url, e) from e

    async def _request(
        self,
        method: str,
        path: str,
        json: dict[str, Any] | None = None,
    ) -> Any:
        try:
            response = await self._http.request(method, path, json=json)
        except httpx.TransportError as e:
            log.warning("chat_api_unreachable", method=method, path=path, error=str(e))
            raise ServerUnreachableError(self._base_url, e) from e

        if response.status_code >= 400:
            raise self._to_api_error(response)
        return response.json()

    @staticmethod
    def _to_api_error(response: httpx.Response) -> ChatApiError:
        """解析 {"error": {"code", "message"}} 错误响应"""
        code = "HTTP_ERROR"
        message = response.reason_phrase or f"HTTP {response.status_code}"
        try:
            error = response.json().get("error", {})
        except ValueError:
            error = {}
        if isinstance(error, dict):
            code = error.get("code", code)
            message = error.get("message", message)
        return ChatApiError(response.status_code, code, message)
