"""ChatSyncEngine -- 客户端状态协调引擎

把本地乐观操作、请求的确认结果、对方触发的实时事件合并到同一份
ChatState。请求响应与事件的先后顺序没有保证，合并一律按记录 ID 与
updated_at 进行。

失败的变更请求：回滚乐观变更（如有），通过 notifier 给出一次性提示，
其余本地状态保持不变。不做自动重试。
"""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any, Protocol

import structlog
from chatsync.core.exceptions import ValidationError
from chatsync.core.models import (
    ChatPartner,
    DeliveryEventType,
    Message,
    MessageDeletedPayload,
    MessagePinnedPayload,
    MessagesReadPayload,
    MessageUnpinnedPayload,
    NewMessagePayload,
    UnreadCountChangedPayload,
    User,
    normalize_payload,
)
from ulid import ULID

from .exceptions import ChatClientError
from .state import TEMP_ID_PREFIX, ChatState, ConversationState, OptimisticMessage

log = structlog.get_logger()

Notifier = Callable[[str], None]


class ChatApi(Protocol):
    """引擎依赖的请求接口（ChatApiClient 实现）"""

    async def fetch_contacts(self) -> list[User]: ...

    async def fetch_chat_partners(self) -> list[ChatPartner]: ...

    async def fetch_conversation(self, peer_id: str) -> list[Message]: ...

    async def fetch_pinned(self, peer_id: str) -> list[Message]: ...

    async def send_message(
        self, peer_id: str, text: str | None = None, image: str | None = None
    ) -> Message: ...

    async def mark_read(self, peer_id: str) -> int: ...

    async def pin(self, message_id: str) -> Message: ...

    async def unpin(self, message_id: str) -> Message: ...

    async def delete_for_everyone(self, message_id: str) -> None: ...

    async def delete_for_me(self, message_id: str) -> None: ...


def _log_notification(text: str) -> None:
    log.warning("chat_notification", text=text)


class ChatSyncEngine:
    """单个用户、单个设备上的同步引擎"""

    def __init__(
        self,
        api: ChatApi,
        user_id: str,
        notifier: Notifier | None = None,
    ) -> None:
        self._api = api
        self.state = ChatState(user_id)
        self._notify = notifier or _log_notification
        # 每次切换会话递增，过期响应据此丢弃
        self._selection = 0
        # 已乐观置零、尚未被 mark-read 确认的未读数，失败或放弃时加回
        self._unconfirmed_unread: dict[str, int] = {}
        self._handlers: dict[str, Callable[[dict[str, Any]], Awaitable[None]]] = {
            DeliveryEventType.NEW_MESSAGE: self._on_new_message,
            DeliveryEventType.UNREAD_COUNT_CHANGED: self._on_unread_count_changed,
            DeliveryEventType.MESSAGES_READ: self._on_messages_read,
            DeliveryEventType.MESSAGE_PINNED: self._on_message_pinned,
            DeliveryEventType.MESSAGE_UNPINNED: self._on_message_unpinned,
            DeliveryEventType.MESSAGE_DELETED_EVERYONE: self._on_message_deleted,
            DeliveryEventType.STREAM_READY: self._on_stream_ready,
        }

    @property
    def user_id(self) -> str:
        return self.state.user_id

    @property
    def selected_peer_id(self) -> str | None:
        return self.state.selected_peer_id

    def conversation(self, peer_id: str) -> ConversationState:
        return self.state.conversation(peer_id)

    def unread_count(self, peer_id: str) -> int:
        return self.state.unread_counts.get(peer_id, 0)

    # ============================================================
    # 查询
    # ============================================================

    async def load_contacts(self) -> list[User]:
        try:
            contacts = await self._api.fetch_contacts()
        except ChatClientError as e:
            self._fail("load_contacts", "无法加载联系人", e)
            return list(self.state.contacts.values())
        self.state.contacts = {c.user_id: c for c in contacts}
        return contacts

    async def load_chat_partners(self) -> list[ChatPartner]:
        """加载聊天列表，未读计数以服务端为准（当前打开的会话除外）"""
        try:
            partners = await self._api.fetch_chat_partners()
        except ChatClientError as e:
            self._fail("load_chat_partners", "无法加载聊天列表", e)
            return list(self.state.chat_partners.values())

        self.state.chat_partners = {p.user_id: p for p in partners}
        self.state.unread_counts = {p.user_id: p.unread_count for p in partners}
        # 服务端计数已包含未确认的部分
        self._unconfirmed_unread.clear()
        if self.state.selected_peer_id in self.state.unread_counts:
            self._reset_unread(self.state.selected_peer_id)
        return partners

    async def resync(self) -> None:
        """重建状态：事件流（重新）连上后调用，弥补断线期间丢失的事件"""
        log.info("client_resync", user_id=self.user_id, selected=self.selected_peer_id)
        await self.load_chat_partners()
        if self.state.selected_peer_id is not None:
            await self.open_conversation(self.state.selected_peer_id)

    # ============================================================
    # 会话选择
    # ============================================================

    async def open_conversation(self, peer_id: str) -> None:
        """打开会话

        立即把未读计数置零（乐观），并行拉取消息与置顶列表，然后标记已读。
        用户在响应返回前已切换到其他会话时，响应被丢弃，置零的计数加回。
        """
        self._selection += 1
        token = self._selection
        self.state.selected_peer_id = peer_id
        self._reset_unread(peer_id)

        conversation = self.state.conversation(peer_id)
        since = conversation.begin_fetch()
        try:
            messages, pinned = await asyncio.gather(
                self._api.fetch_conversation(peer_id),
                self._api.fetch_pinned(peer_id),
            )
        except ChatClientError as e:
            if token == self._selection:
                self._restore_unread(peer_id)
                self._fail("open_conversation", "无法加载会话", e, peer_id=peer_id)
            else:
                self._abandon_open(peer_id)
            return

        if token != self._selection:
            log.debug("stale_conversation_response_discarded", peer_id=peer_id)
            self._abandon_open(peer_id)
            return

        conversation.apply_snapshot(messages, since)
        conversation.apply_pinned_snapshot(pinned, since)
        await self._mark_read(peer_id)

    def close_conversation(self) -> None:
        self._selection += 1
        self.state.selected_peer_id = None

    async def start_typing(self) -> None:
        """开始输入：对当前会话标记已读"""
        peer_id = self.state.selected_peer_id
        if peer_id is None:
            return
        self._reset_unread(peer_id)
        await self._mark_read(peer_id)

    # ============================================================
    # 变更操作
    # ============================================================

    async def send_message(
        self,
        text: str | None = None,
        image: str | None = None,
        peer_id: str | None = None,
    ) -> Message | None:
        """发送消息（乐观）

        Returns:
            服务端确认的消息；本地校验失败或请求失败时返回 None
        """
        peer_id = peer_id or self.state.selected_peer_id
        if peer_id is None:
            self._notify("请先选择会话")
            return None
        try:
            text, image = normalize_payload(text, image)
        except ValidationError as e:
            self._notify(e.message)
            return None

        now = datetime.now(UTC)
        optimistic = OptimisticMessage(
            id=f"{TEMP_ID_PREFIX}{ULID()}",
            sender_id=self.user_id,
            receiver_id=peer_id,
            text=text,
            image=image,
            created_at=now,
            updated_at=now,
        )
        conversation = self.state.conversation(peer_id)
        conversation.add_pending(optimistic)

        try:
            confirmed = await self._api.send_message(peer_id, text=text, image=image)
        except ChatClientError as e:
            conversation.drop_pending(optimistic.id)
            self._fail("send_message", "消息发送失败", e, peer_id=peer_id)
            return None

        # 不原地修改乐观条目：丢弃后按确认记录合并
        conversation.drop_pending(optimistic.id)
        conversation.upsert(confirmed)
        self.state.touch_partner(peer_id)
        return confirmed

    async def pin_message(self, message_id: str) -> Message | None:
        """置顶（非乐观，确认后才更新置顶列表）"""
        try:
            message = await self._api.pin(message_id)
        except ChatClientError as e:
            self._fail("pin_message", "置顶失败", e, message_id=message_id)
            return None
        self._apply_record(message)
        return message

    async def unpin_message(self, message_id: str) -> Message | None:
        """取消置顶（非乐观）"""
        try:
            message = await self._api.unpin(message_id)
        except ChatClientError as e:
            self._fail("unpin_message", "取消置顶失败", e, message_id=message_id)
            return None
        self._apply_record(message)
        return message

    async def delete_for_everyone(self, message_id: str) -> bool:
        try:
            await self._api.delete_for_everyone(message_id)
        except ChatClientError as e:
            self._fail("delete_for_everyone", "删除失败", e, message_id=message_id)
            return False
        self._remove_everywhere(message_id)
        return True

    async def delete_for_me(self, message_id: str) -> bool:
        try:
            await self._api.delete_for_me(message_id)
        except ChatClientError as e:
            self._fail("delete_for_me", "删除失败", e, message_id=message_id)
            return False
        self._remove_everywhere(message_id)
        return True

    # ============================================================
    # 实时事件
    # ============================================================

    async def handle_event(self, event_type: str, payload: dict[str, Any]) -> None:
        """分发一条实时事件；未知事件类型忽略"""
        handler = self._handlers.get(event_type)
        if handler is None:
            log.debug("unknown_event_ignored", event_type=event_type)
            return
        await handler(payload)

    async def _on_new_message(self, payload: dict[str, Any]) -> None:
        message = NewMessagePayload.model_validate(payload).message
        peer_id = message.peer_of(self.user_id)
        self.state.conversation(peer_id).upsert(message)
        self.state.touch_partner(peer_id)

        # 正在查看该会话：直接已读，计数由 unread-count-changed 负责且此时被抑制
        if peer_id == self.state.selected_peer_id:
            self._reset_unread(peer_id)
            await self._mark_read(peer_id)

    async def _on_unread_count_changed(self, payload: dict[str, Any]) -> None:
        sender_id = UnreadCountChangedPayload.model_validate(payload).sender_id
        if sender_id == self.state.selected_peer_id:
            return
        self.state.unread_counts[sender_id] = self.unread_count(sender_id) + 1
        if sender_id not in self.state.chat_partners:
            self.state.touch_partner(sender_id)

    async def _on_messages_read(self, payload: dict[str, Any]) -> None:
        event = MessagesReadPayload.model_validate(payload)
        conversation = self.state.conversations.get(event.read_by)
        if conversation is not None:
            conversation.mark_outgoing_read(event.read_at)

    async def _on_message_pinned(self, payload: dict[str, Any]) -> None:
        self._apply_record(MessagePinnedPayload.model_validate(payload).message)

    async def _on_message_unpinned(self, payload: dict[str, Any]) -> None:
        self._apply_record(MessageUnpinnedPayload.model_validate(payload).message)

    async def _on_message_deleted(self, payload: dict[str, Any]) -> None:
        self._remove_everywhere(MessageDeletedPayload.model_validate(payload).message_id)

    async def _on_stream_ready(self, payload: dict[str, Any]) -> None:
        await self.resync()

    # ============================================================
    # 内部
    # ============================================================

    def _apply_record(self, message: Message) -> None:
        """应用一条权威记录到对应会话"""
        self.state.conversation(message.peer_of(self.user_id)).upsert(message)

    def _remove_everywhere(self, message_id: str) -> None:
        """从消息列表与置顶列表移除；被移除的未读来信同步扣减计数"""
        found = self.state.find_message(message_id)
        if found is None:
            self.state.tombstones.add(message_id)
            return
        conversation, message = found
        conversation.remove(message_id)

        peer_id = conversation.peer_id
        if (
            message.sender_id == peer_id
            and not message.read
            and peer_id != self.state.selected_peer_id
            and self.unread_count(peer_id) > 0
        ):
            self.state.unread_counts[peer_id] -= 1

    def _reset_unread(self, peer_id: str) -> None:
        """计数立即置零，置零前的值记为未确认"""
        held = self._unconfirmed_unread.get(peer_id, 0) + self.unread_count(peer_id)
        self._unconfirmed_unread[peer_id] = held
        self.state.unread_counts[peer_id] = 0

    def _restore_unread(self, peer_id: str) -> None:
        """把未确认的置零加回计数（期间新到的增量保留）"""
        held = self._unconfirmed_unread.pop(peer_id, 0)
        self.state.unread_counts[peer_id] = held + self.unread_count(peer_id)

    def _abandon_open(self, peer_id: str) -> None:
        """过期的打开请求不会再标记已读

        会话已被重新选中时，未确认计数留给新一次打开结算。
        """
        if peer_id != self.state.selected_peer_id:
            self._restore_unread(peer_id)

    async def _mark_read(self, peer_id: str) -> None:
        try:
            await self._api.mark_read(peer_id)
        except ChatClientError as e:
            self._restore_unread(peer_id)
            self._fail("mark_read", "标记已读失败", e, peer_id=peer_id)
            return
        self._unconfirmed_unread.pop(peer_id, None)
        self.state.conversation(peer_id).mark_incoming_read()

    def _fail(self, operation: str, text: str, error: ChatClientError, **context: Any) -> None:
        log.warning(
            "client_operation_failed",
            operation=operation,
            error=error.message,
            **context,
        )
        self._notify(f"{text}: {error.message}")
