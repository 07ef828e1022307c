"""DeliveryCoordinator -- 实时事件扇出

best-effort、at-most-once：接收方不在线时事件被静默丢弃，不排队、不重放。
事件流只是通知通道，客户端断线后通过查询接口重建状态。
本模块不做任何持久化。
"""

from datetime import UTC, datetime
from typing import Any

import structlog
from chatsync.core.models import (
    BROADCAST_TO_PARTICIPANTS,
    DeliveryEvent,
    DeliveryEventType,
    Message,
    MessageDeletedPayload,
    MessagePinnedPayload,
    MessagesReadPayload,
    MessageUnpinnedPayload,
    NewMessagePayload,
    UnreadCountChangedPayload,
)
from pydantic import BaseModel
from ulid import ULID

from .connection_registry import ConnectionRegistry

log = structlog.get_logger()


class DeliveryCoordinator:
    """把消息核心的状态变化推送给相关在线用户"""

    def __init__(self, registry: ConnectionRegistry) -> None:
        self._registry = registry

    @property
    def registry(self) -> ConnectionRegistry:
        return self._registry

    def publish(
        self,
        user_id: str,
        event_type: DeliveryEventType,
        payload: BaseModel | dict[str, Any],
    ) -> bool:
        """向单个用户推送事件

        Returns:
            True 如果事件进入了该用户连接的队列；离线或连接关闭返回 False
        """
        if isinstance(payload, BaseModel):
            payload = payload.model_dump(mode="json")

        connection = self._registry.connection_for(user_id)
        if connection is None:
            log.debug("event_dropped_offline", user_id=user_id, event_type=str(event_type))
            return False

        event = DeliveryEvent(
            event_id=str(ULID()),
            type=event_type,
            ts=datetime.now(UTC),
            payload=payload,
        )
        delivered = connection.send(event)
        if delivered:
            log.debug(
                "event_delivered",
                user_id=user_id,
                event_type=str(event_type),
                event_id=event.event_id,
            )
        else:
            log.debug("event_dropped_closed", user_id=user_id, event_type=str(event_type))
        return delivered

    def publish_to_participants(
        self,
        message: Message,
        event_type: DeliveryEventType,
        payload: BaseModel | dict[str, Any],
    ) -> dict[str, bool]:
        """向消息双方分别推送（任一方都可能打开着该会话）"""
        if event_type not in BROADCAST_TO_PARTICIPANTS:
            raise ValueError(f"{event_type} is not a participant broadcast event")
        return {
            user_id: self.publish(user_id, event_type, payload)
            for user_id in (message.sender_id, message.receiver_id)
        }

    def message_created(self, message: Message) -> None:
        """新消息：推送给接收者，并附带未读数变化信号"""
        self.publish(
            message.receiver_id,
            DeliveryEventType.NEW_MESSAGE,
            NewMessagePayload(message=message),
        )
        self.publish(
            message.receiver_id,
            DeliveryEventType.UNREAD_COUNT_CHANGED,
            UnreadCountChangedPayload(sender_id=message.sender_id),
        )

    def message_deleted_for_everyone(self, message: Message) -> None:
        """对所有人删除：通知双方"""
        self.publish_to_participants(
            message,
            DeliveryEventType.MESSAGE_DELETED_EVERYONE,
            MessageDeletedPayload(message_id=message.id),
        )

    def messages_read(self, reader_id: str, sender_id: str, read_at: datetime) -> None:
        """已读：通知原发送者，使其无需重拉即可更新"已发送/已读"标记"""
        self.publish(
            sender_id,
            DeliveryEventType.MESSAGES_READ,
            MessagesReadPayload(read_by=reader_id, read_at=read_at),
        )

    def message_pinned(self, message: Message) -> None:
        """置顶：双方都收到完整消息记录"""
        self.publish_to_participants(
            message,
            DeliveryEventType.MESSAGE_PINNED,
            MessagePinnedPayload(message=message),
        )

    def message_unpinned(self, message: Message) -> None:
        """取消置顶：双方都收到完整消息记录"""
        self.publish_to_participants(
            message,
            DeliveryEventType.MESSAGE_UNPINNED,
            MessageUnpinnedPayload(message_id=message.id, message=message),
        )
