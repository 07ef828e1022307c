"""ChatSync Core Domain Models -- 公共类型导出

所有公共模型类型从此入口导入。
"""

from .enums import BROADCAST_TO_PARTICIPANTS, DeliveryEventType
from .event import DeliveryEvent
from .message import Message, is_visible_to, normalize_payload
from .payloads import (
    MessageDeletedPayload,
    MessagePinnedPayload,
    MessagesReadPayload,
    MessageUnpinnedPayload,
    NewMessagePayload,
    StreamReadyPayload,
    UnreadCountChangedPayload,
)
from .user import ChatPartner, User

__all__ = [
    # 枚举
    "DeliveryEventType",
    "BROADCAST_TO_PARTICIPANTS",
    # Message
    "Message",
    "is_visible_to",
    "normalize_payload",
    # User
    "User",
    "ChatPartner",
    # Event
    "DeliveryEvent",
    # Payloads
    "NewMessagePayload",
    "UnreadCountChangedPayload",
    "MessageDeletedPayload",
    "MessagesReadPayload",
    "MessagePinnedPayload",
    "MessageUnpinnedPayload",
    "StreamReadyPayload",
]
