"""枚举定义 -- 实时推送事件类型

事件名即 SSE 的 event 字段，客户端按此分发。
"""

from enum import StrEnum


class DeliveryEventType(StrEnum):
    """推送事件类型"""

    NEW_MESSAGE = "new-message"
    MESSAGE_DELETED_EVERYONE = "message-deleted-everyone"
    MESSAGES_READ = "messages-read"
    MESSAGE_PINNED = "message-pinned"
    MESSAGE_UNPINNED = "message-unpinned"
    UNREAD_COUNT_CHANGED = "unread-count-changed"

    # 流控制事件：每条 SSE 流的第一帧，客户端据此触发全量重拉
    STREAM_READY = "stream-ready"


# 发给双方参与者的事件
BROADCAST_TO_PARTICIPANTS: frozenset[DeliveryEventType] = frozenset(
    {
        DeliveryEventType.MESSAGE_DELETED_EVERYONE,
        DeliveryEventType.MESSAGE_PINNED,
        DeliveryEventType.MESSAGE_UNPINNED,
    }
)
