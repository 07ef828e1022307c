"""事件 Payload 类型

每种 DeliveryEventType 对应一个 payload 模型，
推送前通过 model_dump(mode="json") 转为 dict。
"""

from datetime import datetime

from pydantic import BaseModel, Field

from .message import Message


class NewMessagePayload(BaseModel):
    """new-message 事件 payload"""

    message: Message


class UnreadCountChangedPayload(BaseModel):
    """unread-count-changed 事件 payload -- 仅携带发送者 ID"""

    sender_id: str


class MessageDeletedPayload(BaseModel):
    """message-deleted-everyone 事件 payload"""

    message_id: str


class MessagesReadPayload(BaseModel):
    """messages-read 事件 payload"""

    read_by: str = Field(description="执行已读的用户（原消息接收者）")
    read_at: datetime


class MessagePinnedPayload(BaseModel):
    """message-pinned 事件 payload -- 完整消息记录，客户端可直接应用"""

    message: Message


class MessageUnpinnedPayload(BaseModel):
    """message-unpinned 事件 payload"""

    message_id: str
    message: Message


class StreamReadyPayload(BaseModel):
    """stream-ready 事件 payload"""

    user_id: str
