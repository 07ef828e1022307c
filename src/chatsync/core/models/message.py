"""Message Domain Model

一条私信消息。删除均为逻辑删除：
- deleted_for_everyone 为终态，对所有参与者隐藏
- deleted_for 记录对自己隐藏该消息的用户，只增不减
置顶字段 is_pinned / pinned_at / pinned_by 同时设置、同时清空。
"""

from datetime import datetime

from pydantic import BaseModel, Field, model_validator

from ..config import MESSAGE_TEXT_MAX_LENGTH
from ..exceptions import ValidationError


class Message(BaseModel):
    """Message 数据模型"""

    id: str = Field(description="唯一标识，ULID 格式，服务端分配")
    sender_id: str = Field(description="发送者 ID")
    receiver_id: str = Field(description="接收者 ID")
    text: str | None = Field(default=None, description="文本内容")
    image: str | None = Field(default=None, description="图片引用/URL")
    deleted_for_everyone: bool = Field(default=False, description="是否已对所有人删除")
    deleted_for: list[str] = Field(
        default_factory=list,
        description="已对自己删除该消息的用户 ID",
    )
    read: bool = Field(default=False, description="接收者是否已读")
    is_pinned: bool = Field(default=False, description="是否置顶")
    pinned_at: datetime | None = Field(default=None, description="置顶时间")
    pinned_by: str | None = Field(default=None, description="置顶操作者")
    created_at: datetime = Field(description="创建时间")
    updated_at: datetime = Field(description="最后修改时间（已读/置顶变化时更新）")

    @model_validator(mode="after")
    def _check_pin_fields(self) -> "Message":
        if self.is_pinned != (self.pinned_at is not None):
            raise ValueError("pinned_at must be set iff is_pinned")
        if self.is_pinned != (self.pinned_by is not None):
            raise ValueError("pinned_by must be set iff is_pinned")
        return self

    def involves(self, user_id: str) -> bool:
        """user_id 是否为该消息的参与者"""
        return user_id in (self.sender_id, self.receiver_id)

    def peer_of(self, user_id: str) -> str:
        """返回相对 user_id 的对方 ID"""
        return self.receiver_id if self.sender_id == user_id else self.sender_id


def is_visible_to(message: Message, viewer_id: str) -> bool:
    """消息对 viewer 是否可见

    两种删除语义必须同时生效：对所有人删除 + 对自己删除。
    非参与者永远不可见。
    """
    return (
        message.involves(viewer_id)
        and not message.deleted_for_everyone
        and viewer_id not in message.deleted_for
    )


def normalize_payload(
    text: str | None,
    image: str | None,
) -> tuple[str | None, str | None]:
    """规范化消息载荷

    文本去除首尾空白，空串视为缺失；文本与图片至少存在一个。

    Raises:
        ValidationError: 载荷为空或文本超长
    """
    text = text.strip() if text else None
    image = image or None
    if not text:
        text = None
    if text is None and image is None:
        raise ValidationError("Message text or image is required")
    if text is not None and len(text) > MESSAGE_TEXT_MAX_LENGTH:
        raise ValidationError(
            f"Message is too long. Maximum {MESSAGE_TEXT_MAX_LENGTH} characters allowed."
        )
    return text, image
