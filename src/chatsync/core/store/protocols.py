"""Store Protocol 接口定义

定义 UserStore、MessageStore 的抽象接口，
使用 Python Protocol 实现结构化子类型（duck typing）。
"""

from datetime import datetime
from typing import Protocol

from ..models.message import Message
from ..models.user import ChatPartner, User


class UserStore(Protocol):
    """User 存储接口"""

    async def user_exists(self, user_id: str) -> bool:
        """用户是否存在"""
        ...

    async def list_contacts(self, viewer_id: str) -> list[User]:
        """列出除 viewer 以外的所有用户"""
        ...


class MessageStore(Protocol):
    """Message 存储接口

    消息只做逻辑删除，不做物理删除。
    """

    async def validate_new_message(
        self,
        sender_id: str,
        receiver_id: str,
        text: str | None = None,
        image: str | None = None,
    ) -> tuple[str | None, str | None]:
        """执行创建前校验，返回规范化后的 (text, image)"""
        ...

    async def create_message(
        self,
        sender_id: str,
        receiver_id: str,
        text: str | None = None,
        image: str | None = None,
    ) -> Message:
        """创建消息"""
        ...

    async def get_message(self, message_id: str) -> Message | None:
        """根据 id 查询消息"""
        ...

    async def list_conversation(self, viewer_id: str, peer_id: str) -> list[Message]:
        """查询会话中对 viewer 可见的消息"""
        ...

    async def list_pinned(self, viewer_id: str, peer_id: str) -> list[Message]:
        """查询会话中对 viewer 可见的置顶消息"""
        ...

    async def list_chat_partners(self, viewer_id: str) -> list[ChatPartner]:
        """查询聊天对象及未读数"""
        ...

    async def mark_read(
        self,
        viewer_id: str,
        peer_id: str,
        read_at: datetime | None = None,
    ) -> int:
        """标记 peer -> viewer 方向的消息为已读，返回受影响行数"""
        ...

    async def delete_for_everyone(self, actor_id: str, message_id: str) -> Message:
        """对所有人删除"""
        ...

    async def delete_for_me(self, actor_id: str, message_id: str) -> Message:
        """对自己删除"""
        ...

    async def pin_message(self, actor_id: str, message_id: str) -> Message:
        """置顶"""
        ...

    async def unpin_message(self, actor_id: str, message_id: str) -> Message:
        """取消置顶"""
        ...
