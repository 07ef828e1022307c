"""MessageService -- 私信业务逻辑

每个操作都是：调用 MessageStore 完成校验与持久化，成功后经
DeliveryCoordinator 推送事件。推送失败（对方离线）不影响请求结果。
"""

from datetime import UTC, datetime

import structlog
from chatsync.core.models import ChatPartner, Message, User
from chatsync.core.store import ImageStore, StoreGroup
from chatsync.core.store.protocols import MessageStore, UserStore

from .delivery import DeliveryCoordinator

log = structlog.get_logger()


class MessageService:
    """私信业务服务"""

    def __init__(
        self,
        store_group: StoreGroup,
        coordinator: DeliveryCoordinator | None = None,
    ) -> None:
        self._messages: MessageStore = store_group.message_store
        self._users: UserStore = store_group.user_store
        self._images: ImageStore = store_group.image_store
        self._coordinator = coordinator

    async def list_contacts(self, viewer_id: str) -> list[User]:
        """联系人列表：除自己以外的所有用户"""
        return await self._users.list_contacts(viewer_id)

    async def list_chat_partners(self, viewer_id: str) -> list[ChatPartner]:
        """聊天对象列表及未读数"""
        return await self._messages.list_chat_partners(viewer_id)

    async def list_conversation(self, viewer_id: str, peer_id: str) -> list[Message]:
        """会话消息"""
        return await self._messages.list_conversation(viewer_id, peer_id)

    async def list_pinned(self, viewer_id: str, peer_id: str) -> list[Message]:
        """会话置顶消息"""
        return await self._messages.list_pinned(viewer_id, peer_id)

    async def send_message(
        self,
        sender_id: str,
        receiver_id: str,
        text: str | None = None,
        image: str | None = None,
    ) -> Message:
        """发送消息

        流程：
        1. 校验载荷/自发/接收者（任何持久化之前）
        2. 图片解析为持久引用
        3. 写入消息（失败时删除刚写入的图片文件）
        4. 推送 new-message + unread-count-changed 给接收者
        """
        text, image = await self._messages.validate_new_message(
            sender_id, receiver_id, text, image
        )
        if image is not None:
            image = await self._images.resolve(image)

        try:
            message = await self._messages.create_message(sender_id, receiver_id, text, image)
        except Exception:
            # 没有消息引用的图片文件不保留
            if image is not None:
                self._images.discard(image)
            raise
        log.info(
            "message_created",
            message_id=message.id,
            sender_id=sender_id,
            receiver_id=receiver_id,
            has_image=message.image is not None,
        )

        if self._coordinator:
            self._coordinator.message_created(message)
        return message

    async def mark_read(self, viewer_id: str, peer_id: str) -> int:
        """标记 peer 发来的消息为已读；有变化时通知 peer"""
        read_at = datetime.now(UTC)
        updated = await self._messages.mark_read(viewer_id, peer_id, read_at=read_at)
        log.info("messages_marked_read", viewer_id=viewer_id, peer_id=peer_id, updated=updated)

        if updated and self._coordinator:
            self._coordinator.messages_read(viewer_id, peer_id, read_at)
        return updated

    async def delete_for_everyone(self, actor_id: str, message_id: str) -> Message:
        """对所有人删除并通知双方"""
        message = await self._messages.delete_for_everyone(actor_id, message_id)
        log.info("message_deleted_for_everyone", message_id=message_id, actor_id=actor_id)

        if self._coordinator:
            self._coordinator.message_deleted_for_everyone(message)
        return message

    async def delete_for_me(self, actor_id: str, message_id: str) -> Message:
        """对自己删除，只影响操作者自己的视图，不推送"""
        message = await self._messages.delete_for_me(actor_id, message_id)
        log.info("message_deleted_for_me", message_id=message_id, actor_id=actor_id)
        return message

    async def pin_message(self, actor_id: str, message_id: str) -> Message:
        """置顶并通知双方"""
        message = await self._messages.pin_message(actor_id, message_id)
        log.info("message_pinned", message_id=message_id, actor_id=actor_id)

        if self._coordinator:
            self._coordinator.message_pinned(message)
        return message

    async def unpin_message(self, actor_id: str, message_id: str) -> Message:
        """取消置顶并通知双方"""
        message = await self._messages.unpin_message(actor_id, message_id)
        log.info("message_unpinned", message_id=message_id, actor_id=actor_id)

        if self._coordinator:
            self._coordinator.message_unpinned(message)
        return message
