"""客户端本地状态 -- 会话级三方合并

三个独立的更新来源按记录 ID（而非数组位置或到达顺序）合并：
- 本地乐观操作：待确认覆盖层 _pending，临时 ID 以 tmp- 开头
- 服务端确认结果与查询快照：_records，updated_at 较新者生效
- 对方触发的实时事件：同样写入 _records

被删除的 ID 进入共享墓碑集合，之后任何来源都不能让它复活。
"""

from datetime import datetime

from chatsync.core.models import ChatPartner, Message, User, is_visible_to
from pydantic import Field

TEMP_ID_PREFIX = "tmp-"


class OptimisticMessage(Message):
    """本地乐观消息 -- 已显示但尚未被服务端确认"""

    pending: bool = Field(default=True, description="是否仍在等待服务端确认")


class ConversationState:
    """与单个 peer 的会话本地视图"""

    def __init__(self, viewer_id: str, peer_id: str, tombstones: set[str]) -> None:
        self.viewer_id = viewer_id
        self.peer_id = peer_id
        self._tombstones = tombstones
        self._records: dict[str, Message] = {}
        self._pending: dict[str, OptimisticMessage] = {}
        # 每条记录最后一次被写入时的 tick，用于判断快照是否覆盖了它
        self._seen_tick: dict[str, int] = {}
        self._tick = 0

    @property
    def messages(self) -> list[Message]:
        """已确认消息按创建顺序排列，待确认消息追加在末尾"""
        confirmed = sorted(self._records.values(), key=lambda m: (m.created_at, m.id))
        pending = sorted(self._pending.values(), key=lambda m: (m.created_at, m.id))
        return [*confirmed, *pending]

    @property
    def pinned(self) -> list[Message]:
        """置顶消息，最近置顶的在前"""
        pinned = [m for m in self._records.values() if m.is_pinned]
        return sorted(pinned, key=lambda m: (m.pinned_at, m.id), reverse=True)

    @property
    def pending(self) -> list[OptimisticMessage]:
        return list(self._pending.values())

    def get(self, message_id: str) -> Message | None:
        return self._records.get(message_id) or self._pending.get(message_id)

    def begin_fetch(self) -> int:
        """记录快照请求发出时的 tick，之后写入的记录不会被该快照清除"""
        return self._tick

    def upsert(self, message: Message) -> bool:
        """合并一条权威记录

        Returns:
            True 如果本地视图被更新
        """
        if message.id in self._tombstones:
            return False
        if not is_visible_to(message, self.viewer_id):
            self.remove(message.id)
            return True

        current = self._records.get(message.id)
        if current is not None and current.updated_at > message.updated_at:
            return False

        self._tick += 1
        self._records[message.id] = message
        self._seen_tick[message.id] = self._tick
        return True

    def remove(self, message_id: str) -> Message | None:
        """移除消息并记入墓碑，返回被移除的记录"""
        self._tombstones.add(message_id)
        self._seen_tick.pop(message_id, None)
        self._pending.pop(message_id, None)
        return self._records.pop(message_id, None)

    def apply_snapshot(self, messages: list[Message], since_tick: int) -> None:
        """应用会话查询快照

        快照中不存在的本地记录视为已被服务端过滤，
        除非它是在快照请求发出之后才收到的。
        """
        for message in messages:
            self.upsert(message)

        snapshot_ids = {m.id for m in messages}
        for message_id in list(self._records):
            if message_id in snapshot_ids:
                continue
            if self._seen_tick.get(message_id, 0) <= since_tick:
                del self._records[message_id]
                self._seen_tick.pop(message_id, None)

    def apply_pinned_snapshot(self, messages: list[Message], since_tick: int) -> None:
        """应用置顶查询快照，快照外的旧置顶状态被清除"""
        for message in messages:
            self.upsert(message)

        snapshot_ids = {m.id for m in messages}
        for message_id, message in list(self._records.items()):
            if not message.is_pinned or message_id in snapshot_ids:
                continue
            if self._seen_tick.get(message_id, 0) <= since_tick:
                self._records[message_id] = message.model_copy(
                    update={"is_pinned": False, "pinned_at": None, "pinned_by": None}
                )

    def add_pending(self, message: OptimisticMessage) -> None:
        self._pending[message.id] = message

    def drop_pending(self, temp_id: str) -> OptimisticMessage | None:
        return self._pending.pop(temp_id, None)

    def mark_outgoing_read(self, read_at: datetime | None = None) -> int:
        """对方已读：翻转自己发出消息的 read 标记"""
        return self._mark_read_from(self.viewer_id, read_at)

    def mark_incoming_read(self, read_at: datetime | None = None) -> int:
        """自己已读：翻转对方发来消息的 read 标记"""
        return self._mark_read_from(self.peer_id, read_at)

    def _mark_read_from(self, sender_id: str, read_at: datetime | None) -> int:
        changed = 0
        for message_id, message in list(self._records.items()):
            if message.sender_id != sender_id or message.read:
                continue
            update: dict = {"read": True}
            if read_at is not None and read_at > message.updated_at:
                update["updated_at"] = read_at
            self._records[message_id] = message.model_copy(update=update)
            changed += 1
        return changed


class ChatState:
    """当前用户的全部本地状态"""

    def __init__(self, user_id: str) -> None:
        self.user_id = user_id
        self.contacts: dict[str, User] = {}
        # 按最近活动排序，最新的在前
        self.chat_partners: dict[str, ChatPartner] = {}
        self.unread_counts: dict[str, int] = {}
        self.conversations: dict[str, ConversationState] = {}
        self.selected_peer_id: str | None = None
        self.tombstones: set[str] = set()

    def conversation(self, peer_id: str) -> ConversationState:
        """获取（必要时创建）与 peer 的会话状态"""
        conversation = self.conversations.get(peer_id)
        if conversation is None:
            conversation = ConversationState(self.user_id, peer_id, self.tombstones)
            self.conversations[peer_id] = conversation
        return conversation

    def find_message(self, message_id: str) -> tuple[ConversationState, Message] | None:
        """在所有已缓存会话中查找消息"""
        for conversation in self.conversations.values():
            message = conversation.get(message_id)
            if message is not None:
                return conversation, message
        return None

    def touch_partner(self, peer_id: str) -> None:
        """把 peer 移到聊天列表最前（不存在则按联系人资料创建）"""
        partner = self.chat_partners.pop(peer_id, None)
        if partner is None:
            contact = self.contacts.get(peer_id)
            partner = ChatPartner(
                user_id=peer_id,
                full_name=contact.full_name if contact else "",
                profile_pic=contact.profile_pic if contact else "",
            )
        self.chat_partners = {peer_id: partner, **self.chat_partners}

    def unread_total(self) -> int:
        return sum(self.unread_counts.values())
