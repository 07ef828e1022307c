"""MessageStore SQLite 实现

所有读取都经过同一个可见性条件 _VISIBLE_TO_VIEWER：
对所有人删除 + 对自己删除必须同时生效，不区分是哪一方在查询。
所有变更都是作用于单条记录或单个 (sender, receiver) 对的条件更新，
并发调用可交换或安全地变为 no-op，因此不需要跨请求加锁。
"""

import json
from datetime import UTC, datetime

import aiosqlite
import structlog
from ulid import ULID

from ..exceptions import (
    AlreadyDeletedError,
    ForbiddenError,
    NotFoundError,
    SelfMessageError,
)
from ..models.message import Message, is_visible_to, normalize_payload
from ..models.user import ChatPartner
from .user_store import SqliteUserStore

log = structlog.get_logger()

_SELECT_MESSAGE = """
SELECT m.id, m.sender_id, m.receiver_id, m.text, m.image,
       m.deleted_for_everyone, m.read, m.is_pinned, m.pinned_at, m.pinned_by,
       m.created_at, m.updated_at,
       (SELECT json_group_array(d.user_id)
          FROM message_deletions d
         WHERE d.message_id = m.id) AS deleted_for
FROM messages m
"""

# 可见性条件（需要 :viewer_id 参数）
_VISIBLE_TO_VIEWER = """
m.deleted_for_everyone = 0
AND NOT EXISTS (
    SELECT 1 FROM message_deletions d
    WHERE d.message_id = m.id AND d.user_id = :viewer_id
)
"""

# 会话条件：无序对 {viewer, peer}
_IN_CONVERSATION = """
((m.sender_id = :viewer_id AND m.receiver_id = :peer_id)
 OR (m.sender_id = :peer_id AND m.receiver_id = :viewer_id))
"""


def _ts(value: datetime) -> str:
    """统一时间戳格式，保证字典序与时间序一致"""
    return value.isoformat(timespec="microseconds")


class SqliteMessageStore:
    """MessageStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection, user_store: SqliteUserStore) -> None:
        self._conn = conn
        self._users = user_store

    async def validate_new_message(
        self,
        sender_id: str,
        receiver_id: str,
        text: str | None = None,
        image: str | None = None,
    ) -> tuple[str | None, str | None]:
        """执行创建前的全部校验，不落库

        Returns:
            规范化后的 (text, image)

        Raises:
            ValidationError: 无文本也无图片，或文本超长
            SelfMessageError: 发送给自己
            NotFoundError: 接收者不存在
        """
        text, image = normalize_payload(text, image)
        if sender_id == receiver_id:
            raise SelfMessageError()
        if not await self._users.user_exists(receiver_id):
            raise NotFoundError("Receiver user not found")
        return text, image

    async def create_message(
        self,
        sender_id: str,
        receiver_id: str,
        text: str | None = None,
        image: str | None = None,
    ) -> Message:
        """创建消息：删除标记为 false、未读、未置顶"""
        text, image = await self.validate_new_message(sender_id, receiver_id, text, image)

        now = datetime.now(UTC)
        message = Message(
            id=str(ULID()),
            sender_id=sender_id,
            receiver_id=receiver_id,
            text=text,
            image=image,
            created_at=now,
            updated_at=now,
        )
        try:
            await self._conn.execute(
                """
                INSERT INTO messages (id, sender_id, receiver_id, text, image,
                                      created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    message.id,
                    message.sender_id,
                    message.receiver_id,
                    message.text,
                    message.image,
                    _ts(message.created_at),
                    _ts(message.updated_at),
                ),
            )
            await self._conn.commit()
        except Exception:
            await self._conn.rollback()
            raise
        return message

    async def get_message(self, message_id: str) -> Message | None:
        """根据 id 查询消息（不做可见性过滤）"""
        cursor = await self._conn.execute(
            _SELECT_MESSAGE + " WHERE m.id = :message_id",
            {"message_id": message_id},
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_message(row)

    async def list_conversation(self, viewer_id: str, peer_id: str) -> list[Message]:
        """查询 viewer 与 peer 之间对 viewer 可见的消息，按创建时间正序"""
        cursor = await self._conn.execute(
            _SELECT_MESSAGE
            + f" WHERE {_IN_CONVERSATION} AND {_VISIBLE_TO_VIEWER}"
            + " ORDER BY m.created_at ASC, m.rowid ASC",
            {"viewer_id": viewer_id, "peer_id": peer_id},
        )
        rows = await cursor.fetchall()
        return [self._row_to_message(row) for row in rows]

    async def list_pinned(self, viewer_id: str, peer_id: str) -> list[Message]:
        """查询会话内对 viewer 可见的置顶消息，最近置顶在前"""
        cursor = await self._conn.execute(
            _SELECT_MESSAGE
            + f" WHERE {_IN_CONVERSATION} AND {_VISIBLE_TO_VIEWER} AND m.is_pinned = 1"
            + " ORDER BY m.pinned_at DESC, m.rowid DESC",
            {"viewer_id": viewer_id, "peer_id": peer_id},
        )
        rows = await cursor.fetchall()
        return [self._row_to_message(row) for row in rows]

    async def list_chat_partners(self, viewer_id: str) -> list[ChatPartner]:
        """查询 viewer 的所有聊天对象及未读数，最近往来在前

        聊天对象列表本身不做可见性过滤（全部消息被删除的会话仍然保留）；
        未读数只统计对 viewer 可见的消息。
        """
        cursor = await self._conn.execute(
            f"""
            SELECT p.partner_id,
                   COALESCE(u.full_name, ''),
                   COALESCE(u.profile_pic, ''),
                   (SELECT COUNT(*) FROM messages m
                     WHERE m.sender_id = p.partner_id
                       AND m.receiver_id = :viewer_id
                       AND m.read = 0
                       AND {_VISIBLE_TO_VIEWER}) AS unread_count
            FROM (
                SELECT CASE WHEN sender_id = :viewer_id THEN receiver_id
                            ELSE sender_id END AS partner_id,
                       MAX(created_at) AS last_at
                FROM messages
                WHERE sender_id = :viewer_id OR receiver_id = :viewer_id
                GROUP BY partner_id
            ) p
            LEFT JOIN users u ON u.user_id = p.partner_id
            ORDER BY p.last_at DESC
            """,
            {"viewer_id": viewer_id},
        )
        rows = await cursor.fetchall()
        return [
            ChatPartner(
                user_id=row[0],
                full_name=row[1],
                profile_pic=row[2],
                unread_count=row[3],
            )
            for row in rows
        ]

    async def mark_read(
        self,
        viewer_id: str,
        peer_id: str,
        read_at: datetime | None = None,
    ) -> int:
        """把 peer 发给 viewer 的未读消息标记为已读

        只作用于 peer -> viewer 方向；幂等，第二次调用影响 0 行。

        Returns:
            受影响的行数
        """
        read_at = read_at or datetime.now(UTC)
        try:
            cursor = await self._conn.execute(
                """
                UPDATE messages
                SET read = 1, updated_at = :read_at
                WHERE sender_id = :peer_id AND receiver_id = :viewer_id AND read = 0
                """,
                {"read_at": _ts(read_at), "peer_id": peer_id, "viewer_id": viewer_id},
            )
            await self._conn.commit()
        except Exception:
            await self._conn.rollback()
            raise
        return cursor.rowcount

    async def delete_for_everyone(self, actor_id: str, message_id: str) -> Message:
        """对所有人删除（终态），只有发送者可以执行

        Raises:
            NotFoundError: 消息不存在
            ForbiddenError: 操作者不是发送者
        """
        message = await self._require_message(message_id)
        if message.sender_id != actor_id:
            raise ForbiddenError("You can only delete your own messages for everyone")

        if not message.deleted_for_everyone:
            await self._execute_and_commit(
                "UPDATE messages SET deleted_for_everyone = 1 "
                "WHERE id = :message_id AND deleted_for_everyone = 0",
                {"message_id": message_id},
            )
        return await self._require_message(message_id)

    async def delete_for_me(self, actor_id: str, message_id: str) -> Message:
        """对自己删除，不影响对方视图

        Raises:
            NotFoundError: 消息不存在
            ForbiddenError: 操作者不是会话参与者
            AlreadyDeletedError: 已经对自己删除过
        """
        message = await self._require_message(message_id)
        if not message.involves(actor_id):
            raise ForbiddenError("You are not part of this conversation")
        if actor_id in message.deleted_for:
            raise AlreadyDeletedError()

        try:
            await self._conn.execute(
                """
                INSERT INTO message_deletions (message_id, user_id, deleted_at)
                VALUES (?, ?, ?)
                """,
                (message_id, actor_id, _ts(datetime.now(UTC))),
            )
            await self._conn.commit()
        except aiosqlite.IntegrityError as e:
            # 并发的重复删除：主键冲突即已删除
            await self._conn.rollback()
            raise AlreadyDeletedError() from e
        except Exception:
            await self._conn.rollback()
            raise
        return await self._require_message(message_id)

    async def pin_message(self, actor_id: str, message_id: str) -> Message:
        """置顶消息，任一参与者均可执行

        已置顶时为 no-op，pinned_at 保持不变。

        Raises:
            NotFoundError: 消息不存在或对操作者不可见
            ForbiddenError: 操作者不是会话参与者
        """
        await self._require_pinnable(actor_id, message_id)
        now = _ts(datetime.now(UTC))
        await self._execute_and_commit(
            """
            UPDATE messages
            SET is_pinned = 1, pinned_at = :now, pinned_by = :actor_id, updated_at = :now
            WHERE id = :message_id AND is_pinned = 0
            """,
            {"now": now, "actor_id": actor_id, "message_id": message_id},
        )
        return await self._require_message(message_id)

    async def unpin_message(self, actor_id: str, message_id: str) -> Message:
        """取消置顶，任一参与者均可执行；未置顶时为 no-op"""
        await self._require_pinnable(actor_id, message_id)
        await self._execute_and_commit(
            """
            UPDATE messages
            SET is_pinned = 0, pinned_at = NULL, pinned_by = NULL, updated_at = :now
            WHERE id = :message_id AND is_pinned = 1
            """,
            {"now": _ts(datetime.now(UTC)), "message_id": message_id},
        )
        return await self._require_message(message_id)

    async def _require_message(self, message_id: str) -> Message:
        message = await self.get_message(message_id)
        if message is None:
            raise NotFoundError("Message not found")
        return message

    async def _require_pinnable(self, actor_id: str, message_id: str) -> Message:
        message = await self._require_message(message_id)
        if not message.involves(actor_id):
            raise ForbiddenError("You are not part of this conversation")
        if not is_visible_to(message, actor_id):
            raise NotFoundError("Message not found")
        return message

    async def _execute_and_commit(self, sql: str, params: dict) -> int:
        try:
            cursor = await self._conn.execute(sql, params)
            await self._conn.commit()
        except Exception:
            await self._conn.rollback()
            raise
        log.debug("message_row_updated", rowcount=cursor.rowcount)
        return cursor.rowcount

    @staticmethod
    def _row_to_message(row: aiosqlite.Row) -> Message:
        """将数据库行转换为 Message 模型"""
        return Message(
            id=row[0],
            sender_id=row[1],
            receiver_id=row[2],
            text=row[3],
            image=row[4],
            deleted_for_everyone=bool(row[5]),
            read=bool(row[6]),
            is_pinned=bool(row[7]),
            pinned_at=datetime.fromisoformat(row[8]) if row[8] else None,
            pinned_by=row[9],
            created_at=datetime.fromisoformat(row[10]),
            updated_at=datetime.fromisoformat(row[11]),
            deleted_for=json.loads(row[12]) if row[12] else [],
        )
