"""UserStore SQLite 实现

users 表由外部账号服务同步写入，消息核心只做解析与列举。
"""

from datetime import datetime

import aiosqlite

from ..models.user import User


class SqliteUserStore:
    """UserStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def create_user(self, user: User) -> None:
        """写入用户记录并提交"""
        await self._conn.execute(
            """
            INSERT INTO users (user_id, full_name, email, profile_pic, created_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                user.user_id,
                user.full_name,
                user.email,
                user.profile_pic,
                user.created_at.isoformat(),
            ),
        )
        await self._conn.commit()

    async def user_exists(self, user_id: str) -> bool:
        """用户是否存在"""
        cursor = await self._conn.execute(
            "SELECT 1 FROM users WHERE user_id = ? LIMIT 1",
            (user_id,),
        )
        return await cursor.fetchone() is not None

    async def list_contacts(self, viewer_id: str) -> list[User]:
        """列出除 viewer 以外的所有用户，按名称排序"""
        cursor = await self._conn.execute(
            """
            SELECT user_id, full_name, email, profile_pic, created_at
            FROM users
            WHERE user_id != ?
            ORDER BY full_name COLLATE NOCASE ASC, user_id ASC
            """,
            (viewer_id,),
        )
        rows = await cursor.fetchall()
        return [self._row_to_user(row) for row in rows]

    async def list_users(self) -> list[User]:
        """列出所有用户（CLI 使用）"""
        cursor = await self._conn.execute(
            "SELECT user_id, full_name, email, profile_pic, created_at FROM users ORDER BY created_at ASC"
        )
        rows = await cursor.fetchall()
        return [self._row_to_user(row) for row in rows]

    @staticmethod
    def _row_to_user(row: aiosqlite.Row) -> User:
        """将数据库行转换为 User 模型"""
        return User(
            user_id=row[0],
            full_name=row[1],
            email=row[2],
            profile_pic=row[3],
            created_at=datetime.fromisoformat(row[4]),
        )
