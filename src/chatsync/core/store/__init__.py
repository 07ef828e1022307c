"""ChatSync Core Store -- SQLite 持久化实现

提供工厂函数创建共享数据库连接的 Store 实例组。
"""

from pathlib import Path

import aiosqlite

from .image_store import ImageStore
from .message_store import SqliteMessageStore
from .sqlite_init import init_db
from .user_store import SqliteUserStore


class StoreGroup:
    """Store 实例组 -- 共享同一个数据库连接"""

    def __init__(
        self,
        conn: aiosqlite.Connection,
        media_dir: Path,
    ) -> None:
        self.conn = conn
        self.user_store = SqliteUserStore(conn)
        self.message_store = SqliteMessageStore(conn, self.user_store)
        self.image_store = ImageStore(media_dir)


async def create_store_group(
    db_path: str,
    media_dir: str | Path,
) -> StoreGroup:
    """创建 Store 实例组

    Args:
        db_path: SQLite 数据库文件路径
        media_dir: 图片文件存储目录

    Returns:
        StoreGroup 实例
    """
    media_path = Path(media_dir)
    media_path.mkdir(parents=True, exist_ok=True)

    # 确保数据库目录存在
    db_dir = Path(db_path).parent
    db_dir.mkdir(parents=True, exist_ok=True)

    conn = await aiosqlite.connect(db_path)
    conn.row_factory = aiosqlite.Row
    await init_db(conn)

    return StoreGroup(conn=conn, media_dir=media_path)


__all__ = [
    "StoreGroup",
    "create_store_group",
    "SqliteUserStore",
    "SqliteMessageStore",
    "ImageStore",
    "init_db",
]
