"""全局 pytest 配置 -- 临时 SQLite 数据库 + Store 实例组 + 预置用户"""

from collections.abc import AsyncGenerator
from datetime import UTC, datetime
from pathlib import Path

import aiosqlite
import pytest_asyncio
from chatsync.core.models import User
from chatsync.core.store import StoreGroup, create_store_group


@pytest_asyncio.fixture
async def tmp_db_path(tmp_path: Path) -> Path:
    """提供临时 SQLite 数据库路径"""
    return tmp_path / "sqlite" / "test.db"


@pytest_asyncio.fixture
async def tmp_media_dir(tmp_path: Path) -> Path:
    """提供临时 media 目录"""
    media_dir = tmp_path / "media"
    media_dir.mkdir(parents=True, exist_ok=True)
    return media_dir


@pytest_asyncio.fixture
async def db_conn(tmp_path: Path) -> AsyncGenerator[aiosqlite.Connection, None]:
    """提供已初始化的临时 SQLite 数据库连接"""
    from chatsync.core.store.sqlite_init import init_db

    conn = await aiosqlite.connect(str(tmp_path / "raw.db"))
    await init_db(conn)
    yield conn
    await conn.close()


@pytest_asyncio.fixture
async def store_group(
    tmp_db_path: Path, tmp_media_dir: Path
) -> AsyncGenerator[StoreGroup, None]:
    """提供 StoreGroup，并预置 alice / bob / carol 三个用户"""
    sg = await create_store_group(str(tmp_db_path), tmp_media_dir)
    now = datetime.now(UTC)
    for user_id, name in (("alice", "Alice"), ("bob", "Bob"), ("carol", "Carol")):
        await sg.user_store.create_user(
            User(
                user_id=user_id,
                full_name=name,
                email=f"{user_id}@example.com",
                created_at=now,
            )
        )
    yield sg
    await sg.conn.close()
