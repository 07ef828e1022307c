"""SQLite 数据库初始化

PRAGMA 配置 + 三张表 DDL + 索引创建。
使用 aiosqlite 异步操作。
"""

import aiosqlite

# users 表 DDL（外部账号服务的只读镜像，用于解析接收者和联系人列表）
_USERS_DDL = """
CREATE TABLE IF NOT EXISTS users (
    user_id      TEXT PRIMARY KEY,
    full_name    TEXT NOT NULL,
    email        TEXT NOT NULL DEFAULT '',
    profile_pic  TEXT NOT NULL DEFAULT '',
    created_at   TEXT NOT NULL
);
"""

_USERS_INDEXES = [
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_users_email ON users(email) WHERE email != '';",
]

# messages 表 DDL
_MESSAGES_DDL = """
CREATE TABLE IF NOT EXISTS messages (
    id                    TEXT PRIMARY KEY,
    sender_id             TEXT NOT NULL,
    receiver_id           TEXT NOT NULL,
    text                  TEXT,
    image                 TEXT,
    deleted_for_everyone  INTEGER NOT NULL DEFAULT 0,
    read                  INTEGER NOT NULL DEFAULT 0,
    is_pinned             INTEGER NOT NULL DEFAULT 0,
    pinned_at             TEXT,
    pinned_by             TEXT,
    created_at            TEXT NOT NULL,
    updated_at            TEXT NOT NULL,

    CHECK (sender_id != receiver_id),
    CHECK (text IS NOT NULL OR image IS NOT NULL),
    CHECK ((is_pinned = 0 AND pinned_at IS NULL AND pinned_by IS NULL)
        OR (is_pinned = 1 AND pinned_at IS NOT NULL AND pinned_by IS NOT NULL)),
    FOREIGN KEY (sender_id) REFERENCES users(user_id),
    FOREIGN KEY (receiver_id) REFERENCES users(user_id)
);
"""

_MESSAGES_INDEXES = [
    # 会话查询：按 (sender, receiver) 定位，按创建时间排序
    "CREATE INDEX IF NOT EXISTS idx_messages_pair ON messages(sender_id, receiver_id, created_at);",
    "CREATE INDEX IF NOT EXISTS idx_messages_receiver ON messages(receiver_id, read);",
    "CREATE INDEX IF NOT EXISTS idx_messages_pinned ON messages(is_pinned, pinned_at DESC);",
]

# message_deletions 表 DDL（delete-for-me，每个用户每条消息最多一行）
_DELETIONS_DDL = """
CREATE TABLE IF NOT EXISTS message_deletions (
    message_id  TEXT NOT NULL,
    user_id     TEXT NOT NULL,
    deleted_at  TEXT NOT NULL,

    PRIMARY KEY (message_id, user_id),
    FOREIGN KEY (message_id) REFERENCES messages(id),
    FOREIGN KEY (user_id) REFERENCES users(user_id)
);
"""

_DELETIONS_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_message_deletions_user ON message_deletions(user_id);",
]


async def init_db(conn: aiosqlite.Connection) -> None:
    """初始化数据库：设置 PRAGMA + 创建表 + 创建索引

    Args:
        conn: aiosqlite 数据库连接
    """
    # 设置 PRAGMA
    await conn.execute("PRAGMA journal_mode = WAL;")
    await conn.execute("PRAGMA foreign_keys = ON;")
    await conn.execute("PRAGMA busy_timeout = 5000;")

    # 创建表
    await conn.execute(_USERS_DDL)
    await conn.execute(_MESSAGES_DDL)
    await conn.execute(_DELETIONS_DDL)

    # 创建索引
    for idx_sql in _USERS_INDEXES + _MESSAGES_INDEXES + _DELETIONS_INDEXES:
        await conn.execute(idx_sql)

    await conn.commit()


async def verify_wal_mode(conn: aiosqlite.Connection) -> bool:
    """验证 WAL 模式是否生效

    Returns:
        True 如果 WAL 模式已启用
    """
    cursor = await conn.execute("PRAGMA journal_mode;")
    row = await cursor.fetchone()
    return row is not None and row[0].lower() == "wal"
