"""Store 基础设施测试

测试内容：
1. WAL 模式与表结构约束
2. UserStore 基本读写
3. ImageStore 图片解析
4. CLI add-user / list-users
"""

import base64
from datetime import UTC, datetime
from pathlib import Path

import aiosqlite
import pytest
from chatsync.core.exceptions import ValidationError
from chatsync.core.models import User
from chatsync.core.store import ImageStore, StoreGroup
from chatsync.core.store.image_store import compute_hash_and_size, parse_data_url
from chatsync.core.store.sqlite_init import verify_wal_mode

_PNG_BYTES = b"\x89PNG\r\n\x1a\nfake-image-content"
_PNG_DATA_URL = "data:image/png;base64," + base64.b64encode(_PNG_BYTES).decode()


class TestSqliteInit:
    """数据库初始化"""

    async def test_wal_mode_enabled(self, db_conn: aiosqlite.Connection):
        assert await verify_wal_mode(db_conn) is True

    async def test_tables_created(self, db_conn: aiosqlite.Connection):
        cursor = await db_conn.execute(
            "SELECT name FROM sqlite_master WHERE type = 'table' ORDER BY name"
        )
        names = {row[0] for row in await cursor.fetchall()}
        assert {"users", "messages", "message_deletions"} <= names

    async def test_self_message_rejected_by_schema(self, store_group: StoreGroup):
        """sender == receiver 在表约束层面同样被拒绝"""
        now = datetime.now(UTC).isoformat()
        with pytest.raises(aiosqlite.IntegrityError):
            await store_group.conn.execute(
                "INSERT INTO messages (id, sender_id, receiver_id, text, created_at, updated_at) "
                "VALUES ('x', 'alice', 'alice', 'hi', ?, ?)",
                (now, now),
            )
        await store_group.conn.rollback()

    async def test_partial_pin_rejected_by_schema(self, store_group: StoreGroup):
        now = datetime.now(UTC).isoformat()
        with pytest.raises(aiosqlite.IntegrityError):
            await store_group.conn.execute(
                "INSERT INTO messages (id, sender_id, receiver_id, text, is_pinned, "
                "created_at, updated_at) VALUES ('x', 'alice', 'bob', 'hi', 1, ?, ?)",
                (now, now),
            )
        await store_group.conn.rollback()


class TestUserStore:
    """UserStore 读写"""

    async def test_user_exists(self, store_group: StoreGroup):
        assert await store_group.user_store.user_exists("bob")
        assert not await store_group.user_store.user_exists("nobody")

    async def test_contacts_sorted_by_name(self, store_group: StoreGroup):
        await store_group.user_store.create_user(
            User(user_id="dave", full_name="aaron", created_at=datetime.now(UTC))
        )
        contacts = await store_group.user_store.list_contacts("bob")
        assert [c.user_id for c in contacts] == ["dave", "alice", "carol"]

    async def test_duplicate_email_rejected(self, store_group: StoreGroup):
        with pytest.raises(aiosqlite.IntegrityError):
            await store_group.user_store.create_user(
                User(
                    user_id="alice2",
                    full_name="Alice Two",
                    email="alice@example.com",
                    created_at=datetime.now(UTC),
                )
            )


class TestImageStore:
    """图片解析"""

    def test_compute_hash_and_size(self):
        hash_hex, size = compute_hash_and_size(b"hello")
        assert size == 5
        assert len(hash_hex) == 64

    def test_parse_data_url(self):
        mime, content = parse_data_url(_PNG_DATA_URL)
        assert mime == "image/png"
        assert content == _PNG_BYTES

    @pytest.mark.parametrize(
        "data_url",
        [
            "not-a-data-url",
            "data:text/plain;base64,aGVsbG8=",
            "data:image/png;base64,@@@",
            "data:image/png,rawdata",
        ],
    )
    def test_parse_data_url_rejects(self, data_url: str):
        with pytest.raises(ValidationError):
            parse_data_url(data_url)

    async def test_http_url_passthrough(self, tmp_media_dir: Path):
        store = ImageStore(tmp_media_dir)
        url = "https://cdn.example.com/a.png"
        assert await store.resolve(url) == url
        assert list(tmp_media_dir.iterdir()) == []

    async def test_data_url_written_to_media_dir(self, tmp_media_dir: Path):
        store = ImageStore(tmp_media_dir)
        reference = await store.resolve(_PNG_DATA_URL)

        assert reference.startswith("/media/")
        assert reference.endswith(".png")
        path = store.get_image_path(reference)
        assert path is not None
        assert path.read_bytes() == _PNG_BYTES

    def test_get_image_path_rejects_traversal(self, tmp_media_dir: Path):
        store = ImageStore(tmp_media_dir)
        assert store.get_image_path("https://cdn.example.com/a.png") is None
        assert store.get_image_path("/media/../secret") is None
        assert store.get_image_path("/media/.hidden") is None

    async def test_discard(self, tmp_media_dir: Path):
        store = ImageStore(tmp_media_dir)
        reference = await store.resolve(_PNG_DATA_URL)

        assert store.discard(reference) is True
        assert list(tmp_media_dir.iterdir()) == []
        assert store.discard(reference) is False
        assert store.discard("https://cdn.example.com/a.png") is False


class TestCli:
    """CLI 命令"""

    async def test_add_and_list_users(self, tmp_path: Path, monkeypatch, capsys):
        monkeypatch.setenv("CHATSYNC_DB_PATH", str(tmp_path / "cli.db"))
        monkeypatch.setenv("CHATSYNC_MEDIA_DIR", str(tmp_path / "media"))
        from chatsync.core.__main__ import add_user, list_users

        user = await add_user("Erin", "erin@example.com")
        users = await list_users()

        assert [u.user_id for u in users] == [user.user_id]
        out = capsys.readouterr().out
        assert "Erin" in out
        assert user.user_id in out
