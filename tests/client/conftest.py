"""client 测试配置 -- 内存版 ChatApi + 引擎 fixture"""

from datetime import UTC, datetime, timedelta

import pytest
from chatsync.client.engine import ChatSyncEngine
from chatsync.client.exceptions import ChatApiError
from chatsync.core.models import ChatPartner, Message, User

T0 = datetime(2026, 1, 1, tzinfo=UTC)


def make_message(message_id: str, minutes: int = 0, **overrides) -> Message:
    ts = T0 + timedelta(minutes=minutes)
    fields = {
        "id": message_id,
        "sender_id": "bob",
        "receiver_id": "alice",
        "text": message_id,
        "created_at": ts,
        "updated_at": ts,
    }
    fields.update(overrides)
    return Message(**fields)


class FakeApi:
    """按预设数据响应的 ChatApi；fail 中列出的方法抛出 ChatApiError"""

    def __init__(self) -> None:
        self.contacts: list[User] = []
        self.partners: list[ChatPartner] = []
        self.conversations: dict[str, list[Message]] = {}
        self.pinned: dict[str, list[Message]] = {}
        self.records: dict[str, Message] = {}
        self.fail: set[str] = set()
        self.calls: list[tuple] = []
        self._seq = 0

    def _record(self, name: str, *args) -> None:
        self.calls.append((name, *args))
        if name in self.fail:
            raise ChatApiError(500, "INTERNAL", f"{name} failed")

    def calls_to(self, name: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == name]

    async def fetch_contacts(self):
        self._record("fetch_contacts")
        return list(self.contacts)

    async def fetch_chat_partners(self):
        self._record("fetch_chat_partners")
        return list(self.partners)

    async def fetch_conversation(self, peer_id):
        self._record("fetch_conversation", peer_id)
        return list(self.conversations.get(peer_id, []))

    async def fetch_pinned(self, peer_id):
        self._record("fetch_pinned", peer_id)
        return list(self.pinned.get(peer_id, []))

    async def send_message(self, peer_id, text=None, image=None):
        self._record("send_message", peer_id, text, image)
        self._seq += 1
        message = make_message(
            f"srv-{self._seq}",
            60 + self._seq,
            sender_id="alice",
            receiver_id=peer_id,
            text=text,
            image=image,
        )
        self.records[message.id] = message
        return message

    async def mark_read(self, peer_id):
        self._record("mark_read", peer_id)
        return 1

    async def pin(self, message_id):
        self._record("pin", message_id)
        pinned_at = T0 + timedelta(hours=1)
        return self.records[message_id].model_copy(
            update={
                "is_pinned": True,
                "pinned_at": pinned_at,
                "pinned_by": "alice",
                "updated_at": pinned_at,
            }
        )

    async def unpin(self, message_id):
        self._record("unpin", message_id)
        return self.records[message_id].model_copy(
            update={"updated_at": T0 + timedelta(hours=2)}
        )

    async def delete_for_everyone(self, message_id):
        self._record("delete_for_everyone", message_id)

    async def delete_for_me(self, message_id):
        self._record("delete_for_me", message_id)


@pytest.fixture
def fake_api() -> FakeApi:
    return FakeApi()


@pytest.fixture
def notifications() -> list[str]:
    return []


@pytest.fixture
def engine(fake_api: FakeApi, notifications: list[str]) -> ChatSyncEngine:
    return ChatSyncEngine(fake_api, "alice", notifier=notifications.append)


@pytest.fixture
def message_factory():
    """构造测试消息：make_message(message_id, minutes, **overrides)"""
    return make_message
