"""ConnectionRegistry / DeliveryCoordinator 单元测试

测试内容：
1. 单用户单连接：新连接替换并关闭旧连接
2. 注销只移除仍在注册中的连接
3. 离线推送静默丢弃
4. 各类事件的接收方与 payload
5. 队列溢出关闭慢连接
"""

from datetime import UTC, datetime

import pytest
from chatsync.core.models import DeliveryEventType, Message, StreamReadyPayload
from chatsync.gateway.services.connection_registry import ClientConnection, ConnectionRegistry
from chatsync.gateway.services.delivery import DeliveryCoordinator


def _message(**overrides) -> Message:
    now = datetime.now(UTC)
    fields = {
        "id": "01JMSG000000000000000000001",
        "sender_id": "alice",
        "receiver_id": "bob",
        "text": "hi",
        "created_at": now,
        "updated_at": now,
    }
    fields.update(overrides)
    return Message(**fields)


def _drain(connection: ClientConnection) -> list:
    events = []
    while not connection.queue.empty():
        events.append(connection.queue.get_nowait())
    return events


@pytest.fixture
def registry() -> ConnectionRegistry:
    return ConnectionRegistry()


@pytest.fixture
def coordinator(registry: ConnectionRegistry) -> DeliveryCoordinator:
    return DeliveryCoordinator(registry)


def _connect(registry: ConnectionRegistry, user_id: str, maxsize: int = 100) -> ClientConnection:
    connection = ClientConnection(user_id, queue_maxsize=maxsize)
    registry.register(user_id, connection)
    return connection


class TestConnectionRegistry:
    """连接注册表"""

    async def test_register_and_lookup(self, registry: ConnectionRegistry):
        conn = _connect(registry, "alice")
        assert registry.connection_for("alice") is conn
        assert registry.connection_for("bob") is None
        assert registry.online_user_ids() == {"alice"}

    async def test_new_connection_replaces_old(self, registry: ConnectionRegistry):
        old = _connect(registry, "alice")
        new = ClientConnection("alice")
        replaced = registry.register("alice", new)

        assert replaced is old
        assert old.closed
        assert old.queue.get_nowait() is None  # 关闭哨兵
        assert registry.connection_for("alice") is new

    async def test_stale_unregister_keeps_new_connection(self, registry: ConnectionRegistry):
        old = _connect(registry, "alice")
        new = _connect(registry, "alice")

        assert registry.unregister("alice", old) is False
        assert registry.connection_for("alice") is new

        assert registry.unregister("alice", new) is True
        assert new.closed
        assert registry.connection_for("alice") is None

    async def test_unregister_unknown(self, registry: ConnectionRegistry):
        assert registry.unregister("nobody") is False

    async def test_closed_connection_not_returned(self, registry: ConnectionRegistry):
        conn = _connect(registry, "alice")
        conn.close()
        assert registry.connection_for("alice") is None
        assert registry.online_user_ids() == set()


class TestDeliveryCoordinator:
    """事件推送"""

    async def test_offline_publish_dropped_silently(self, coordinator: DeliveryCoordinator):
        delivered = coordinator.publish(
            "bob", DeliveryEventType.STREAM_READY, StreamReadyPayload(user_id="bob")
        )
        assert delivered is False

    async def test_message_created_to_receiver_only(
        self, registry: ConnectionRegistry, coordinator: DeliveryCoordinator
    ):
        alice = _connect(registry, "alice")
        bob = _connect(registry, "bob")
        msg = _message()

        coordinator.message_created(msg)

        assert _drain(alice) == []
        events = _drain(bob)
        assert [e.type for e in events] == [
            DeliveryEventType.NEW_MESSAGE,
            DeliveryEventType.UNREAD_COUNT_CHANGED,
        ]
        assert events[0].payload["message"]["id"] == msg.id
        assert events[1].payload == {"sender_id": "alice"}
        assert len(events[0].event_id) == 26

    async def test_deleted_for_everyone_to_both(
        self, registry: ConnectionRegistry, coordinator: DeliveryCoordinator
    ):
        alice = _connect(registry, "alice")
        bob = _connect(registry, "bob")
        coordinator.message_deleted_for_everyone(_message(deleted_for_everyone=True))

        for conn in (alice, bob):
            events = _drain(conn)
            assert [e.type for e in events] == [DeliveryEventType.MESSAGE_DELETED_EVERYONE]
            assert events[0].payload == {"message_id": "01JMSG000000000000000000001"}

    async def test_messages_read_to_original_sender(
        self, registry: ConnectionRegistry, coordinator: DeliveryCoordinator
    ):
        alice = _connect(registry, "alice")
        bob = _connect(registry, "bob")
        read_at = datetime.now(UTC)

        coordinator.messages_read("bob", "alice", read_at)

        assert _drain(bob) == []
        events = _drain(alice)
        assert events[0].type == DeliveryEventType.MESSAGES_READ
        assert events[0].payload["read_by"] == "bob"
        assert datetime.fromisoformat(events[0].payload["read_at"]) == read_at

    async def test_pin_events_carry_full_record_without_unread_signal(
        self, registry: ConnectionRegistry, coordinator: DeliveryCoordinator
    ):
        alice = _connect(registry, "alice")
        bob = _connect(registry, "bob")
        pinned = _message(is_pinned=True, pinned_at=datetime.now(UTC), pinned_by="bob")

        coordinator.message_pinned(pinned)
        coordinator.message_unpinned(_message())

        for conn in (alice, bob):
            events = _drain(conn)
            assert [e.type for e in events] == [
                DeliveryEventType.MESSAGE_PINNED,
                DeliveryEventType.MESSAGE_UNPINNED,
            ]
            assert events[0].payload["message"]["pinned_by"] == "bob"
            assert events[1].payload["message_id"] == pinned.id
            assert events[1].payload["message"]["is_pinned"] is False

    async def test_one_participant_offline(
        self, registry: ConnectionRegistry, coordinator: DeliveryCoordinator
    ):
        bob = _connect(registry, "bob")
        result = coordinator.publish_to_participants(
            _message(),
            DeliveryEventType.MESSAGE_DELETED_EVERYONE,
            {"message_id": "01JMSG000000000000000000001"},
        )
        assert result == {"alice": False, "bob": True}
        assert len(_drain(bob)) == 1

    async def test_participant_broadcast_rejects_private_events(
        self, coordinator: DeliveryCoordinator
    ):
        with pytest.raises(ValueError):
            coordinator.publish_to_participants(
                _message(), DeliveryEventType.NEW_MESSAGE, {"message": {}}
            )

    async def test_queue_overflow_closes_connection(
        self, registry: ConnectionRegistry, coordinator: DeliveryCoordinator
    ):
        bob = _connect(registry, "bob", maxsize=1)
        assert coordinator.publish("bob", DeliveryEventType.UNREAD_COUNT_CHANGED, {"sender_id": "a"})
        assert not coordinator.publish(
            "bob", DeliveryEventType.UNREAD_COUNT_CHANGED, {"sender_id": "a"}
        )
        assert bob.closed
        assert registry.connection_for("bob") is None
