"""ConnectionRegistry -- 用户到实时连接的映射

每个用户最多一个活动连接，新连接注册时关闭并替换旧连接。
注册/注销/查找在同一把锁下完成，与 publish 的查找互斥，
正在关闭的连接只会让事件被静默丢弃。
"""

import asyncio
import threading

import structlog
from chatsync.core.models.event import DeliveryEvent
from ulid import ULID

log = structlog.get_logger()


class ClientConnection:
    """单个实时连接 -- 基于有界 asyncio.Queue

    队列中的 None 为关闭哨兵，消费端读到后结束推送。
    """

    def __init__(self, user_id: str, queue_maxsize: int = 100) -> None:
        self.user_id = user_id
        self.connection_id = str(ULID())
        self.queue: asyncio.Queue[DeliveryEvent | None] = asyncio.Queue(
            maxsize=queue_maxsize
        )
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, event: DeliveryEvent) -> bool:
        """投递事件，返回是否入队

        连接已关闭或队列已满时丢弃事件；队列满说明消费端已失速，直接关闭该连接。
        """
        if self._closed:
            return False
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            log.warning(
                "connection_queue_full",
                user_id=self.user_id,
                connection_id=self.connection_id,
            )
            self.close()
            return False
        return True

    def close(self) -> None:
        """关闭连接并唤醒消费端"""
        if self._closed:
            return
        self._closed = True
        try:
            self.queue.put_nowait(None)
        except asyncio.QueueFull:
            # 消费端会在下一次心跳检查 closed 标记
            pass


class ConnectionRegistry:
    """用户 -> 连接 的线程安全映射"""

    def __init__(self) -> None:
        self._connections: dict[str, ClientConnection] = {}
        self._lock = threading.Lock()

    def register(self, user_id: str, connection: ClientConnection) -> ClientConnection | None:
        """注册连接，返回被替换的旧连接（已关闭）"""
        with self._lock:
            previous = self._connections.get(user_id)
            self._connections[user_id] = connection
        if previous is not None and previous is not connection:
            previous.close()
            log.info(
                "connection_replaced",
                user_id=user_id,
                previous_connection_id=previous.connection_id,
                connection_id=connection.connection_id,
            )
            return previous
        log.info("connection_registered", user_id=user_id, connection_id=connection.connection_id)
        return None

    def unregister(self, user_id: str, connection: ClientConnection | None = None) -> bool:
        """注销连接

        传入 connection 时，仅当它仍是当前注册的连接才移除，
        避免旧连接的清理误删新连接。

        Returns:
            True 如果确实移除了映射
        """
        with self._lock:
            current = self._connections.get(user_id)
            if current is None:
                return False
            if connection is not None and current is not connection:
                return False
            del self._connections[user_id]
        current.close()
        log.info("connection_unregistered", user_id=user_id, connection_id=current.connection_id)
        return True

    def connection_for(self, user_id: str) -> ClientConnection | None:
        """查找用户当前的活动连接"""
        with self._lock:
            connection = self._connections.get(user_id)
        if connection is None or connection.closed:
            return None
        return connection

    def online_user_ids(self) -> set[str]:
        """当前在线的用户 ID"""
        with self._lock:
            return {uid for uid, conn in self._connections.items() if not conn.closed}
