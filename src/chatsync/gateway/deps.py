"""依赖注入模块 -- 通过 FastAPI Depends 注入 Store / 推送组件与当前操作者

Store 与 ConnectionRegistry 通过 app.state 管理，在 lifespan 中初始化/清理。
"""

from chatsync.core.exceptions import UnauthenticatedError
from chatsync.core.store import StoreGroup
from fastapi import Depends, Header, Request

from .services.connection_registry import ConnectionRegistry
from .services.delivery import DeliveryCoordinator
from .services.message_service import MessageService


def get_store_group(request: Request) -> StoreGroup:
    """从 app.state 获取 StoreGroup 实例"""
    return request.app.state.store_group


def get_connection_registry(request: Request) -> ConnectionRegistry:
    """从 app.state 获取 ConnectionRegistry 实例"""
    return request.app.state.connection_registry


def get_coordinator(request: Request) -> DeliveryCoordinator:
    """从 app.state 获取 DeliveryCoordinator 实例"""
    return request.app.state.coordinator


def get_message_service(
    store_group: StoreGroup = Depends(get_store_group),
    coordinator: DeliveryCoordinator = Depends(get_coordinator),
) -> MessageService:
    """构造请求级 MessageService"""
    return MessageService(store_group, coordinator)


async def get_current_user_id(
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
    store_group: StoreGroup = Depends(get_store_group),
) -> str:
    """解析当前操作者

    身份由上游认证层写入 X-User-Id；这里只校验该用户确实存在。
    """
    if not x_user_id:
        raise UnauthenticatedError("Missing actor identity")
    if not await store_group.user_store.user_exists(x_user_id):
        raise UnauthenticatedError("Unknown actor identity")
    return x_user_id
