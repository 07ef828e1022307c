"""ChatSync 客户端 -- 请求接口 + 本地状态协调"""

from .api import ChatApiClient
from .config import ClientConfig, load_client_config
from .engine import ChatSyncEngine
from .exceptions import ChatApiError, ChatClientError, ServerUnreachableError
from .listener import EventStreamListener
from .state import ChatState, ConversationState, OptimisticMessage

__all__ = [
    "ChatApiClient",
    "ChatApiError",
    "ChatClientError",
    "ChatState",
    "ChatSyncEngine",
    "ClientConfig",
    "ConversationState",
    "EventStreamListener",
    "OptimisticMessage",
    "ServerUnreachableError",
    "load_client_config",
]
