"""ClientConfig -- 客户端配置加载

从环境变量加载配置。
"""

import os

import structlog
from pydantic import BaseModel, Field

log = structlog.get_logger()


class ClientConfig(BaseModel):
    """客户端配置 -- 从环境变量加载

    环境变量:
        CHATSYNC_API_URL: gateway 地址（默认 http://localhost:8000）
        CHATSYNC_USER_ID: 当前用户 ID（由认证层提供）
        CHATSYNC_CLIENT_TIMEOUT_S: 请求超时（秒，默认 10）
        CHATSYNC_RECONNECT_DELAY_S: 事件流断开后的重连间隔（秒，默认 2）
    """

    base_url: str = Field(
        default="http://localhost:8000",
        description="gateway 基础 URL",
    )
    user_id: str = Field(default="", description="当前用户 ID")
    timeout_s: float = Field(default=10.0, gt=0, description="请求超时（秒）")
    reconnect_delay_s: float = Field(
        default=2.0,
        ge=0,
        description="事件流重连间隔（秒）",
    )


def _float_from_env(env_var: str, fallback: float) -> float | None:
    val = os.environ.get(env_var)
    if not val:
        return None
    try:
        return float(val)
    except ValueError:
        log.warning(
            "invalid_client_config",
            env_var=env_var,
            value=val,
            fallback=fallback,
        )
        return None


def load_client_config() -> ClientConfig:
    """从环境变量加载客户端配置

    数值型变量非法时记录 warning 并使用默认值，不阻塞启动。
    """
    kwargs: dict = {}

    if val := os.environ.get("CHATSYNC_API_URL"):
        kwargs["base_url"] = val

    if val := os.environ.get("CHATSYNC_USER_ID"):
        kwargs["user_id"] = val

    timeout = _float_from_env("CHATSYNC_CLIENT_TIMEOUT_S", 10.0)
    if timeout is not None:
        kwargs["timeout_s"] = timeout

    delay = _float_from_env("CHATSYNC_RECONNECT_DELAY_S", 2.0)
    if delay is not None:
        kwargs["reconnect_delay_s"] = delay

    return ClientConfig(**kwargs)
