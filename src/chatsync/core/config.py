"""配置常量模块 -- 可通过环境变量覆盖

包含数据库路径、图片存储目录、消息长度上限、SSE 心跳间隔等可配置常量。
"""

import os
from pathlib import Path


def _get_base_dir() -> Path:
    """获取项目 data 基础目录"""
    return Path(os.environ.get("CHATSYNC_DATA_DIR", "data"))


def get_db_path() -> str:
    """获取 SQLite 数据库路径"""
    return os.environ.get(
        "CHATSYNC_DB_PATH",
        str(_get_base_dir() / "sqlite" / "chatsync.db"),
    )


def get_media_dir() -> Path:
    """获取图片文件存储目录"""
    return Path(
        os.environ.get(
            "CHATSYNC_MEDIA_DIR",
            str(_get_base_dir() / "media"),
        )
    )


# 消息文本最大字符数（去除首尾空白后计算）
MESSAGE_TEXT_MAX_LENGTH: int = int(
    os.environ.get("CHATSYNC_MESSAGE_MAX_LENGTH", "2000")
)

# SSE 心跳间隔（秒）
SSE_HEARTBEAT_INTERVAL: int = int(
    os.environ.get("CHATSYNC_SSE_HEARTBEAT_INTERVAL", "15")
)

# 单个连接的待推送事件队列上限，溢出即断开该连接
CONNECTION_QUEUE_MAXSIZE: int = int(
    os.environ.get("CHATSYNC_CONNECTION_QUEUE_SIZE", "100")
)

# 图片 URL 前缀（ImageStore 返回的引用形如 /media/<file>）
MEDIA_URL_PREFIX: str = "/media"


def get_log_format() -> str:
    """日志渲染模式：dev（默认）或 json"""
    return os.environ.get("CHATSYNC_LOG_FORMAT", "dev").lower()


def get_log_level() -> str:
    """根日志级别，默认 INFO"""
    return os.environ.get("CHATSYNC_LOG_LEVEL", "INFO").upper()
