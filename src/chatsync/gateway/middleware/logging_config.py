"""structlog 配置模块

CHATSYNC_LOG_FORMAT 选择渲染：dev 为 ConsoleRenderer，json 为 JSONRenderer。
uvicorn / aiosqlite 的标准库日志经 ProcessorFormatter 走同一条处理链。
base64 图片 data URL 在渲染前截断为前缀与长度。
"""

import logging
import os

import structlog
from chatsync.core.config import get_log_format, get_log_level
from fastapi import FastAPI

# data URL 保留的前缀长度（含 MIME 头）
_DATA_URL_PREVIEW = 48

# 第三方 logger 的最低级别
_QUIET_LOGGERS: dict[str, int] = {
    "aiosqlite": logging.WARNING,
    "sse_starlette": logging.INFO,
}


def redact_data_urls(
    logger: object, method_name: str, event_dict: structlog.types.EventDict
) -> structlog.types.EventDict:
    """把字段中的 data URL 替换为前缀 + 长度"""
    for key, value in event_dict.items():
        if isinstance(value, str) and value.startswith("data:") and len(value) > _DATA_URL_PREVIEW:
            event_dict[key] = f"{value[:_DATA_URL_PREVIEW]}...<{len(value)} chars>"
    return event_dict


def _shared_processors() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        redact_data_urls,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def _renderer(log_format: str) -> structlog.types.Processor:
    if log_format == "json":
        return structlog.processors.JSONRenderer(ensure_ascii=False)
    return structlog.dev.ConsoleRenderer()


def setup_logging(log_format: str | None = None, log_level: str | None = None) -> None:
    """初始化 structlog 与标准库 logging

    Args:
        log_format: 覆盖 CHATSYNC_LOG_FORMAT
        log_level: 覆盖 CHATSYNC_LOG_LEVEL
    """
    log_format = log_format or get_log_format()
    level = getattr(logging, (log_level or get_log_level()).upper(), logging.INFO)
    shared = _shared_processors()

    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=_renderer(log_format),
            foreign_pre_chain=shared,
        )
    )
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    for name, minimum in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(max(level, minimum))


def setup_logfire(app: FastAPI) -> None:
    """LOGFIRE_SEND_TO_LOGFIRE=true 时启用 Logfire APM（observability extra）

    未安装或初始化失败时降级为纯本地日志。
    """
    if os.environ.get("LOGFIRE_SEND_TO_LOGFIRE", "false").lower() != "true":
        return
    try:
        import logfire

        logfire.configure(service_name="chatsync-gateway")
        logfire.instrument_fastapi(app, excluded_urls=[r".*/api/stream/events"])
    except Exception as e:
        structlog.get_logger().warning("logfire_init_failed", error=str(e))
