"""DeliveryEvent Domain Model

推送事件只是通知，不落库。event_id 使用 ULID 格式，时间有序。
接收方应以查询接口为准，pin/unpin 事件携带的完整消息记录除外。
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from .enums import DeliveryEventType


class DeliveryEvent(BaseModel):
    """DeliveryEvent 数据模型"""

    event_id: str = Field(description="唯一标识，ULID 格式")
    type: DeliveryEventType = Field(description="事件类型")
    ts: datetime = Field(description="事件时间戳")
    payload: dict[str, Any] = Field(default_factory=dict, description="结构化 payload")
