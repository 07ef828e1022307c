"""User / ChatPartner Domain Model

用户由外部账号服务管理，这里只保留解析接收者和展示联系人所需的字段。
ChatPartner 为查询派生结果，不落库。
"""

from datetime import datetime

from pydantic import BaseModel, Field


class User(BaseModel):
    """用户公开资料"""

    user_id: str = Field(description="用户 ID")
    full_name: str = Field(description="显示名称")
    email: str = Field(default="", description="邮箱")
    profile_pic: str = Field(default="", description="头像 URL")
    created_at: datetime = Field(description="创建时间")


class ChatPartner(BaseModel):
    """会话对象摘要 -- viewer 视角下的一个聊天对象及其未读数"""

    user_id: str = Field(description="对方用户 ID")
    full_name: str = Field(default="", description="对方显示名称")
    profile_pic: str = Field(default="", description="对方头像 URL")
    unread_count: int = Field(default=0, ge=0, description="对方发给 viewer 的可见未读消息数")
