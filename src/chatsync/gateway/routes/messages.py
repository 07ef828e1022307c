"""私信路由

GET    /api/messages/contacts                    联系人列表
GET    /api/messages/chats                       聊天对象 + 未读数
GET    /api/messages/pinned/{peer_id}            会话置顶消息
GET    /api/messages/{peer_id}                   会话消息
POST   /api/messages/send/{peer_id}              发送消息（201）
PATCH  /api/messages/mark-read/{peer_id}         标记已读
PATCH  /api/messages/pin/{message_id}            置顶
PATCH  /api/messages/unpin/{message_id}          取消置顶
DELETE /api/messages/delete-for-everyone/{id}    对所有人删除
DELETE /api/messages/delete-for-me/{id}          对自己删除

所有调用都以服务端解析出的操作者身份重新校验参与关系。
"""

from chatsync.core.models import ChatPartner, Message, User
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ..deps import get_current_user_id, get_message_service
from ..services.message_service import MessageService

router = APIRouter(prefix="/api/messages")


class SendMessageRequest(BaseModel):
    """发送消息请求体"""

    text: str | None = Field(default=None, description="消息文本")
    image: str | None = Field(default=None, description="图片 URL 或 base64 data URL")


class MarkReadResponse(BaseModel):
    """标记已读响应"""

    peer_id: str
    updated: int


class DeleteResponse(BaseModel):
    """删除响应"""

    message_id: str
    status: str


@router.get("/contacts", response_model=list[User])
async def get_contacts(
    user_id: str = Depends(get_current_user_id),
    service: MessageService = Depends(get_message_service),
):
    """联系人列表：除自己以外的所有用户"""
    return await service.list_contacts(user_id)


@router.get("/chats", response_model=list[ChatPartner])
async def get_chat_partners(
    user_id: str = Depends(get_current_user_id),
    service: MessageService = Depends(get_message_service),
):
    """聊天对象列表，附带各自的未读数"""
    return await service.list_chat_partners(user_id)


@router.get("/pinned/{peer_id}", response_model=list[Message])
async def get_pinned_messages(
    peer_id: str,
    user_id: str = Depends(get_current_user_id),
    service: MessageService = Depends(get_message_service),
):
    """会话置顶消息，最近置顶在前"""
    return await service.list_pinned(user_id, peer_id)


@router.get("/{peer_id}", response_model=list[Message])
async def get_conversation(
    peer_id: str,
    user_id: str = Depends(get_current_user_id),
    service: MessageService = Depends(get_message_service),
):
    """会话消息，按创建时间正序"""
    return await service.list_conversation(user_id, peer_id)


@router.post("/send/{peer_id}", response_model=Message, status_code=201)
async def send_message(
    peer_id: str,
    body: SendMessageRequest,
    user_id: str = Depends(get_current_user_id),
    service: MessageService = Depends(get_message_service),
):
    """发送消息

    - 201: 创建成功，返回完整消息记录
    - 400: 载荷为空/过长，或发给自己
    - 404: 接收者不存在
    """
    return await service.send_message(user_id, peer_id, body.text, body.image)


@router.patch("/mark-read/{peer_id}", response_model=MarkReadResponse)
async def mark_read(
    peer_id: str,
    user_id: str = Depends(get_current_user_id),
    service: MessageService = Depends(get_message_service),
):
    """标记 peer 发来的消息为已读"""
    updated = await service.mark_read(user_id, peer_id)
    return MarkReadResponse(peer_id=peer_id, updated=updated)


@router.patch("/pin/{message_id}", response_model=Message)
async def pin_message(
    message_id: str,
    user_id: str = Depends(get_current_user_id),
    service: MessageService = Depends(get_message_service),
):
    """置顶消息，任一参与者均可"""
    return await service.pin_message(user_id, message_id)


@router.patch("/unpin/{message_id}", response_model=Message)
async def unpin_message(
    message_id: str,
    user_id: str = Depends(get_current_user_id),
    service: MessageService = Depends(get_message_service),
):
    """取消置顶，任一参与者均可"""
    return await service.unpin_message(user_id, message_id)


@router.delete("/delete-for-everyone/{message_id}", response_model=DeleteResponse)
async def delete_for_everyone(
    message_id: str,
    user_id: str = Depends(get_current_user_id),
    service: MessageService = Depends(get_message_service),
):
    """对所有人删除，仅发送者可执行"""
    await service.delete_for_everyone(user_id, message_id)
    return DeleteResponse(message_id=message_id, status="deleted_for_everyone")


@router.delete("/delete-for-me/{message_id}", response_model=DeleteResponse)
async def delete_for_me(
    message_id: str,
    user_id: str = Depends(get_current_user_id),
    service: MessageService = Depends(get_message_service),
):
    """对自己删除"""
    await service.delete_for_me(user_id, message_id)
    return DeleteResponse(message_id=message_id, status="deleted_for_me")
