"""消息核心异常体系

所有异常都是单请求范围内的同步失败，不做自动重试。
gateway 统一把 ChatError 映射为 {"error": {"code", "message"}} 响应。
"""


class ChatError(Exception):
    """消息核心基础异常"""

    code: str = "CHAT_ERROR"
    status_code: int = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(ChatError):
    """消息载荷不合法（无文本也无图片、文本过长、图片无法解析）"""

    code = "VALIDATION_ERROR"
    status_code = 400


class SelfMessageError(ChatError):
    """发送者与接收者相同"""

    code = "SELF_MESSAGE"
    status_code = 400

    def __init__(self, message: str = "You cannot send message to yourself") -> None:
        super().__init__(message)


class NotFoundError(ChatError):
    """消息或目标用户不存在"""

    code = "NOT_FOUND"
    status_code = 404


class ForbiddenError(ChatError):
    """操作者无权执行该变更"""

    code = "FORBIDDEN"
    status_code = 403


class AlreadyDeletedError(ChatError):
    """重复的 delete-for-me"""

    code = "ALREADY_DELETED"
    status_code = 409

    def __init__(self, message: str = "Message already deleted for you") -> None:
        super().__init__(message)


class UnauthenticatedError(ChatError):
    """请求未携带可解析的操作者身份"""

    code = "UNAUTHENTICATED"
    status_code = 401
