"""客户端异常体系"""


class ChatClientError(Exception):
    """客户端基础异常"""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ChatApiError(ChatClientError):
    """服务端返回错误响应

    code 与服务端 {"error": {"code", "message"}} 对齐。
    """

    def __init__(self, status_code: int, code: str, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code


class ServerUnreachableError(ChatClientError):
    """服务端不可达（连接失败、超时等）"""

    def __init__(self, base_url: str, original_error: Exception) -> None:
        super().__init__(f"服务端不可达: {base_url} -- {original_error}")
        self.base_url = base_url
        self.original_error = original_error
