"""统一业务异常模型。

所有跨模块抛出的业务级错误都应该继承自 BusinessError，
便于调用方在 append / reload 外层做统一捕获与用户提示。
"""


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "API_ERROR"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 chat_id、round 等）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class NetworkError(BusinessError):
    """网络层错误，例如连接失败、超时等。"""


class ApiError(BusinessError):
    """聊天接口返回非 2xx 状态时抛出，message 为响应体文本。"""


class EmptyResponseError(BusinessError):
    """接口返回成功状态但响应体为空。"""


class FunctionCallParseError(BusinessError):
    """流结束后函数调用 JSON 无法解析，或结构不符合预期。"""


class FunctionCallLoopExceeded(BusinessError):
    """函数调用循环超过允许的最大轮数。"""


class ValidationError(BusinessError):
    """参数或配置校验失败。"""


class RequestCancelled(Exception):
    """请求被 stop() 取消。

    仅在控制器内部流转，不会从 append / reload 抛出。
    """
