"""统一业务异常模型。

这些异常只在 Provider 与连接串解析层内部抛出；
调用管线和规则检查器会把它们统一转换为 LmErrorResponse / LmUnavailable，
不会让传输层异常越过管线边界。
"""


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "NETWORK_ERROR"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 provider、missing 等）。
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
    """第三方 API 返回非 2xx/429 错误时抛出。"""


class RateLimitError(BusinessError):
    """Provider 限流错误，由调用管线负责重试。"""


class EmptyCompletionError(BusinessError):
    """模型返回了空的 choices 或空内容。"""


class ValidationError(BusinessError):
    """参数校验失败。"""


class ConfigurationError(BusinessError):
    """连接串格式错误或缺少 Provider 必填字段。"""
