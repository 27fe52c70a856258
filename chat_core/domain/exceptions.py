"""统一业务异常模型。

所有跨模块抛出的业务级错误都应该继承自 BusinessError，
便于在对话轮次边界或 UI 层做统一捕获与用户提示。
"""


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "NETWORK_ERROR"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 model、conversation_id 等）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class ConfigurationError(BusinessError):
    """配置缺失（例如没有 API 密钥），不可重试，启动时报告一次。"""

    def __init__(self, code: str = "MISSING_API_KEY", message: str = "API key not configured", http_status: int = 500, **extra):
        super().__init__(code, message, http_status, **extra)


class NetworkError(BusinessError):
    """网络层错误，例如连接失败、超时等。"""


class ApiError(BusinessError):
    """后端拒绝请求（非 2xx、被安全策略拦截等）时抛出。"""


class EmptyResponseError(BusinessError):
    """流正常结束但没有任何内容。"""

    def __init__(self, code: str = "EMPTY_RESPONSE", message: str = "The AI returned an empty response.", http_status: int = 502, **extra):
        super().__init__(code, message, http_status, **extra)


class ValidationError(BusinessError):
    """参数或配置校验失败。"""
