"""统一业务异常模型。

所有跨模块抛出的业务级错误都继承自 BusinessError，便于编排层统一捕获，
并把失败转换成用户可读的 error 消息。

kind 对应错误分类：
- transport: 请求没有拿到任何响应（连接失败、超时）。
- upstream: 服务返回非成功状态，或服务端报告任务失败。
- malformed: 状态成功但响应缺少/不符合预期字段。
- local_io: 本地文件读取失败。
- validation / cancelled: 配置校验失败、操作被取消。
"""


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "NETWORK_ERROR"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 endpoint、attachment_id 等）。
    """

    kind = "business"

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class ServiceError(BusinessError):
    """远程 AI 服务调用失败的公共基类。"""


class TransportError(ServiceError):
    """网络层错误，例如连接失败、超时等，没有收到任何响应。"""

    kind = "transport"


class UpstreamError(ServiceError):
    """服务返回非 2xx 状态，或异步任务报告失败。"""

    kind = "upstream"


class RateLimitError(UpstreamError):
    """服务返回 429。本项目不做重试，仅作为 upstream 的细分类型。"""


class MalformedResponseError(ServiceError):
    """状态成功，但响应体缺少预期字段或无法解析。"""

    kind = "malformed"


class LocalIOError(BusinessError):
    """读取本地文件失败。"""

    kind = "local_io"


class ValidationError(BusinessError):
    """参数或配置校验失败。"""

    kind = "validation"


class OperationCancelled(BusinessError):
    """进行中的操作被取消（例如附件在分析期间被移除）。"""

    kind = "cancelled"
