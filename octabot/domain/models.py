"""统一的对话、附件与服务结果数据模型。

本模块定义了编排层、预处理层与服务网关之间共享的标准数据结构：

- Message: 对话中的一条消息（user/assistant/error），追加后不可修改。
- Attachment: 当前待发送的附件及其分析结果（描述、识别文字）。
- ChatMessage / ChatRequest: 发给对话补全服务的请求模型。
- ImageAnalysis / TextExtraction: 图片分析服务解析后的结果。

所有 Provider 适配器只依赖这些模型，并负责在各自的 API JSON 与模型之间转换。
"""

from dataclasses import dataclass, field, replace
from typing import Literal, Optional, List, Tuple


# 对话消息角色（渲染层据此决定样式）
Role = Literal["user", "assistant", "error"]

# 发给对话补全服务的角色
ChatRole = Literal["system", "user", "assistant"]

AttachmentStatus = Literal["analyzing", "ready", "failed"]
AttachmentKind = Literal["image", "document"]


@dataclass(frozen=True)
class Message:
    """一条对话消息。

    - role: user / assistant / error。
    - content: 纯文本（可能包含 markdown，由渲染层处理）。
    - image_url: 可选图片地址；用户消息为本地预览引用，助手消息为生成图片 URL。
    """

    role: Role
    content: str
    image_url: Optional[str] = None

    def __post_init__(self) -> None:
        if self.role == "error" and self.image_url is not None:
            raise ValueError("error messages never carry an image_url")


@dataclass(frozen=True)
class Attachment:
    """当前激活的附件。

    同一时间最多一个。状态流转：analyzing -> ready | failed。
    preview_uri 由 PreviewStore 分配，移除附件时释放；随消息发送时移交给消息，不释放。
    """

    id: str
    filename: str
    source_path: str
    media_type: str
    preview_uri: Optional[str] = None
    caption: Optional[str] = None
    extracted_text: Optional[str] = None
    status: AttachmentStatus = "analyzing"
    kind: AttachmentKind = "image"

    def finish(
        self,
        caption: Optional[str],
        extracted_text: Optional[str],
        status: AttachmentStatus = "ready",
    ) -> "Attachment":
        return replace(self, caption=caption, extracted_text=extracted_text, status=status)

    @property
    def is_sendable(self) -> bool:
        """分析结束（无论成功与否）即可随消息发送。"""

        return self.status != "analyzing"


@dataclass
class ChatMessage:
    """对话补全请求中的一条消息。"""

    role: ChatRole
    content: str


@dataclass
class ChatRequest:
    """一次完整的对话补全请求。

    当前只构造单轮请求：固定 system 指令 + 一条 user 消息。
    """

    messages: List[ChatMessage]
    temperature: float = 0.7
    top_p: float = 0.95
    max_tokens: int = 3000

    def to_payload(self) -> dict:
        return {
            "messages": [{"role": m.role, "content": m.content} for m in self.messages],
            "temperature": self.temperature,
            "top_p": self.top_p,
            "max_tokens": self.max_tokens,
        }


@dataclass
class ImageAnalysis:
    """图片描述结果，caption 取置信度最高（即第一条）的描述。"""

    caption: str
    confidence: Optional[float] = None


@dataclass
class TextExtraction:
    """Read 任务结果。lines 保持服务返回的顺序。"""

    text: str
    lines: Tuple[str, ...] = field(default_factory=tuple)
