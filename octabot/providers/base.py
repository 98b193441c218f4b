"""服务网关抽象接口。

编排层与预处理层不直接依赖具体厂商的 HTTP 细节，而是依赖此协议：

- chat_complete / generate_image: 对话补全与图片生成。
- analyze_image / extract_text: 图片描述与文字识别（后者内部轮询异步任务）。

所有实现都必须把传输层失败转换成 domain.exceptions 中的 ServiceError 子类，
不允许原始 httpx 异常越过网关边界。
"""

from typing import Optional, Protocol, TYPE_CHECKING

from octabot.domain.models import ImageAnalysis, TextExtraction

if TYPE_CHECKING:
    from octabot.preprocessing.cancellation import CancellationToken


class ServiceGateway(Protocol):
    name: str

    async def chat_complete(
        self,
        conversation_text: str,
        image_caption: Optional[str] = None,
        extracted_text: Optional[str] = None,
    ) -> str:
        ...

    async def generate_image(self, prompt: str) -> str:
        ...

    async def analyze_image(self, data: bytes) -> ImageAnalysis:
        ...

    async def extract_text(
        self,
        data: bytes,
        token: Optional["CancellationToken"] = None,
    ) -> TextExtraction:
        """提交 Read 任务并轮询直到 succeeded / failed。"""

        ...
