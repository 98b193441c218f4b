from typing import Optional, TYPE_CHECKING

from octabot.config.settings import settings
from octabot.domain.models import ImageAnalysis, TextExtraction
from octabot.providers.azure_openai_client import AzureOpenAIClient
from octabot.providers.vision_client import AzureVisionClient

if TYPE_CHECKING:
    from octabot.preprocessing.cancellation import CancellationToken


class AzureServiceGateway:
    """把 Azure OpenAI 与 Azure AI Vision 组合成一个 ServiceGateway。"""

    name = "azure"

    def __init__(
        self,
        cfg=settings,
        openai_client: Optional[AzureOpenAIClient] = None,
        vision_client: Optional[AzureVisionClient] = None,
    ):
        self._openai = openai_client or AzureOpenAIClient(cfg)
        self._vision = vision_client or AzureVisionClient(cfg)

    async def chat_complete(
        self,
        conversation_text: str,
        image_caption: Optional[str] = None,
        extracted_text: Optional[str] = None,
    ) -> str:
        return await self._openai.chat_complete(conversation_text, image_caption, extracted_text)

    async def generate_image(self, prompt: str) -> str:
        return await self._openai.generate_image(prompt)

    async def analyze_image(self, data: bytes) -> ImageAnalysis:
        return await self._vision.analyze_image(data)

    async def extract_text(
        self,
        data: bytes,
        token: Optional["CancellationToken"] = None,
    ) -> TextExtraction:
        return await self._vision.extract_text(data, token)
