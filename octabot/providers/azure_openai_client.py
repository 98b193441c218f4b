"""Azure OpenAI 适配器：对话补全与图片生成。

两个端点都使用部署路由：
- URL: {base_url}/openai/deployments/{deployment}/{route}?api-version=...
- 认证: api-key: <api_key>

每次调用只发一次请求，不做重试。
"""

from typing import List, Optional

import httpx

from octabot.config.settings import settings
from octabot.domain.exceptions import ValidationError
from octabot.domain.models import ChatMessage, ChatRequest
from octabot.infrastructure.logging.logger import logger
from octabot.prompts import load_system_prompt
from octabot.providers.errors import check_status, malformed, parse_json, transport_error
from octabot.providers.registry import CHAT_DEFAULTS, IMAGE_DEFAULTS, deployment_url


CAPTION_HEADER = "Image description:"
EXTRACTED_TEXT_HEADER = "Extracted text:"


def build_user_content(
    conversation_text: str,
    image_caption: Optional[str] = None,
    extracted_text: Optional[str] = None,
) -> str:
    """拼接用户消息与附件上下文，每段只在存在时追加，段间空一行。"""

    parts: List[str] = [conversation_text]
    if image_caption:
        parts.append(f"{CAPTION_HEADER}\n{image_caption}")
    if extracted_text:
        parts.append(f"{EXTRACTED_TEXT_HEADER}\n{extracted_text}")
    return "\n\n".join(parts)


class AzureOpenAIClient:
    """Azure OpenAI 客户端实现。"""

    name = "azure-openai"

    def __init__(self, cfg=settings):
        self._settings = cfg

    # ---- 对话补全 ----

    async def chat_complete(
        self,
        conversation_text: str,
        image_caption: Optional[str] = None,
        extracted_text: Optional[str] = None,
    ) -> str:
        req = self.build_request(conversation_text, image_caption, extracted_text)
        data = await self._post("chat", req.to_payload())
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            raise malformed("chat", "missing choices[0].message.content")
        if not isinstance(content, str):
            raise malformed("chat", "message content is not text")
        return content

    def build_request(
        self,
        conversation_text: str,
        image_caption: Optional[str] = None,
        extracted_text: Optional[str] = None,
    ) -> ChatRequest:
        return ChatRequest(
            messages=[
                ChatMessage(role="system", content=load_system_prompt()),
                ChatMessage(
                    role="user",
                    content=build_user_content(conversation_text, image_caption, extracted_text),
                ),
            ],
            temperature=CHAT_DEFAULTS.temperature,
            top_p=CHAT_DEFAULTS.top_p,
            max_tokens=CHAT_DEFAULTS.max_tokens,
        )

    # ---- 图片生成 ----

    async def generate_image(self, prompt: str) -> str:
        payload = {
            "prompt": prompt,
            "n": IMAGE_DEFAULTS.count,
            "size": IMAGE_DEFAULTS.size,
        }
        data = await self._post("image", payload)
        try:
            url = data["data"][0]["url"]
        except (KeyError, IndexError, TypeError):
            raise malformed("image", "missing data[0].url")
        if not url:
            raise malformed("image", "empty image url")
        return url

    # ---- 辅助方法 ----

    async def _post(self, service: str, payload: dict):
        api_key = getattr(self._settings, "azure_openai_api_key", None)
        if not api_key:
            raise ValidationError(code="MISSING_API_KEY", message="AZURE_OPENAI_API_KEY not set")
        url = deployment_url(self._settings, service)
        logger.info("Calling Azure OpenAI", extra={"extra": {"service": service}})
        try:
            async with httpx.AsyncClient(timeout=self._settings.http_timeout, trust_env=False) as client:
                resp = await client.post(
                    url,
                    json=payload,
                    headers={
                        "api-key": api_key,
                        "Content-Type": "application/json",
                    },
                )
        except httpx.RequestError as e:
            raise transport_error(service, e)
        check_status(resp, service)
        return parse_json(resp, service)
