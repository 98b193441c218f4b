"""Azure AI Vision 适配器：图片描述与 Read 文字识别。

图片描述是一次性请求；Read 是异步任务：

1. POST 图片字节，响应头 Operation-Location 给出任务地址。
2. 按固定间隔 GET 任务地址，status 为 notStarted / running 时继续等待。
3. succeeded 时按服务返回顺序拼接所有行；failed 时抛出 UpstreamError。

轮询次数上限由 settings.vision_max_poll_attempts 控制，超过即视为失败；
传入 CancellationToken 时，取消会在下一次等待时立即生效。
"""

import asyncio
from typing import List, Optional, TYPE_CHECKING

import httpx

from octabot.config.settings import settings
from octabot.domain.exceptions import UpstreamError, ValidationError
from octabot.domain.models import ImageAnalysis, TextExtraction
from octabot.infrastructure.logging.logger import logger
from octabot.providers.errors import check_status, malformed, parse_json, transport_error
from octabot.providers.registry import analyze_url, read_url

if TYPE_CHECKING:
    from octabot.preprocessing.cancellation import CancellationToken


PENDING_STATUSES = ("notStarted", "running")


class AzureVisionClient:
    """Azure AI Vision 客户端实现。"""

    name = "azure-vision"

    def __init__(self, cfg=settings):
        self._settings = cfg

    # ---- 图片描述 ----

    async def analyze_image(self, data: bytes) -> ImageAnalysis:
        headers = self._headers()
        try:
            async with httpx.AsyncClient(timeout=self._settings.http_timeout, trust_env=False) as client:
                resp = await client.post(analyze_url(self._settings), content=data, headers=headers)
        except httpx.RequestError as e:
            raise transport_error("analyze", e)
        check_status(resp, "analyze")
        payload = parse_json(resp, "analyze")
        description = payload.get("description") if isinstance(payload, dict) else None
        captions = description.get("captions") if isinstance(description, dict) else None
        if not isinstance(captions, list) or not captions:
            raise malformed("analyze", "empty captions list")
        first = captions[0]
        if not isinstance(first, dict) or not isinstance(first.get("text"), str) or not first["text"]:
            raise malformed("analyze", "caption entry has no text")
        return ImageAnalysis(caption=first["text"], confidence=first.get("confidence"))

    # ---- 文字识别 ----

    async def extract_text(
        self,
        data: bytes,
        token: Optional["CancellationToken"] = None,
    ) -> TextExtraction:
        headers = self._headers()
        max_attempts = self._settings.vision_max_poll_attempts
        interval = self._settings.vision_poll_interval
        try:
            async with httpx.AsyncClient(timeout=self._settings.http_timeout, trust_env=False) as client:
                resp = await client.post(read_url(self._settings), content=data, headers=headers)
                check_status(resp, "read")
                operation_url = resp.headers.get("Operation-Location")
                if not operation_url:
                    raise malformed("read", "missing Operation-Location header")
                logger.info("Submitted read job", extra={"extra": {"operation": operation_url}})

                for attempt in range(1, max_attempts + 1):
                    if token is not None:
                        token.raise_if_cancelled()
                    status_resp = await client.get(operation_url, headers=headers)
                    check_status(status_resp, "read")
                    result = parse_json(status_resp, "read")
                    status = result.get("status") if isinstance(result, dict) else None

                    if status == "succeeded":
                        return self._collect_lines(result)
                    if status == "failed":
                        raise UpstreamError(
                            code="READ_FAILED",
                            message="Text extraction failed on the server.",
                            service="read",
                        )
                    if status not in PENDING_STATUSES:
                        raise malformed("read", f"unknown job status {status!r}")

                    if attempt < max_attempts:
                        await self._wait(interval, token)
        except httpx.RequestError as e:
            raise transport_error("read", e)

        logger.warning(
            "Read job did not finish in time",
            extra={"extra": {"attempts": max_attempts}},
        )
        raise UpstreamError(
            code="READ_TIMEOUT",
            message="Text extraction did not finish in time.",
            service="read",
            attempts=max_attempts,
        )

    # ---- 辅助方法 ----

    def _headers(self) -> dict:
        api_key = getattr(self._settings, "vision_api_key", None)
        if not api_key:
            raise ValidationError(code="MISSING_API_KEY", message="VISION_API_KEY not set")
        return {
            "Ocp-Apim-Subscription-Key": api_key,
            "Content-Type": "application/octet-stream",
        }

    @staticmethod
    async def _wait(seconds: float, token: Optional["CancellationToken"]) -> None:
        if token is not None:
            await token.sleep(seconds)
        else:
            await asyncio.sleep(seconds)

    @staticmethod
    def _collect_lines(result: dict) -> TextExtraction:
        analyze_result = result.get("analyzeResult") or {}
        if not isinstance(analyze_result, dict):
            raise malformed("read", "analyzeResult is not an object")
        pages = analyze_result.get("readResults") or []
        if not isinstance(pages, list):
            raise malformed("read", "readResults is not a list")
        lines: List[str] = []
        for page in pages:
            if not isinstance(page, dict):
                raise malformed("read", "page is not an object")
            page_lines = page.get("lines") or []
            if not isinstance(page_lines, list):
                raise malformed("read", "lines is not a list")
            for line in page_lines:
                if not isinstance(line, dict):
                    raise malformed("read", "line is not an object")
                text = line.get("text")
                if text is not None:
                    lines.append(str(text))
        return TextExtraction(text="\n".join(lines).rstrip(), lines=tuple(lines))
