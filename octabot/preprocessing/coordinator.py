"""附件预处理协调器。

负责把一张选中/拖入的图片变成带描述与识别文字的 Attachment：

1. 读取文件、分配本地预览引用，立即以 analyzing 状态放入会话状态。
2. 并发调用 analyze_image 与 extract_text，两者结果各自包装成 Outcome，
   一方失败不会取消另一方。
3. 两者都结束后分派 AttachmentAnalyzed：只要没有异常逃出组合本身就是 ready，
   只带上成功的字段；组合本身出错则为 failed，caption 写入诊断信息。

分析失败只体现在附件上，不会产生 error 消息，也不会阻止用户继续发送。
附件被移除或随消息发送时，两个进行中的子调用都会经由取消令牌中止。
"""

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Generic, Optional, TypeVar
from uuid import uuid4

from octabot.config.settings import settings
from octabot.domain.conversation import (
    AttachmentAdded,
    AttachmentAnalyzed,
    AttachmentRemoved,
    ConversationStore,
)
from octabot.domain.exceptions import BusinessError, LocalIOError, ValidationError
from octabot.domain.models import Attachment
from octabot.infrastructure.logging.logger import logger
from octabot.infrastructure.storage.preview_store import PreviewStore
from octabot.preprocessing.cancellation import CancellationToken
from octabot.providers.base import ServiceGateway


T = TypeVar("T")


@dataclass
class Outcome(Generic[T]):
    """单个子调用的结果：value 与 error 二选一。"""

    value: Optional[T] = None
    error: Optional[BusinessError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def settle(awaitable: Awaitable[T]) -> Outcome[T]:
    """等待子调用并把业务异常收敛成 Outcome，其他异常继续向上抛。"""

    try:
        return Outcome(value=await awaitable)
    except BusinessError as e:
        return Outcome(error=e)


class ImagePreprocessingCoordinator:
    def __init__(
        self,
        gateway: ServiceGateway,
        store: ConversationStore,
        previews: PreviewStore,
        cfg=settings,
    ):
        self._gateway = gateway
        self._store = store
        self._previews = previews
        self._settings = cfg
        self._task: Optional["asyncio.Task[Attachment]"] = None
        self._token: Optional[CancellationToken] = None

    # ---- 附件生命周期 ----

    def start_analysis(self, path: str, media_type: str) -> Attachment:
        """创建 analyzing 附件并在后台开始分析，需在事件循环中调用。"""

        self._ensure_replaceable()
        data = self._read_bytes(path)
        self._discard_current("replaced")

        attachment = Attachment(
            id=f"a-{uuid4().hex}",
            filename=Path(path).name,
            source_path=str(path),
            media_type=media_type,
            preview_uri=self._previews.allocate(data, media_type),
        )
        self._store.dispatch(AttachmentAdded(attachment))

        token = CancellationToken()
        self._token = token
        self._task = asyncio.get_running_loop().create_task(self._run(attachment, data, token))
        logger.info(
            "Started attachment analysis",
            extra={"extra": {"attachment_id": attachment.id, "size": len(data)}},
        )
        return attachment

    def attach_document(self, path: str, media_type: str) -> Attachment:
        """非图片文件：按 UTF-8 读取全文，直接作为 ready 附件的识别文字。"""

        self._ensure_replaceable()
        data = self._read_bytes(path)
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise LocalIOError(code="FILE_DECODE_ERROR", message="Error reading file", path=str(path), detail=str(e))
        self._discard_current("replaced")
        self._task = None
        self._token = None

        attachment = Attachment(
            id=f"a-{uuid4().hex}",
            filename=Path(path).name,
            source_path=str(path),
            media_type=media_type,
            extracted_text=text,
            status="ready",
            kind="document",
        )
        self._store.dispatch(AttachmentAdded(attachment))
        return attachment

    def remove(self) -> Optional[Attachment]:
        """用户移除附件：取消进行中的分析并释放预览引用。"""

        return self._discard_current("removed")

    def hand_off(self, attachment: Attachment) -> None:
        """附件随消息发送：取消进行中的分析，预览引用移交给消息，不释放。"""

        self._cancel(f"attachment {attachment.id} sent")

    async def wait(self) -> Optional[Attachment]:
        """等待当前后台分析结束，返回分析后的附件。"""

        if self._task is None:
            return None
        return await self._task

    # ---- 分析 ----

    async def analyze(
        self,
        attachment: Attachment,
        data: bytes,
        token: Optional[CancellationToken] = None,
    ) -> Attachment:
        log_ctx = {"attachment_id": attachment.id}
        try:
            caption_outcome, text_outcome = await asyncio.gather(
                settle(self._guarded(self._gateway.analyze_image(data), token)),
                settle(self._guarded(self._gateway.extract_text(data, token), token)),
            )
        except Exception as e:
            logger.error(f"Attachment analysis crashed: {e}", extra={"extra": log_ctx})
            return attachment.finish(
                caption=f"Image analysis failed: {e}",
                extracted_text=None,
                status="failed",
            )

        for label, outcome in (("caption", caption_outcome), ("text", text_outcome)):
            if not outcome.ok:
                logger.warning(
                    f"Attachment {label} analysis failed: {outcome.error.message}",
                    extra={"extra": {**log_ctx, "code": outcome.error.code, "kind": outcome.error.kind}},
                )

        return attachment.finish(
            caption=caption_outcome.value.caption if caption_outcome.ok else None,
            extracted_text=text_outcome.value.text if text_outcome.ok else None,
        )

    async def _run(self, attachment: Attachment, data: bytes, token: CancellationToken) -> Attachment:
        finished = await self.analyze(attachment, data, token)
        if token.cancelled:
            logger.info(
                "Dropped analysis result for superseded attachment",
                extra={"extra": {"attachment_id": attachment.id, "reason": token.reason}},
            )
            return finished
        self._store.dispatch(AttachmentAnalyzed(finished))
        return finished

    # ---- 辅助方法 ----

    def _ensure_replaceable(self) -> None:
        current = self._store.get_state().attachment
        if current is not None and current.status == "analyzing":
            raise ValidationError(
                code="ATTACHMENT_PENDING",
                message="Please wait until the current attachment has been analyzed.",
                attachment_id=current.id,
            )

    def _discard_current(self, reason: str) -> Optional[Attachment]:
        current = self._store.get_state().attachment
        if current is None:
            return None
        self._cancel(reason)
        self._previews.release(current.preview_uri)
        self._store.dispatch(AttachmentRemoved(current.id))
        return current

    @staticmethod
    def _guarded(awaitable: Awaitable[T], token: Optional[CancellationToken]) -> Awaitable[T]:
        return token.run(awaitable) if token is not None else awaitable

    def _cancel(self, reason: str) -> None:
        if self._token is not None and not self._token.cancelled:
            self._token.cancel(reason)

    def _read_bytes(self, path: str) -> bytes:
        p = Path(path)
        try:
            size = p.stat().st_size
            if size > self._settings.max_attachment_bytes:
                raise LocalIOError(
                    code="FILE_TOO_LARGE",
                    message="File exceeds max size limit",
                    path=str(path),
                    size=size,
                )
            return p.read_bytes()
        except OSError as e:
            raise LocalIOError(code="FILE_READ_ERROR", message="Error reading file", path=str(path), detail=str(e))
