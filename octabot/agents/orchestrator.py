"""会话编排核心模块。

一轮对话的阶段：
    idle/composing -> sending -> awaiting_primary_response
        -> (idle | awaiting_image_generation -> idle)

任何阶段的失败都只追加一条 error 消息并回到 idle，不会向调用方抛出。
同一会话同时只允许一个进行中的主调用：阶段检查与切换在第一个 await 之前完成。
"""

from dataclasses import dataclass
from typing import Optional, Tuple, Dict, Any
from uuid import uuid4
import asyncio
import time
import logging

from octabot.domain.conversation import (
    ConversationState,
    ConversationStore,
    InputChanged,
    PhaseChanged,
    TurnCompleted,
    TurnFailed,
    TurnStarted,
)
from octabot.domain.exceptions import BusinessError, OperationCancelled
from octabot.domain.models import Attachment, Message
from octabot.infrastructure.logging.logger import logger
from octabot.preprocessing.coordinator import ImagePreprocessingCoordinator
from octabot.providers.base import ServiceGateway


IMAGE_DIRECTIVE = "GENERATE_IMAGE: "

UNEXPECTED_ERROR_MESSAGE = "An unexpected error occurred. Please try again later."

_KIND_PREFIX = {
    "transport": "Connection problem",
    "upstream": "Service error",
    "malformed": "Unexpected response",
    "local_io": "File error",
    "validation": "Configuration error",
    "cancelled": "Request cancelled",
}


def describe_error(exc: BaseException) -> str:
    """把异常转换为用户可读的一句话摘要。"""

    if isinstance(exc, BusinessError):
        prefix = _KIND_PREFIX.get(exc.kind)
        if prefix:
            return f"{prefix}: {exc.message}"
        return exc.message
    return UNEXPECTED_ERROR_MESSAGE


def compose_user_message(text: str, attachment: Optional[Attachment]) -> Message:
    """构造本轮的用户消息：附件文件名追加在正文后，图片预览作为 image_url。"""

    content = text
    if attachment is not None:
        note = f"[Attached: {attachment.filename}]"
        content = f"{text}\n\n{note}" if text else note
    return Message(
        role="user",
        content=content,
        image_url=attachment.preview_uri if attachment is not None else None,
    )


def image_reply(prompt: str, image_url: str) -> Message:
    return Message(
        role="assistant",
        content=f"Here's the image you requested:\n\n*{prompt}*",
        image_url=image_url,
    )


@dataclass
class TurnOutcome:
    """submit_turn 的返回值。

    - accepted: 是否真正发起了一轮对话（被守卫拒绝时为 False）。
    - appended: 本轮追加的消息（用户消息 + 助手/错误消息）。
    - state: 本轮结束后的会话状态。
    """

    accepted: bool
    appended: Tuple[Message, ...]
    state: ConversationState


class ConversationOrchestrator:
    def __init__(
        self,
        gateway: ServiceGateway,
        store: ConversationStore,
        preprocessor: Optional[ImagePreprocessingCoordinator] = None,
    ):
        self._gateway = gateway
        self._store = store
        self._preprocessor = preprocessor

    @property
    def state(self) -> ConversationState:
        return self._store.get_state()

    async def submit_turn(self, input_text: Optional[str] = None) -> TurnOutcome:
        """执行一轮对话。

        Args:
            input_text: 本轮输入；为 None 时使用状态中的草稿。

        Returns:
            TurnOutcome；被守卫拒绝时 accepted=False 且状态不变。
        """
        if input_text is not None and not self.state.is_busy:
            self._store.dispatch(InputChanged(input_text))

        state = self.state
        text = state.input_text.strip()
        attachment = state.attachment
        has_attachment = attachment is not None and attachment.is_sendable
        if state.is_busy or (not text and not has_attachment):
            logger.info(
                "Turn rejected",
                extra={"extra": {"phase": state.phase, "has_text": bool(text)}},
            )
            return TurnOutcome(accepted=False, appended=(), state=state)

        start_time = time.time()
        log_ctx: Dict[str, Any] = {"turn_id": f"t-{uuid4().hex}"}
        before = len(state.messages)

        # 1. 乐观回显用户消息，清空输入与附件
        user_message = compose_user_message(text, attachment)
        self._store.dispatch(TurnStarted(user_message))
        if attachment is not None and self._preprocessor is not None:
            self._preprocessor.hand_off(attachment)
        self._log(logging.INFO, "Stored user message", log_ctx, has_attachment=attachment is not None)

        # 2. 主调用 + 可选图片生成
        try:
            reply = await self._run_turn(text, attachment, log_ctx)
        except asyncio.CancelledError:
            self._log(logging.WARNING, "Turn cancelled", log_ctx)
            cancelled = OperationCancelled(code="TURN_CANCELLED", message="The request was cancelled.")
            self._store.dispatch(TurnFailed(Message(role="error", content=describe_error(cancelled))))
            raise
        except Exception as e:
            self._log(
                logging.ERROR,
                f"Turn failed: {e}",
                log_ctx,
                kind=getattr(e, "kind", "unexpected"),
                code=getattr(e, "code", None),
            )
            self._store.dispatch(TurnFailed(Message(role="error", content=describe_error(e))))
        else:
            self._store.dispatch(TurnCompleted(reply))

        final_state = self.state
        self._log(
            logging.INFO,
            "Completed turn",
            log_ctx,
            elapsed_seconds=round(time.time() - start_time, 2),
        )
        return TurnOutcome(
            accepted=True,
            appended=final_state.messages[before:],
            state=final_state,
        )

    async def _run_turn(
        self,
        text: str,
        attachment: Optional[Attachment],
        log_ctx: Dict[str, Any],
    ) -> Message:
        caption = attachment.caption if attachment is not None and attachment.status == "ready" else None
        extracted = attachment.extracted_text if attachment is not None and attachment.status == "ready" else None

        self._store.dispatch(PhaseChanged("awaiting_primary_response"))
        self._log(
            logging.INFO,
            "Calling chat completion",
            log_ctx,
            has_caption=caption is not None,
            has_extracted_text=extracted is not None,
        )
        response = await self._gateway.chat_complete(text, caption, extracted)

        if not response.startswith(IMAGE_DIRECTIVE):
            return Message(role="assistant", content=response)

        prompt = response[len(IMAGE_DIRECTIVE):]
        self._store.dispatch(PhaseChanged("awaiting_image_generation"))
        self._log(logging.INFO, "Calling image generation", log_ctx)
        image_url = await self._gateway.generate_image(prompt)
        return image_reply(prompt, image_url)

    def _log(self, level: int, message: str, log_ctx: Dict[str, Any], **fields: Any) -> None:
        payload = dict(log_ctx)
        payload.update(fields)
        logger.log(level, message, extra={"extra": payload})
