"""对外 API 服务模块。

提供面向 UI 的会话门面：输入草稿、文件选择/拖放、移除附件、发送与订阅。
渲染层只需 subscribe 一个回调，即可在每次状态变化后拿到完整快照。
"""

import mimetypes
from pathlib import Path
from typing import Callable, Optional

from octabot.agents.orchestrator import ConversationOrchestrator, TurnOutcome
from octabot.config.settings import settings
from octabot.domain.conversation import ConversationState, InputChanged, StateListener
from octabot.domain.models import Attachment
from octabot.infrastructure.logging.logger import logger
from octabot.infrastructure.storage.preview_store import PreviewStore
from octabot.infrastructure.storage.state_store import InMemoryConversationStore
from octabot.preprocessing.coordinator import ImagePreprocessingCoordinator
from octabot.providers import create_gateway
from octabot.providers.base import ServiceGateway


def guess_media_type(path: str) -> str:
    media_type, _ = mimetypes.guess_type(Path(path).name)
    return media_type or "application/octet-stream"


def is_image(media_type: Optional[str]) -> bool:
    return bool(media_type) and media_type.startswith("image/")


class ChatSession:
    """单个会话的门面，组合状态容器、预览存储、预处理协调器与编排器。"""

    def __init__(self, gateway: Optional[ServiceGateway] = None, cfg=settings):
        self.store = InMemoryConversationStore()
        self.previews = PreviewStore()
        self._gateway = gateway or create_gateway(cfg)
        self._preprocessor = ImagePreprocessingCoordinator(
            gateway=self._gateway,
            store=self.store,
            previews=self.previews,
            cfg=cfg,
        )
        self._orchestrator = ConversationOrchestrator(
            gateway=self._gateway,
            store=self.store,
            preprocessor=self._preprocessor,
        )

    @property
    def state(self) -> ConversationState:
        return self.store.get_state()

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        return self.store.subscribe(listener)

    def set_input(self, text: str) -> None:
        self.store.dispatch(InputChanged(text))

    async def select_file(self, path: str) -> Attachment:
        """文件选择器：图片进入预处理，其他文件按文本读取。

        Raises:
            LocalIOError: 文件读取失败。
            ValidationError: 已有附件仍在分析中。
        """
        media_type = guess_media_type(path)
        if is_image(media_type):
            return self._preprocessor.start_analysis(path, media_type)
        attachment = self._preprocessor.attach_document(path, media_type)
        logger.info("Attached document", extra={"extra": {"attachment_id": attachment.id}})
        return attachment

    async def drop_file(self, path: str, media_type: Optional[str] = None) -> Optional[Attachment]:
        """拖放：只接受声明为图片的文件，其他文件静默忽略并返回 None。"""

        declared = media_type or guess_media_type(path)
        if not is_image(declared):
            logger.info("Ignored non-image drop", extra={"extra": {"media_type": declared}})
            return None
        return self._preprocessor.start_analysis(path, declared)

    def remove_attachment(self) -> Optional[Attachment]:
        return self._preprocessor.remove()

    async def wait_for_analysis(self) -> Optional[Attachment]:
        return await self._preprocessor.wait()

    async def send(self, text: Optional[str] = None) -> TurnOutcome:
        return await self._orchestrator.submit_turn(text)

    async def aclose(self) -> None:
        """结束会话：取消进行中的分析并释放未发送附件的预览。"""

        self._preprocessor.remove()
        await self._preprocessor.wait()


_session: Optional[ChatSession] = None


def get_default_session() -> ChatSession:
    """获取默认的会话实例（单例）。"""
    global _session
    if _session is None:
        _session = ChatSession()
    return _session
