from typing import Callable, List, Optional

from octabot.domain.conversation import (
    ConversationState,
    ConversationStore,
    StateEvent,
    StateListener,
    reduce,
)
from octabot.infrastructure.logging.logger import logger


class InMemoryConversationStore(ConversationStore):
    """进程内会话状态容器，不做跨会话持久化。

    dispatch 时用 reduce 生成新状态，再依次通知订阅者；
    单个订阅者抛出的异常只记录日志，不影响状态与其他订阅者。
    """

    def __init__(self, initial: Optional[ConversationState] = None):
        self._state = initial or ConversationState()
        self._listeners: List[StateListener] = []

    def get_state(self) -> ConversationState:
        return self._state

    def dispatch(self, event: StateEvent) -> ConversationState:
        previous = self._state
        self._state = reduce(previous, event)
        if self._state is previous:
            return self._state
        for listener in list(self._listeners):
            try:
                listener(self._state, event)
            except Exception as e:
                logger.error(
                    f"State listener failed: {e}",
                    extra={"extra": {"event": type(event).__name__}},
                )
        return self._state

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe
