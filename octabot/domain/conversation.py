"""会话状态、状态事件与状态转移函数。

会话状态是不可变对象，所有变化都通过 ``reduce(state, event) -> state`` 产生新状态；
渲染层通过 ConversationStore.subscribe 注册回调，在每次状态变化后收到完整快照。
"""

from dataclasses import dataclass, replace
from typing import Callable, Literal, Optional, Protocol, Tuple, Union

from .models import Attachment, Message


TurnPhase = Literal[
    "idle",
    "composing",
    "sending",
    "awaiting_primary_response",
    "awaiting_image_generation",
]

# 可以发起新一轮对话的阶段
RESTING_PHASES = ("idle", "composing")


@dataclass(frozen=True)
class ConversationState:
    """一次会话在某一时刻的完整快照。

    - messages: 只追加的消息序列。
    - input_text: 输入框中的草稿。
    - attachment: 当前附件（最多一个）。
    - phase: 当前轮次所处阶段。
    """

    messages: Tuple[Message, ...] = ()
    input_text: str = ""
    attachment: Optional[Attachment] = None
    phase: TurnPhase = "idle"

    @property
    def is_busy(self) -> bool:
        return self.phase not in RESTING_PHASES


# ---- 事件 ----


@dataclass(frozen=True)
class InputChanged:
    text: str


@dataclass(frozen=True)
class AttachmentAdded:
    attachment: Attachment


@dataclass(frozen=True)
class AttachmentAnalyzed:
    """分析结束。id 与当前附件不一致时（附件已被移除/发送）忽略。"""

    attachment: Attachment


@dataclass(frozen=True)
class AttachmentRemoved:
    attachment_id: str


@dataclass(frozen=True)
class TurnStarted:
    """追加用户消息，清空输入与附件，进入 sending。"""

    user_message: Message


@dataclass(frozen=True)
class PhaseChanged:
    phase: TurnPhase


@dataclass(frozen=True)
class TurnCompleted:
    reply: Message


@dataclass(frozen=True)
class TurnFailed:
    error_message: Message


StateEvent = Union[
    InputChanged,
    AttachmentAdded,
    AttachmentAnalyzed,
    AttachmentRemoved,
    TurnStarted,
    PhaseChanged,
    TurnCompleted,
    TurnFailed,
]


def _resting_phase(input_text: str, attachment: Optional[Attachment]) -> TurnPhase:
    if input_text.strip() or attachment is not None:
        return "composing"
    return "idle"


def _settle(state: ConversationState, **changes) -> ConversationState:
    """更新字段；若处于空闲阶段，则根据草稿重新计算 idle/composing。"""

    new_state = replace(state, **changes)
    if new_state.phase in RESTING_PHASES:
        new_state = replace(new_state, phase=_resting_phase(new_state.input_text, new_state.attachment))
    return new_state


def reduce(state: ConversationState, event: StateEvent) -> ConversationState:
    """状态转移函数：根据事件返回新状态，不修改旧状态。"""

    if isinstance(event, InputChanged):
        return _settle(state, input_text=event.text)

    if isinstance(event, AttachmentAdded):
        return _settle(state, attachment=event.attachment)

    if isinstance(event, AttachmentAnalyzed):
        if state.attachment is None or state.attachment.id != event.attachment.id:
            return state
        return _settle(state, attachment=event.attachment)

    if isinstance(event, AttachmentRemoved):
        if state.attachment is None or state.attachment.id != event.attachment_id:
            return state
        return _settle(state, attachment=None)

    if isinstance(event, TurnStarted):
        if state.is_busy:
            return state
        return replace(
            state,
            messages=state.messages + (event.user_message,),
            input_text="",
            attachment=None,
            phase="sending",
        )

    if isinstance(event, PhaseChanged):
        return replace(state, phase=event.phase)

    if isinstance(event, TurnCompleted):
        return _settle(state, messages=state.messages + (event.reply,), phase="idle")

    if isinstance(event, TurnFailed):
        return _settle(state, messages=state.messages + (event.error_message,), phase="idle")

    raise TypeError(f"Unknown state event: {event!r}")


StateListener = Callable[[ConversationState, StateEvent], None]


class ConversationStore(Protocol):
    def get_state(self) -> ConversationState:
        ...

    def dispatch(self, event: StateEvent) -> ConversationState:
        ...

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        ...
