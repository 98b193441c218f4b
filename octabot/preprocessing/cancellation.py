"""协作式取消令牌。

附件被移除或随消息发送时，预处理协调器调用 cancel()；
轮询循环在每次等待时通过 sleep() 感知取消并立即退出；
一次性的 HTTP 调用则通过 run() 包装，取消时直接中止该调用。
"""

import asyncio
from typing import Awaitable, Optional, TypeVar

from octabot.domain.exceptions import OperationCancelled


T = TypeVar("T")


class CancellationToken:
    def __init__(self, reason: Optional[str] = None):
        self._event = asyncio.Event()
        self.reason = reason

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled") -> None:
        self.reason = reason
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelled(code="OPERATION_CANCELLED", message=self.reason or "cancelled")

    async def sleep(self, seconds: float) -> None:
        """等待 seconds 秒；期间被取消则抛出 OperationCancelled。"""

        self.raise_if_cancelled()
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return
        self.raise_if_cancelled()

    async def run(self, awaitable: Awaitable[T]) -> T:
        """执行 awaitable；令牌先于调用结束被取消时，中止调用并抛出 OperationCancelled。"""

        call = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({call, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            call.cancel()
            raise
        finally:
            waiter.cancel()

        if not call.done():
            call.cancel()
            await asyncio.gather(call, return_exceptions=True)
            self.raise_if_cancelled()
        return call.result()
