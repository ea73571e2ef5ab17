"""
Cross-surface messaging between a management surface and the page controller.

Requests are plain dicts carrying a ``type``. The page side answers each
recognised request exactly once; unknown requests get ``None``.
"""

from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple
import asyncio
import logging

logger = logging.getLogger(__name__)

TOGGLE = "PAGEPATCH_TOGGLE"
TOGGLE_ACK = "PAGEPATCH_TOGGLE_ACK"
GET_STATE = "PAGEPATCH_GET_STATE"
STATE = "PAGEPATCH_STATE"
REAPPLY = "PAGEPATCH_REAPPLY"

Message = Dict[str, Any]
Handler = Callable[[Message], Awaitable[Optional[Message]]]


def toggle_message(enable: bool) -> Message:
    return {"type": TOGGLE, "enable": bool(enable)}


def get_state_message() -> Message:
    return {"type": GET_STATE}


def reapply_message() -> Message:
    return {"type": REAPPLY}


class MessageChannel:
    """
    Request/response queue between surfaces sharing one event loop.

    The requesting side awaits ``request()``; the page side calls
    ``serve(handler)`` from its loop to answer everything queued so far.

    Example:
        >>> channel = MessageChannel()
        >>> response = await channel.request(get_state_message())
    """

    def __init__(self):
        self._queue: "asyncio.Queue[Tuple[Message, asyncio.Future]]" = asyncio.Queue()

    async def request(self, message: Message, timeout: Optional[float] = None) -> Optional[Message]:
        future = asyncio.get_running_loop().create_future()
        await self._queue.put((message, future))
        if timeout is None:
            return await future
        return await asyncio.wait_for(future, timeout)

    @property
    def waiting(self) -> int:
        return self._queue.qsize()

    async def serve(self, handler: Handler) -> int:
        """Answer every queued request. Returns how many were served."""
        served = 0
        while not self._queue.empty():
            message, future = self._queue.get_nowait()
            served += 1
            if future.done():
                continue
            try:
                response = await handler(message)
            except Exception as e:
                kind = message.get("type") if isinstance(message, dict) else message
                logger.warning(f"[MessageChannel] Handler failed for {kind!r}: {e}")
                if not future.done():
                    future.set_exception(e)
                continue
            # The requester may have timed out while the handler ran.
            if not future.done():
                future.set_result(response)
        return served

    def drain_unanswered(self) -> List[Message]:
        """Drop pending requests, resolving them with None (session ending)."""
        dropped = []
        while not self._queue.empty():
            message, future = self._queue.get_nowait()
            if not future.done():
                future.set_result(None)
            dropped.append(message)
        return dropped
