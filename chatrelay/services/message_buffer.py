"""Coalesce rapid message fragments from one sender into a single turn.

Each submission cancels the sender's pending flush timer and starts a new wait
window, capped by an absolute ceiling measured from the first fragment. The
previous caller is told it was superseded; only the latest caller receives the
combined text.
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union

from chatrelay.logging_config import get_logger

logger = get_logger("message_buffer")

DEFAULT_WAIT_SECONDS = 2.5
DEFAULT_MAX_WAIT_SECONDS = 10.0


class BufferSignal(str, Enum):
    SUPERSEDED = "superseded"


@dataclass
class BufferedTurn:
    combined_text: str
    fragment_count: int
    context: Any = None


@dataclass
class PendingTurn:
    key: str
    first_fragment_at: float
    fragments: list[str] = field(default_factory=list)
    last_context: Any = None
    timer: Optional[asyncio.TimerHandle] = None
    waiter: Optional[asyncio.Future] = None


BufferOutcome = Union[BufferedTurn, BufferSignal]


class MessageBuffer:
    def __init__(
        self,
        wait_seconds: float = DEFAULT_WAIT_SECONDS,
        max_wait_seconds: float = DEFAULT_MAX_WAIT_SECONDS,
        separator: str = " ",
    ):
        self.wait_seconds = wait_seconds
        self.max_wait_seconds = max_wait_seconds
        self.separator = separator
        self._buffers: dict[str, PendingTurn] = {}

    def configure(
        self,
        *,
        wait_seconds: Optional[float] = None,
        max_wait_seconds: Optional[float] = None,
    ) -> None:
        if wait_seconds is not None and wait_seconds > 0:
            self.wait_seconds = wait_seconds
        if max_wait_seconds is not None and max_wait_seconds > 0:
            self.max_wait_seconds = max_wait_seconds
        logger.info(
            "Buffer config updated",
            extra={"context": {"wait_seconds": self.wait_seconds, "max_wait_seconds": self.max_wait_seconds}},
        )

    async def submit(self, key: str, fragment: str, context: Any = None) -> BufferOutcome:
        """Add a fragment and wait until the sender stops typing.

        Returns the combined turn, or BufferSignal.SUPERSEDED when a later
        fragment for the same key took over.
        """
        loop = asyncio.get_running_loop()
        now = loop.time()

        pending = self._buffers.get(key)
        if pending is None:
            pending = PendingTurn(key=key, first_fragment_at=now)
            self._buffers[key] = pending

        pending.fragments.append(fragment.strip())
        pending.last_context = context

        if pending.timer is not None:
            pending.timer.cancel()
            pending.timer = None

        if pending.waiter is not None and not pending.waiter.done():
            pending.waiter.set_result(BufferSignal.SUPERSEDED)

        waiter = loop.create_future()
        pending.waiter = waiter

        remaining = self.max_wait_seconds - (now - pending.first_fragment_at)
        delay = min(self.wait_seconds, remaining)
        if delay <= 0:
            self._flush(key)
        else:
            pending.timer = loop.call_later(delay, self._flush, key)

        return await waiter

    def _flush(self, key: str) -> None:
        pending = self._buffers.pop(key, None)
        if pending is None:
            return
        if pending.timer is not None:
            pending.timer.cancel()

        turn = BufferedTurn(
            combined_text=self.separator.join(pending.fragments),
            fragment_count=len(pending.fragments),
            context=pending.last_context,
        )
        logger.info(
            f"Buffer flushed: {turn.fragment_count} fragment(s)",
            extra={"context": {"key": key, "preview": turn.combined_text[:50]}},
        )
        if pending.waiter is not None and not pending.waiter.done():
            pending.waiter.set_result(turn)

    def cancel(self, key: str) -> bool:
        """Drop a sender's buffer; the waiting caller is settled as superseded."""
        pending = self._buffers.pop(key, None)
        if pending is None:
            return False
        if pending.timer is not None:
            pending.timer.cancel()
        if pending.waiter is not None and not pending.waiter.done():
            pending.waiter.set_result(BufferSignal.SUPERSEDED)
        return True

    def has_pending(self, key: str) -> bool:
        return key in self._buffers

    def stats(self) -> dict:
        return {
            "active_buffers": len(self._buffers),
            "wait_seconds": self.wait_seconds,
            "max_wait_seconds": self.max_wait_seconds,
        }
