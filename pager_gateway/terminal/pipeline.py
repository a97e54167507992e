"""
Frame Coalescer

Batches terminal output into fixed-interval frames (~60fps) so a chatty
process cannot flood the operator's connection.

    push("a") ─┐
    push("b") ─┼─► buffer ──(one timer, 16ms)──► on_frame("abc")
    push("c") ─┘

At most one emission is scheduled at a time; pushes that arrive while a
timer is pending only extend the buffer. Must be driven from the event loop
that runs the timer.
"""

import asyncio
from collections.abc import Callable

from loguru import logger

from ..constants import FRAME_INTERVAL_SECONDS


class FrameCoalescer:
    """Coalesces pushed text chunks into frames delivered to ``on_frame``."""

    def __init__(
        self,
        on_frame: Callable[[str], None],
        interval: float = FRAME_INTERVAL_SECONDS,
    ) -> None:
        self._on_frame = on_frame
        self._interval = interval
        self._buffer: list[str] = []
        self._timer: asyncio.TimerHandle | None = None
        self._stopped = False

    @property
    def scheduled(self) -> bool:
        return self._timer is not None

    @property
    def stopped(self) -> bool:
        return self._stopped

    def push(self, chunk: str) -> None:
        """Append a chunk; schedule an emission unless one is already pending."""
        self._buffer.append(chunk)

        if self._timer is None and not self._stopped:
            loop = asyncio.get_running_loop()
            self._timer = loop.call_later(self._interval, self.flush)

    def flush(self) -> None:
        """Emit everything buffered since the last frame, right now."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

        if not self._buffer:
            return

        data = "".join(self._buffer)
        self._buffer.clear()
        self._on_frame(data)

    def stop(self) -> None:
        """
        Flush and stop scheduling.

        Later pushes are still buffered but only leave through an explicit
        flush().
        """
        self._stopped = True
        self.flush()
        logger.debug("[FrameCoalescer] Stopped")
