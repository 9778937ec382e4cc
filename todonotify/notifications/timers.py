"""
Cancellable timers on the asyncio event loop.

The stream client's reconnect backoff, toast auto-expiry and native
notification auto-close all schedule work through a ``TimerService`` so a
test can swap in a manual clock.
"""

import asyncio
import logging
from typing import Callable, Optional, Protocol

logger = logging.getLogger(__name__)


class TimerHandle(Protocol):
    def cancel(self) -> None: ...

    def cancelled(self) -> bool: ...


class TimerService:
    """Schedules callbacks on the running event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is not None:
            return self._loop
        return asyncio.get_running_loop()

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TimerHandle:
        """Run *callback* after *delay_ms* milliseconds.

        Must be called from inside the event loop when no loop was given to
        the constructor.
        """
        return self._get_loop().call_later(delay_ms / 1000.0, callback)

    def now_ms(self) -> float:
        return self._get_loop().time() * 1000.0
