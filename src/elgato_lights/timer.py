"""One-shot timers on the running asyncio loop."""

from __future__ import annotations

import asyncio
from typing import Callable, Protocol


class Timer(Protocol):
    def schedule(self, delay_ms: int, callback: Callable[[], None]) -> object: ...

    def cancel(self, handle: object) -> None: ...


class LoopTimer:
    """Timer backed by ``loop.call_later``.

    Under the GLib event loop policy this ends up as a GLib timeout source,
    so it fires on the same thread as D-Bus signal callbacks.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None):
        self._loop = loop

    def schedule(self, delay_ms: int, callback: Callable[[], None]) -> asyncio.TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(delay_ms / 1000, callback)

    def cancel(self, handle: asyncio.TimerHandle) -> None:
        handle.cancel()
