"""Cooperative shutdown signal shared by the receive loop and handlers."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional


LOGGER = logging.getLogger(__name__)


class ShutdownSignal:
    """Delayed, one-shot stop request.

    Handlers call :meth:`request`; after ``delay`` seconds the event is set and
    every subscribed callback runs once.
    """

    def __init__(self, delay: float = 1.0) -> None:
        self.delay = delay
        self._event = asyncio.Event()
        self._callbacks: list[Callable[[], None]] = []
        self._handle: Optional[asyncio.TimerHandle] = None

    @property
    def requested(self) -> bool:
        return self._handle is not None or self._event.is_set()

    @property
    def is_set(self) -> bool:
        return self._event.is_set()

    def subscribe(self, callback: Callable[[], None]) -> None:
        self._callbacks.append(callback)

    def request(self, delay: Optional[float] = None) -> None:
        """Schedule the stop. Repeated requests are ignored."""

        if self.requested:
            return
        wait = self.delay if delay is None else delay
        loop = asyncio.get_running_loop()
        LOGGER.info("Shutdown requested, stopping in %.1f s", wait)
        self._handle = loop.call_later(wait, self._fire)

    def _fire(self) -> None:
        self._event.set()
        for callback in self._callbacks:
            try:
                callback()
            except Exception:  # pragma: no cover - callbacks come from the transport
                LOGGER.exception("Shutdown callback %r failed", callback)

    async def wait(self) -> None:
        await self._event.wait()
