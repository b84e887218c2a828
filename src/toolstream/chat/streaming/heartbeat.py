"""Keep-alive frames for long-lived streaming connections."""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from typing import Callable


logger = logging.getLogger(__name__)


class HeartbeatManager:
    """Write a keep-alive immediately, then once per interval until cleaned up.

    ``cleanup()`` is synchronous and idempotent so it can be called from the
    normal exit path, the error path and a transport disconnect callback.
    """

    def __init__(self, beat: Callable[[], bool], *, interval: float = 15.0) -> None:
        if interval <= 0:
            raise ValueError("Heartbeat interval must be positive")
        self._beat = beat
        self._interval = interval
        self._task: asyncio.Task[None] | None = None
        self._started = False
        self._cleaned = False
        self.beats = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def cleaned(self) -> bool:
        return self._cleaned

    def start(self) -> None:
        if self._started or self._cleaned:
            return
        self._started = True
        if not self._send():
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    def cleanup(self) -> None:
        if self._cleaned:
            return
        self._cleaned = True
        if self._task is not None and not self._task.done():
            self._task.cancel()
        logger.debug("Heartbeat stopped after %d beat(s)", self.beats)

    async def aclose(self) -> None:
        self.cleanup()
        if self._task is not None:
            with suppress(asyncio.CancelledError):
                await self._task

    async def __aenter__(self) -> "HeartbeatManager":
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def _run(self) -> None:
        while not self._cleaned:
            await asyncio.sleep(self._interval)
            if self._cleaned or not self._send():
                return

    def _send(self) -> bool:
        if not self._beat():
            return False
        self.beats += 1
        return True


__all__ = ["HeartbeatManager"]
