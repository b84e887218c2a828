"""Client transports the event emitter writes to."""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Callable


logger = logging.getLogger(__name__)


class _DisconnectNotifier:
    def __init__(self) -> None:
        self._callbacks: list[Callable[[], None]] = []
        self.disconnected = False

    def register(self, callback: Callable[[], None]) -> None:
        if self.disconnected:
            callback()
            return
        self._callbacks.append(callback)

    def fire(self) -> None:
        if self.disconnected:
            return
        self.disconnected = True
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception:  # pragma: no cover - callbacks must not block teardown
                logger.exception("Disconnect callback failed")


class QueueTransport:
    """Bridge emitter writes to a streaming HTTP response body.

    ``frames()`` is handed to the response. If the response stops consuming
    before ``end()`` was reached, the client went away: the transport is
    marked disconnected and disconnect callbacks run once.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[str | None] = asyncio.Queue()
        self._ended = False
        self._drained = False
        self._notifier = _DisconnectNotifier()

    @property
    def closed(self) -> bool:
        return self._ended or self._notifier.disconnected

    @property
    def disconnected(self) -> bool:
        return self._notifier.disconnected

    def write(self, frame: str) -> None:
        if self.closed:
            return
        self._queue.put_nowait(frame)

    def end(self) -> None:
        if self.closed:
            return
        self._ended = True
        self._queue.put_nowait(None)

    def on_disconnect(self, callback: Callable[[], None]) -> None:
        self._notifier.register(callback)

    def disconnect(self) -> None:
        if self._drained:
            return
        logger.info("Client disconnected before the stream finished")
        self._notifier.fire()

    async def frames(self) -> AsyncIterator[bytes]:
        try:
            while True:
                frame = await self._queue.get()
                if frame is None:
                    self._drained = True
                    return
                yield frame.encode("utf-8")
        finally:
            if not self._drained:
                self.disconnect()


class BufferTransport:
    """Collect frames in memory."""

    def __init__(self) -> None:
        self.frames: list[str] = []
        self.end_calls = 0
        self._ended = False
        self._notifier = _DisconnectNotifier()

    @property
    def closed(self) -> bool:
        return self._ended or self._notifier.disconnected

    def write(self, frame: str) -> None:
        if self.closed:
            return
        self.frames.append(frame)

    def end(self) -> None:
        self.end_calls += 1
        self._ended = True

    def on_disconnect(self, callback: Callable[[], None]) -> None:
        self._notifier.register(callback)

    def disconnect(self) -> None:
        self._notifier.fire()


__all__ = ["BufferTransport", "QueueTransport"]
