"""Server-sent event framing for the client connection."""

from __future__ import annotations

import json
import logging
from typing import Any, Iterable

from .types import StreamTransport


logger = logging.getLogger(__name__)

HEARTBEAT_FRAME = ":\n\n"
TERMINAL_EVENTS = frozenset({"done", "error"})


def encode_event(event: str, payload: Any) -> str:
    """Render one event frame; strings are sent raw, everything else as JSON."""

    data = (
        payload
        if isinstance(payload, str)
        else json.dumps(payload, ensure_ascii=False, default=str)
    )
    data_lines = "".join(f"data: {line}\n" for line in data.split("\n"))
    return f"event: {event}\n{data_lines}\n"


def decode_frames(frames: Iterable[str]) -> list[tuple[str, Any]]:
    """Parse emitted frames back into ``(event, payload)`` pairs.

    Heartbeat comments are skipped. JSON payloads are decoded; anything else
    is returned as the raw string.
    """

    events: list[tuple[str, Any]] = []
    for frame in frames:
        event_name: str | None = None
        data_lines: list[str] = []
        for line in frame.split("\n"):
            if not line or line.startswith(":"):
                continue
            field, _, value = line.partition(":")
            value = value[1:] if value.startswith(" ") else value
            if field == "event":
                event_name = value
            elif field == "data":
                data_lines.append(value)
        if event_name is None:
            continue
        raw = "\n".join(data_lines)
        try:
            payload: Any = json.loads(raw)
        except json.JSONDecodeError:
            payload = raw
        events.append((event_name, payload))
    return events


class EventEmitter:
    """Write named events to the transport in emission order.

    Exactly one terminal event (``done`` or ``error``) is ever written; the
    transport is ended right after it. Writes after the terminal event or
    after the transport went away are dropped.
    """

    def __init__(self, transport: StreamTransport) -> None:
        self._transport = transport
        self._terminal: str | None = None
        self._written = 0

    @property
    def terminal(self) -> str | None:
        return self._terminal

    @property
    def finished(self) -> bool:
        return self._terminal is not None or self._transport.closed

    @property
    def written(self) -> int:
        return self._written

    def emit(self, event: str, payload: Any) -> bool:
        if event in TERMINAL_EVENTS:
            return self._emit_terminal(event, payload)
        return self._write(encode_event(event, payload), event)

    def heartbeat(self) -> bool:
        return self._write(HEARTBEAT_FRAME, "heartbeat")

    def content(self, delta: str) -> bool:
        return self.emit("content", {"delta": delta})

    def status(self, message: str) -> bool:
        return self.emit("status", {"message": message})

    def tool_call(self, tool: str, args: Any) -> bool:
        return self.emit("tool_call", {"tool": tool, "args": args})

    def tool_result(self, tool: str, result: Any) -> bool:
        return self.emit("tool_result", {"tool": tool, "result": result})

    def tool_error(self, tool: str, error: str) -> bool:
        return self.emit("tool_error", {"tool": tool, "error": error})

    def done(self, citations: list[str]) -> bool:
        return self.emit("done", {"citations": list(citations)})

    def error(self, message: str) -> bool:
        return self.emit("error", {"message": message})

    def close(self) -> None:
        """End the transport without a terminal event (used on teardown)."""

        if not self._transport.closed:
            self._transport.end()

    def _emit_terminal(self, event: str, payload: Any) -> bool:
        if self._terminal is not None:
            logger.warning(
                "Dropping %s event; stream already terminated with %s",
                event,
                self._terminal,
            )
            return False
        self._terminal = event
        written = self._write(encode_event(event, payload), event, terminal=True)
        self.close()
        return written

    def _write(self, frame: str, label: str, *, terminal: bool = False) -> bool:
        if self._transport.closed or (self._terminal is not None and not terminal):
            logger.debug("Dropping %s frame for closed stream", label)
            return False
        try:
            self._transport.write(frame)
        except (OSError, RuntimeError) as exc:
            logger.warning("Failed to write %s frame: %s", label, exc)
            return False
        self._written += 1
        return True


__all__ = [
    "EventEmitter",
    "HEARTBEAT_FRAME",
    "TERMINAL_EVENTS",
    "decode_frames",
    "encode_event",
]
