"""Chat streaming package."""

from .decoder import StreamDecoder
from .emitter import EventEmitter
from .heartbeat import HeartbeatManager
from .loop import LoopOptions, OrchestrationLoop
from .tooling import ToolInvoker
from .transport import BufferTransport, QueueTransport
from .types import CitationSet, RunResult, StreamTransport, ToolExecutionResult

__all__ = [
    "BufferTransport",
    "CitationSet",
    "EventEmitter",
    "HeartbeatManager",
    "LoopOptions",
    "OrchestrationLoop",
    "QueueTransport",
    "RunResult",
    "StreamDecoder",
    "StreamTransport",
    "ToolExecutionResult",
    "ToolInvoker",
]
