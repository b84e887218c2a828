"""Type definitions for the chat streaming subsystem."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable, Iterable, Iterator, Mapping, Protocol

from ...schemas.provider_events import ProviderEvent


ConversationItem = dict[str, Any]
ToolFunction = Callable[[dict[str, Any]], Awaitable[Any]]
ToolMap = Mapping[str, ToolFunction]


class ModelProvider(Protocol):
    def stream_response(
        self, payload: dict[str, Any]
    ) -> AsyncIterator[ProviderEvent]:
        ...


class StreamTransport(Protocol):
    @property
    def closed(self) -> bool:
        ...

    def write(self, frame: str) -> None:
        ...

    def end(self) -> None:
        ...

    def on_disconnect(self, callback: Callable[[], None]) -> None:
        ...


@dataclass
class ToolCallFragment:
    call_id: str
    name: str = ""
    arguments_text: str = ""
    item_id: str | None = None
    # Set once the terminal arguments payload has been applied.
    complete: bool = False

    def to_output_item(self) -> ConversationItem:
        item: ConversationItem = {
            "type": "function_call",
            "call_id": self.call_id,
            "name": self.name,
            "arguments": self.arguments_text,
        }
        if self.item_id:
            item["id"] = self.item_id
        return item


@dataclass
class ToolExecutionResult:
    output: Any
    citations: list[str] | None = None


@dataclass
class ToolOutcome:
    """What one tool call contributed to the conversation."""

    call_id: str
    tool: str
    output_item: ConversationItem
    citations: list[str] = field(default_factory=list)
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


class CitationSet:
    """Insertion-ordered set of citation strings, deduplicated by exact match."""

    __slots__ = ("_items",)

    def __init__(self, citations: Iterable[str] | None = None) -> None:
        self._items: dict[str, None] = {}
        if citations:
            self.update(citations)

    def add(self, citation: str) -> bool:
        if not isinstance(citation, str) or citation in self._items:
            return False
        self._items[citation] = None
        return True

    def update(self, citations: Iterable[str]) -> int:
        return sum(1 for citation in citations if self.add(citation))

    def as_list(self) -> list[str]:
        return list(self._items)

    def __contains__(self, citation: object) -> bool:
        return citation in self._items

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._items))

    def __len__(self) -> int:
        return len(self._items)


@dataclass
class RunResult:
    text: str
    citations: list[str]
    iterations: int


__all__ = [
    "CitationSet",
    "ConversationItem",
    "ModelProvider",
    "RunResult",
    "StreamTransport",
    "ToolCallFragment",
    "ToolExecutionResult",
    "ToolFunction",
    "ToolMap",
    "ToolOutcome",
]
