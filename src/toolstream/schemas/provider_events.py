"""Typed provider stream events.

The provider streams a heterogeneous sequence of JSON events. Each known
``type`` maps to exactly one model below; anything else parses to
:class:`IgnoredEvent` so consumers can match exhaustively.
"""

from __future__ import annotations

import logging
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

logger = logging.getLogger(__name__)


class _ProviderEventModel(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class OutputItemAdded(_ProviderEventModel):
    type: Literal["response.output_item.added"]
    output_index: Optional[int] = None
    item: dict[str, Any]


class OutputTextDelta(_ProviderEventModel):
    type: Literal["response.output_text.delta"]
    item_id: Optional[str] = None
    delta: str = ""


class FunctionCallArgumentsDelta(_ProviderEventModel):
    type: Literal["response.function_call_arguments.delta"]
    item_id: Optional[str] = None
    call_id: Optional[str] = None
    delta: str = ""


class FunctionCallArgumentsDone(_ProviderEventModel):
    type: Literal["response.function_call_arguments.done"]
    item_id: Optional[str] = None
    call_id: Optional[str] = None
    name: Optional[str] = None
    arguments: Optional[str] = None


class OutputItemDone(_ProviderEventModel):
    type: Literal["response.output_item.done"]
    output_index: Optional[int] = None
    item: dict[str, Any]


class ResponseCompleted(_ProviderEventModel):
    type: Literal["response.completed"]
    response: dict[str, Any] = Field(default_factory=dict)

    @property
    def output(self) -> list[dict[str, Any]]:
        items = self.response.get("output")
        if not isinstance(items, list):
            return []
        return [item for item in items if isinstance(item, dict)]


class ResponseFailed(_ProviderEventModel):
    type: Literal["response.failed"]
    response: dict[str, Any] = Field(default_factory=dict)

    @property
    def message(self) -> str:
        error = self.response.get("error")
        if isinstance(error, dict) and isinstance(error.get("message"), str):
            return error["message"]
        return "Model response failed"


class StreamError(_ProviderEventModel):
    type: Literal["error"]
    code: Optional[str] = None
    message: Optional[str] = None


class IgnoredEvent(_ProviderEventModel):
    type: str = ""


KnownProviderEvent = Annotated[
    Union[
        OutputItemAdded,
        OutputTextDelta,
        FunctionCallArgumentsDelta,
        FunctionCallArgumentsDone,
        OutputItemDone,
        ResponseCompleted,
        ResponseFailed,
        StreamError,
    ],
    Field(discriminator="type"),
]

ProviderEvent = Union[
    OutputItemAdded,
    OutputTextDelta,
    FunctionCallArgumentsDelta,
    FunctionCallArgumentsDone,
    OutputItemDone,
    ResponseCompleted,
    ResponseFailed,
    StreamError,
    IgnoredEvent,
]

_KNOWN_TYPES = frozenset(
    {
        "response.output_item.added",
        "response.output_text.delta",
        "response.function_call_arguments.delta",
        "response.function_call_arguments.done",
        "response.output_item.done",
        "response.completed",
        "response.failed",
        "error",
    }
)

_adapter: TypeAdapter[Any] = TypeAdapter(KnownProviderEvent)


def parse_provider_event(payload: Any) -> ProviderEvent:
    """Return the typed event for a decoded JSON payload."""

    if not isinstance(payload, dict):
        return IgnoredEvent()
    event_type = payload.get("type")
    if event_type not in _KNOWN_TYPES:
        return IgnoredEvent(type=event_type if isinstance(event_type, str) else "")
    try:
        return _adapter.validate_python(payload)
    except ValidationError as exc:
        logger.debug("Skipping malformed %s event: %s", event_type, exc)
        return IgnoredEvent(type=event_type)


__all__ = [
    "FunctionCallArgumentsDelta",
    "FunctionCallArgumentsDone",
    "IgnoredEvent",
    "OutputItemAdded",
    "OutputItemDone",
    "OutputTextDelta",
    "ProviderEvent",
    "ResponseCompleted",
    "ResponseFailed",
    "StreamError",
    "parse_provider_event",
]
