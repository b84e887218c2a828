"""Decode one iteration of the provider stream into text and tool calls."""

from __future__ import annotations

import logging
from typing import Any

from ...schemas.provider_events import (
    FunctionCallArgumentsDelta,
    FunctionCallArgumentsDone,
    IgnoredEvent,
    OutputItemAdded,
    OutputItemDone,
    OutputTextDelta,
    ProviderEvent,
    ResponseCompleted,
    ResponseFailed,
    StreamError,
)
from .types import ConversationItem, ToolCallFragment


logger = logging.getLogger(__name__)

_TEXT_PART_TYPES = {"output_text", "text"}


class StreamDecoder:
    """Accumulate one iteration's text buffer and tool-call fragments.

    Fragments are keyed by the call's ``call_id``. Argument deltas that only
    carry an ``item_id`` are resolved through the id announced when the item
    was added, so interleaved calls never share a buffer.
    """

    def __init__(self) -> None:
        self._text_parts: list[str] = []
        self._text_delta_count = 0
        self._fragments: dict[str, ToolCallFragment] = {}
        self._item_to_call: dict[str, str] = {}
        self._done_items: list[ConversationItem] = []
        self._completed_output: list[ConversationItem] | None = None
        self.completed = False

    def feed(self, event: ProviderEvent) -> str | None:
        """Apply one event; return a text delta to forward, if any."""

        if isinstance(event, OutputTextDelta):
            if not event.delta:
                return None
            self._text_parts.append(event.delta)
            self._text_delta_count += 1
            return event.delta
        if isinstance(event, OutputItemAdded):
            self._on_item_added(event.item)
        elif isinstance(event, FunctionCallArgumentsDelta):
            fragment = self._fragment_for(event.call_id, event.item_id)
            if fragment.complete:
                logger.debug(
                    "Ignoring late argument delta for completed call %s",
                    fragment.call_id,
                )
            else:
                fragment.arguments_text += event.delta
        elif isinstance(event, FunctionCallArgumentsDone):
            fragment = self._fragment_for(event.call_id, event.item_id)
            self._apply_terminal(fragment, event.name, event.arguments)
        elif isinstance(event, OutputItemDone):
            self._on_item_done(event.item)
        elif isinstance(event, ResponseCompleted):
            self._completed_output = event.output
            self.completed = True
        elif isinstance(event, (ResponseFailed, StreamError, IgnoredEvent)):
            # Failures are raised by the provider client before reaching us.
            pass
        return None

    @property
    def text(self) -> str:
        return "".join(self._text_parts)

    @property
    def text_delta_count(self) -> int:
        return self._text_delta_count

    @property
    def tool_calls(self) -> list[ToolCallFragment]:
        """Tool calls in discovery order."""

        return list(self._fragments.values())

    def output_items(self) -> list[ConversationItem]:
        """Raw output items to replay to the model on the next iteration."""

        if self._completed_output:
            items = [dict(item) for item in self._completed_output]
        elif self._done_items:
            items = [dict(item) for item in self._done_items]
        else:
            items = []
            if self._text_parts:
                items.append(
                    {
                        "type": "message",
                        "role": "assistant",
                        "content": [{"type": "output_text", "text": self.text}],
                    }
                )

        seen_calls = {
            item.get("call_id")
            for item in items
            if item.get("type") == "function_call"
        }
        for fragment in self._fragments.values():
            if fragment.call_id not in seen_calls:
                items.append(fragment.to_output_item())
        return items

    def fallback_text(self) -> str | None:
        """Recover text from completed message items when no deltas arrived."""

        if self._text_delta_count:
            return None
        segments: list[str] = []
        for item in self.output_items():
            if item.get("type") != "message":
                continue
            if item.get("role") not in (None, "assistant"):
                continue
            content = item.get("content")
            if isinstance(content, str):
                segments.append(content)
                continue
            if not isinstance(content, list):
                continue
            for part in content:
                if (
                    isinstance(part, dict)
                    and part.get("type") in _TEXT_PART_TYPES
                    and isinstance(part.get("text"), str)
                ):
                    segments.append(part["text"])
        recovered = "".join(segments)
        if not recovered:
            return None
        self._text_parts.append(recovered)
        return recovered

    def _on_item_added(self, item: dict[str, Any]) -> None:
        if item.get("type") != "function_call":
            return
        fragment = self._fragment_for(item.get("call_id"), item.get("id"))
        name = item.get("name")
        if isinstance(name, str) and name:
            fragment.name = name
        arguments = item.get("arguments")
        if isinstance(arguments, str) and arguments and not fragment.arguments_text:
            fragment.arguments_text = arguments

    def _on_item_done(self, item: dict[str, Any]) -> None:
        self._done_items.append(item)
        if item.get("type") != "function_call":
            return
        fragment = self._fragment_for(item.get("call_id"), item.get("id"))
        if not fragment.complete:
            self._apply_terminal(fragment, item.get("name"), item.get("arguments"))

    def _apply_terminal(
        self,
        fragment: ToolCallFragment,
        name: Any,
        arguments: Any,
    ) -> None:
        # The terminal payload replaces whatever the deltas accumulated.
        if isinstance(name, str) and name:
            fragment.name = name
        if isinstance(arguments, str):
            fragment.arguments_text = arguments
        fragment.complete = True

    def _fragment_for(
        self, call_id: str | None, item_id: str | None
    ) -> ToolCallFragment:
        if call_id and item_id and call_id not in self._fragments:
            provisional = self._item_to_call.get(item_id)
            if provisional is not None and provisional != call_id:
                self._rekey(provisional, call_id)
        resolved = call_id or (item_id and self._item_to_call.get(item_id)) or item_id
        if not resolved:
            resolved = f"call_{len(self._fragments)}"
            logger.warning(
                "Tool call event without call or item id; assigned %s", resolved
            )
        fragment = self._fragments.get(resolved)
        if fragment is None:
            fragment = ToolCallFragment(call_id=resolved, item_id=item_id)
            self._fragments[resolved] = fragment
        elif item_id and fragment.item_id is None:
            fragment.item_id = item_id
        if item_id:
            self._item_to_call[item_id] = resolved
        return fragment

    def _rekey(self, old_key: str, new_key: str) -> None:
        """Move a fragment first seen by item id under its real call id."""

        rebuilt: dict[str, ToolCallFragment] = {}
        for key, fragment in self._fragments.items():
            if key == old_key:
                fragment.call_id = new_key
                key = new_key
            rebuilt[key] = fragment
        self._fragments = rebuilt
        for item_id, call_id in list(self._item_to_call.items()):
            if call_id == old_key:
                self._item_to_call[item_id] = new_key


__all__ = ["StreamDecoder"]
