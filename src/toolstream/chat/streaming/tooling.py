"""Tool execution helpers for the orchestration loop."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Mapping, Sequence

from pydantic import ValidationError

from ...errors import ToolExecutionError, ToolValidationError
from .arguments import ValidatedArguments, parse_arguments, validate_arguments
from .emitter import EventEmitter
from .types import (
    ConversationItem,
    ToolCallFragment,
    ToolExecutionResult,
    ToolMap,
    ToolOutcome,
)


logger = logging.getLogger(__name__)

_MAX_LOGGED_ARGUMENTS = 500


def summarize_validation_error(error: ValidationError) -> str:
    parts: list[str] = []
    for detail in error.errors():
        location = ".".join(str(part) for part in detail.get("loc", ())) or "arguments"
        parts.append(f"{location}: {detail.get('msg', 'invalid value')}")
    return "; ".join(parts) or str(error)


def split_result(raw: Any) -> tuple[Any, list[str]]:
    """Separate a tool's return value from the citations it carries."""

    if isinstance(raw, ToolExecutionResult):
        return raw.output, [c for c in raw.citations or [] if isinstance(c, str)]
    if isinstance(raw, Mapping):
        citations = raw.get("citations")
        if isinstance(citations, list):
            return raw, [c for c in citations if isinstance(c, str)]
    return raw, []


def function_call_output(call_id: str, output: Any) -> ConversationItem:
    serialized = output if isinstance(output, str) else json.dumps(
        output, ensure_ascii=False, default=str
    )
    return {"type": "function_call_output", "call_id": call_id, "output": serialized}


class ToolInvoker:
    """Validate, repair and run one tool call, reporting progress as events.

    Failures never escape: validation problems and tool exceptions become a
    ``tool_error`` event plus a structured error output the model can read on
    the next iteration.
    """

    def __init__(
        self,
        tool_map: ToolMap,
        emitter: EventEmitter,
        *,
        timeout: float | None = None,
    ) -> None:
        self._tool_map = tool_map
        self._emitter = emitter
        self._timeout = timeout

    async def invoke(
        self,
        call: ToolCallFragment,
        conversation: Sequence[ConversationItem],
    ) -> ToolOutcome:
        tool = call.name or "unknown"

        try:
            validated = self._prepare(call, conversation)
        except ToolValidationError as exc:
            logger.warning("Rejected %s call %s: %s", tool, call.call_id, exc.message)
            return self._failure(call, tool, exc.to_payload(), exc.message)

        if validated.repaired:
            fields = ", ".join(sorted(validated.synthesized))
            logger.info(
                "Synthesized %s for %s call %s: %s",
                fields,
                tool,
                call.call_id,
                validated.synthesized,
            )
            self._emitter.status(f"Filled in missing {fields} for {tool} from the conversation.")

        self._emitter.tool_call(tool, validated.arguments)
        logger.info(
            "Executing tool %s (call %s) with arguments %s",
            tool,
            call.call_id,
            _truncate(json.dumps(validated.arguments, ensure_ascii=False, default=str)),
        )

        try:
            raw = await self._execute(tool, validated.arguments)
        except asyncio.CancelledError:
            raise
        except ValidationError as exc:
            failure = ToolValidationError(tool, summarize_validation_error(exc))
            logger.warning("Tool %s rejected arguments: %s", tool, failure.message)
            return self._failure(call, tool, failure.to_payload(), failure.message)
        except ToolValidationError as exc:
            logger.warning("Tool %s rejected arguments: %s", tool, exc.message)
            return self._failure(call, tool, exc.to_payload(), exc.message)
        except asyncio.TimeoutError as exc:
            if self._timeout is not None:
                message = f"Tool timed out after {self._timeout:g}s"
            else:
                message = str(exc) or "Tool timed out"
            failure = ToolExecutionError(tool, message)
            logger.warning("Tool %s timed out (call %s)", tool, call.call_id)
            return self._failure(call, tool, failure.to_payload(), failure.message)
        except Exception as exc:  # noqa: BLE001 - any tool failure is reported to the model
            failure = ToolExecutionError(tool, str(exc) or exc.__class__.__name__)
            logger.exception("Tool %s failed (call %s)", tool, call.call_id)
            return self._failure(call, tool, failure.to_payload(), failure.message)

        result, citations = split_result(raw)
        output: Any = result
        if validated.repaired:
            output = {"synthesized_arguments": validated.synthesized, "result": result}
        try:
            output_item = function_call_output(call.call_id, output)
        except (TypeError, ValueError) as exc:
            failure = ToolExecutionError(tool, f"Tool result could not be serialized: {exc}")
            logger.warning("Tool %s returned an unserializable result: %s", tool, exc)
            return self._failure(call, tool, failure.to_payload(), failure.message)

        self._emitter.tool_result(tool, result)
        logger.info(
            "Tool %s finished (call %s) with %d citation(s)",
            tool,
            call.call_id,
            len(citations),
        )

        return ToolOutcome(
            call_id=call.call_id,
            tool=tool,
            output_item=output_item,
            citations=citations,
        )

    def _prepare(
        self,
        call: ToolCallFragment,
        conversation: Sequence[ConversationItem],
    ) -> ValidatedArguments:
        if not call.name:
            raise ToolValidationError(
                "unknown", "tool call is missing a function name"
            )
        if call.name not in self._tool_map:
            available = ", ".join(sorted(self._tool_map)) or "none"
            raise ToolValidationError(
                call.name,
                f"unknown tool '{call.name}'",
                hint=f"Available tools: {available}",
            )
        arguments = parse_arguments(call.name, call.arguments_text)
        return validate_arguments(call.name, arguments, conversation)

    async def _execute(self, tool: str, arguments: dict[str, Any]) -> Any:
        function = self._tool_map[tool]
        if self._timeout is None:
            return await function(arguments)
        return await asyncio.wait_for(function(arguments), timeout=self._timeout)

    def _failure(
        self,
        call: ToolCallFragment,
        tool: str,
        payload: dict[str, Any],
        message: str,
    ) -> ToolOutcome:
        self._emitter.tool_error(tool, message)
        return ToolOutcome(
            call_id=call.call_id,
            tool=tool,
            output_item=function_call_output(call.call_id, payload),
            error=message,
        )


def _truncate(text: str) -> str:
    if len(text) <= _MAX_LOGGED_ARGUMENTS:
        return text
    return text[:_MAX_LOGGED_ARGUMENTS] + "..."


__all__ = [
    "ToolInvoker",
    "function_call_output",
    "split_result",
    "summarize_validation_error",
]
