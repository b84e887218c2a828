"""Tests for executing tool calls and reporting their outcomes."""

from __future__ import annotations

import asyncio
import json
from typing import Any

import pytest
from fakes import RecordingTools, event_names, events
from pydantic import BaseModel

from toolstream.chat.streaming.emitter import EventEmitter
from toolstream.chat.streaming.tooling import ToolInvoker, split_result
from toolstream.chat.streaming.transport import BufferTransport
from toolstream.chat.streaming.types import ToolCallFragment, ToolExecutionResult


def _call(name: str, arguments: Any, call_id: str = "call_1") -> ToolCallFragment:
    text = arguments if isinstance(arguments, str) else json.dumps(arguments)
    return ToolCallFragment(call_id=call_id, name=name, arguments_text=text, complete=True)


def _invoker(tools: RecordingTools, **kwargs: Any) -> tuple[ToolInvoker, BufferTransport]:
    transport = BufferTransport()
    return ToolInvoker(tools.tool_map(), EventEmitter(transport), **kwargs), transport


@pytest.mark.asyncio
async def test_successful_call_emits_call_and_result() -> None:
    tools = RecordingTools(calculator={"expression": "2+2", "result": 4})
    invoker, transport = _invoker(tools)

    outcome = await invoker.invoke(_call("calculator", {"expression": "2+2"}), [])

    assert outcome.succeeded
    assert tools.calls == [("calculator", {"expression": "2+2"})]
    assert events(transport) == [
        ("tool_call", {"tool": "calculator", "args": {"expression": "2+2"}}),
        ("tool_result", {"tool": "calculator", "result": {"expression": "2+2", "result": 4}}),
    ]
    assert outcome.output_item == {
        "type": "function_call_output",
        "call_id": "call_1",
        "output": json.dumps({"expression": "2+2", "result": 4}),
    }


@pytest.mark.asyncio
async def test_citations_collected_from_result() -> None:
    tools = RecordingTools(
        web_search={"results": [], "citations": ["https://a.gov", "https://b.gov", 7]}
    )
    invoker, _ = _invoker(tools)

    outcome = await invoker.invoke(_call("web_search", {"q": "cottage food"}), [])

    assert outcome.citations == ["https://a.gov", "https://b.gov"]


@pytest.mark.asyncio
async def test_missing_query_repaired_and_announced() -> None:
    tools = RecordingTools(web_search={"results": [], "citations": []})
    invoker, transport = _invoker(tools)
    conversation = [{"role": "user", "content": "Minnesota cottage food rules?"}]

    outcome = await invoker.invoke(_call("web_search", {}), conversation)

    query = "minnesota cottage food official requirements site:.gov"
    assert tools.calls == [("web_search", {"q": query})]
    assert event_names(transport) == ["status", "tool_call", "tool_result"]
    output = json.loads(outcome.output_item["output"])
    assert output["synthesized_arguments"] == {"q": query}
    assert output["result"] == {"results": [], "citations": []}


@pytest.mark.asyncio
async def test_unrepairable_arguments_report_error_without_running() -> None:
    tools = RecordingTools(calculator={"result": 0})
    invoker, transport = _invoker(tools)

    outcome = await invoker.invoke(_call("calculator", {}), [])

    assert not outcome.succeeded
    assert tools.calls == []
    assert event_names(transport) == ["tool_error"]
    output = json.loads(outcome.output_item["output"])
    assert output["error"].startswith("Invalid parameters:")
    assert "Example" in output["hint"]


@pytest.mark.asyncio
async def test_malformed_json_reports_error() -> None:
    tools = RecordingTools(calculator={"result": 0})
    invoker, transport = _invoker(tools)

    outcome = await invoker.invoke(_call("calculator", '{"expression": "1+'), [])

    assert outcome.error is not None
    assert event_names(transport) == ["tool_error"]


@pytest.mark.asyncio
async def test_unknown_tool_reports_error() -> None:
    tools = RecordingTools(calculator={"result": 0})
    invoker, transport = _invoker(tools)

    outcome = await invoker.invoke(_call("delete_everything", {}), [])

    assert outcome.tool == "delete_everything"
    assert "unknown tool" in (outcome.error or "")
    output = json.loads(outcome.output_item["output"])
    assert output["hint"] == "Available tools: calculator"


@pytest.mark.asyncio
async def test_tool_exception_becomes_tool_error() -> None:
    tools = RecordingTools(web_search=RuntimeError("search backend down"))
    invoker, transport = _invoker(tools)

    outcome = await invoker.invoke(_call("web_search", {"q": "anything"}), [])

    assert outcome.error == "search backend down"
    assert event_names(transport) == ["tool_call", "tool_error"]
    assert json.loads(outcome.output_item["output"]) == {"error": "search backend down"}


@pytest.mark.asyncio
async def test_tool_schema_validation_error_is_reported() -> None:
    class Params(BaseModel):
        expression: int

    async def strict(arguments: dict[str, Any]) -> Any:
        return Params.model_validate(arguments)

    tools = RecordingTools(calculator=strict)
    invoker, _ = _invoker(tools)

    outcome = await invoker.invoke(_call("calculator", {"expression": "two"}), [])

    assert outcome.error is not None
    assert "expression" in outcome.error
    assert json.loads(outcome.output_item["output"])["error"].startswith("Invalid parameters:")


@pytest.mark.asyncio
async def test_tool_timeout() -> None:
    async def slow(arguments: dict[str, Any]) -> Any:
        await asyncio.sleep(1)

    tools = RecordingTools(calculator=slow)
    invoker, transport = _invoker(tools, timeout=0.01)

    outcome = await invoker.invoke(_call("calculator", {"expression": "1"}), [])

    assert "timed out" in (outcome.error or "")
    assert event_names(transport) == ["tool_call", "tool_error"]


@pytest.mark.asyncio
async def test_timeout_raised_by_tool_without_configured_timeout() -> None:
    tools = RecordingTools(web_search=TimeoutError("upstream timed out"))
    invoker, transport = _invoker(tools)

    outcome = await invoker.invoke(_call("web_search", {"q": "anything"}), [])

    assert outcome.error == "upstream timed out"
    assert event_names(transport) == ["tool_call", "tool_error"]
    assert json.loads(outcome.output_item["output"]) == {"error": "upstream timed out"}


@pytest.mark.asyncio
async def test_unserializable_result_becomes_tool_error() -> None:
    circular: dict[str, Any] = {}
    circular["self"] = circular
    tools = RecordingTools(web_search=circular)
    invoker, transport = _invoker(tools)

    outcome = await invoker.invoke(_call("web_search", {"q": "anything"}), [])

    assert outcome.error is not None
    assert outcome.error.startswith("Tool result could not be serialized")
    assert event_names(transport) == ["tool_call", "tool_error"]
    assert outcome.citations == []


def test_split_result_handles_execution_result() -> None:
    output, citations = split_result(ToolExecutionResult(output="text", citations=["u1"]))
    assert output == "text"
    assert citations == ["u1"]
    assert split_result("plain") == ("plain", [])
