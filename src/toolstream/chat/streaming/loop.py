"""Bounded multi-iteration model/tool loop."""

from __future__ import annotations

import asyncio
import logging
from contextlib import AbstractAsyncContextManager, nullcontext
from dataclasses import dataclass
from typing import Any, Mapping, Sequence

from ...errors import IterationBudgetExhausted, ProviderRequestError
from ...provider import ModelOptions, build_payload
from .decoder import StreamDecoder
from .emitter import EventEmitter
from .heartbeat import HeartbeatManager
from .tooling import ToolInvoker
from .types import (
    CitationSet,
    ConversationItem,
    ModelProvider,
    RunResult,
    ToolCallFragment,
    ToolMap,
    ToolOutcome,
)


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoopOptions:
    model_options: ModelOptions
    max_iterations: int = 10
    deadline_seconds: float | None = None
    parallel_tool_calls: bool = False
    tool_timeout_seconds: float | None = None


class OrchestrationLoop:
    """Drive model requests and tool executions until the model answers.

    Each iteration streams one provider response. Text deltas are forwarded
    as they arrive; tool calls are run once the stream ends and their outputs
    are appended to the conversation for the next request. The loop stops
    when the model returns no tool calls, when the iteration budget or the
    request deadline is spent, or when the provider fails.

    A provider failure on the first iteration is fatal and re-raised after
    an ``error`` event. Later failures finish the run with a ``done`` event
    carrying everything gathered so far.
    """

    def __init__(
        self,
        provider: ModelProvider,
        emitter: EventEmitter,
        *,
        tool_specs: Sequence[Mapping[str, Any]],
        tool_map: ToolMap,
        options: LoopOptions,
        heartbeat: HeartbeatManager | None = None,
        invoker: ToolInvoker | None = None,
    ) -> None:
        if options.max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        self._provider = provider
        self._emitter = emitter
        self._tool_specs = list(tool_specs)
        self._options = options
        self._heartbeat = heartbeat
        self._invoker = invoker or ToolInvoker(
            tool_map, emitter, timeout=options.tool_timeout_seconds
        )
        self._conversation: list[ConversationItem] = []
        self._citations = CitationSet()
        self._text = ""
        self._iteration = 0

    @property
    def conversation(self) -> list[ConversationItem]:
        return list(self._conversation)

    @property
    def citations(self) -> list[str]:
        return self._citations.as_list()

    @property
    def iteration(self) -> int:
        return self._iteration

    async def run(self, conversation: Sequence[ConversationItem]) -> RunResult:
        self._conversation = [dict(item) for item in conversation]
        logger.info(
            "Starting run with model %s (%d items, %d tools, max %d iterations)",
            self._options.model_options.model,
            len(self._conversation),
            len(self._tool_specs),
            self._options.max_iterations,
        )

        heartbeat: AbstractAsyncContextManager[Any] = (
            self._heartbeat if self._heartbeat is not None else nullcontext()
        )
        try:
            async with heartbeat:
                await self._run_with_deadline()
            return self._finish()
        except ProviderRequestError as exc:
            logger.error(
                "Model request failed on iteration %d (status %s): %s",
                self._iteration,
                exc.status_code,
                exc.message,
            )
            self._emitter.error(exc.message)
            raise
        except asyncio.CancelledError:
            logger.info("Run cancelled on iteration %d", self._iteration)
            self._emitter.error("Request cancelled")
            raise
        except Exception:
            logger.exception("Run failed on iteration %d", self._iteration)
            self._emitter.error("Internal error while processing the request")
            raise

    async def _run_with_deadline(self) -> None:
        deadline = self._options.deadline_seconds
        if deadline is None:
            await self._iterate()
            return
        try:
            await asyncio.wait_for(self._iterate(), timeout=deadline)
        except asyncio.TimeoutError:
            logger.warning(
                "Request deadline of %gs reached on iteration %d; finishing with partial results",
                deadline,
                self._iteration,
            )
            self._emitter.status("Stopped early: the time limit for this request was reached.")

    async def _iterate(self) -> None:
        max_iterations = self._options.max_iterations
        for iteration in range(1, max_iterations + 1):
            self._iteration = iteration
            decoder = StreamDecoder()
            payload = build_payload(
                self._options.model_options, self._conversation, self._tool_specs
            )
            logger.info(
                "Iteration %d/%d: requesting model response (%d conversation items)",
                iteration,
                max_iterations,
                len(self._conversation),
            )

            try:
                async for event in self._provider.stream_response(payload):
                    delta = decoder.feed(event)
                    if delta:
                        self._emitter.content(delta)
            except ProviderRequestError as exc:
                if iteration == 1:
                    raise
                if decoder.text:
                    self._text = decoder.text
                logger.warning(
                    "Model request failed on iteration %d; finishing with partial results: %s",
                    iteration,
                    exc.message,
                )
                return

            recovered = decoder.fallback_text()
            if recovered:
                logger.debug("Recovered %d chars of text without deltas", len(recovered))
                self._emitter.content(recovered)
            if decoder.text:
                self._text = decoder.text

            tool_calls = decoder.tool_calls
            if not tool_calls:
                logger.info(
                    "Iteration %d finished without tool calls; run complete", iteration
                )
                return

            self._conversation.extend(decoder.output_items())
            outcomes = await self._run_tools(tool_calls)
            for outcome in outcomes:
                self._conversation.append(outcome.output_item)
                added = self._citations.update(outcome.citations)
                if added:
                    logger.debug(
                        "Collected %d new citation(s) from %s", added, outcome.tool
                    )

            if iteration == max_iterations:
                exhausted = IterationBudgetExhausted(max_iterations)
                logger.warning(
                    "%s after running %d tool call(s) (%s); finishing with partial results",
                    exhausted,
                    len(tool_calls),
                    ", ".join(call.name or "unknown" for call in tool_calls),
                )
                self._emitter.status(
                    "Stopped early: the maximum number of tool iterations was reached."
                )
                return

    async def _run_tools(self, calls: list[ToolCallFragment]) -> list[ToolOutcome]:
        snapshot = list(self._conversation)
        if self._options.parallel_tool_calls and len(calls) > 1:
            logger.debug("Running %d tool calls concurrently", len(calls))
            results = await asyncio.gather(
                *(self._invoker.invoke(call, snapshot) for call in calls)
            )
            return list(results)
        outcomes: list[ToolOutcome] = []
        for call in calls:
            outcomes.append(await self._invoker.invoke(call, snapshot))
        return outcomes

    def _finish(self) -> RunResult:
        citations = self._citations.as_list()
        self._emitter.done(citations)
        logger.info(
            "Run finished after %d iteration(s) with %d chars and %d citation(s)",
            self._iteration,
            len(self._text),
            len(citations),
        )
        return RunResult(
            text=self._text,
            citations=citations,
            iterations=self._iteration,
        )


__all__ = ["LoopOptions", "OrchestrationLoop"]
