"""Chat orchestrator coordinating the provider client, tools and streaming loop."""

from __future__ import annotations

import asyncio
import datetime as _dt
import logging
from typing import TYPE_CHECKING, Any, Mapping, Sequence

import httpx

from ..errors import ProviderRequestError
from ..provider import ModelOptions, ProviderClient, tool_spec_name
from ..schemas.chat import ChatStreamRequest
from ..tools import TOOL_SPECS, build_http_client, build_tool_map, select_relevant_tools
from .streaming import (
    BufferTransport,
    EventEmitter,
    HeartbeatManager,
    LoopOptions,
    OrchestrationLoop,
    RunResult,
    StreamTransport,
)
from .streaming.types import ConversationItem, ModelProvider, ToolMap

if TYPE_CHECKING:
    from ..config import Settings

logger = logging.getLogger(__name__)


ToolPayload = list[dict[str, Any]]


def _build_instructions(base: str | None) -> str:
    """Prepend the current date to the configured system instructions."""

    today = _dt.datetime.now(_dt.timezone.utc).date().isoformat()
    context_block = f"Current date (UTC): {today}"
    base = (base or "").strip()
    if base:
        return f"{context_block}\n\n{base}"
    return context_block


class ChatOrchestrator:
    """High-level coordination for chat runs."""

    def __init__(
        self,
        settings: Settings,
        *,
        client: ModelProvider | None = None,
        tool_specs: Sequence[Mapping[str, Any]] | None = None,
        tool_map: ToolMap | None = None,
    ):
        self._settings = settings
        self._client: ModelProvider = client or ProviderClient(settings)
        self._tool_specs: ToolPayload = [
            dict(spec) for spec in (TOOL_SPECS if tool_specs is None else tool_specs)
        ]
        self._tool_client: httpx.AsyncClient | None = None
        if tool_map is None:
            self._tool_client = build_http_client(settings)
            tool_map = build_tool_map(settings, client=self._tool_client)
        self._tool_map: dict[str, Any] = dict(tool_map)
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def tool_names(self) -> list[str]:
        return [name for spec in self._tool_specs if (name := tool_spec_name(spec))]

    async def shutdown(self) -> None:
        """Cancel in-flight runs and close held resources."""

        tasks = [task for task in self._tasks if not task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        aclose = getattr(self._client, "aclose", None)
        if aclose is not None:
            try:
                await asyncio.wait_for(aclose(), timeout=2.0)
            except (asyncio.TimeoutError, Exception) as exc:
                logger.warning("Error closing provider client: %s", exc)

        if self._tool_client is not None:
            try:
                await asyncio.wait_for(self._tool_client.aclose(), timeout=2.0)
            except (asyncio.TimeoutError, Exception) as exc:
                logger.warning("Error closing tool HTTP client: %s", exc)

    def select_tools(self, request: ChatStreamRequest) -> ToolPayload:
        """Tool specs offered to the model for this request."""

        if request.tools is not None:
            wanted = set(request.tools)
            unknown = wanted.difference(self.tool_names)
            if unknown:
                logger.warning("Ignoring unknown requested tools: %s", sorted(unknown))
            return [spec for spec in self._tool_specs if tool_spec_name(spec) in wanted]

        history = [
            message.content
            for message in request.messages[:-1]
            if message.role == "user" and isinstance(message.content, str)
        ]
        selected = select_relevant_tools(
            request.latest_user_text(), self.tool_names, history=history
        )
        logger.debug("Selected tools %s for request", selected)
        return [spec for spec in self._tool_specs if tool_spec_name(spec) in selected]

    def build_conversation(self, request: ChatStreamRequest) -> list[ConversationItem]:
        conversation: list[ConversationItem] = [
            {
                "role": "developer",
                "content": _build_instructions(self._settings.system_instructions),
            }
        ]
        conversation.extend(message.to_conversation_item() for message in request.messages)
        return conversation

    def loop_options(self, request: ChatStreamRequest) -> LoopOptions:
        settings = self._settings
        model_options = ModelOptions(
            model=request.model or settings.default_model,
            reasoning_effort=request.reasoning_effort or settings.reasoning_effort,
            verbosity=request.verbosity or settings.verbosity,
            temperature=settings.temperature,
            max_output_tokens=settings.max_output_tokens,
        )
        return LoopOptions(
            model_options=model_options,
            max_iterations=request.max_iterations or settings.max_iterations,
            deadline_seconds=settings.request_deadline_seconds,
            parallel_tool_calls=settings.parallel_tool_calls,
            tool_timeout_seconds=settings.tool_timeout_seconds,
        )

    async def process_stream(
        self,
        request: ChatStreamRequest,
        transport: StreamTransport,
    ) -> RunResult:
        """Run one request to completion, writing events to ``transport``."""

        emitter = EventEmitter(transport)
        heartbeat = HeartbeatManager(
            emitter.heartbeat, interval=self._settings.heartbeat_interval_seconds
        )
        transport.on_disconnect(heartbeat.cleanup)

        tool_specs = self.select_tools(request)
        loop = OrchestrationLoop(
            self._client,
            emitter,
            tool_specs=tool_specs,
            tool_map=self._tool_map,
            options=self.loop_options(request),
            heartbeat=heartbeat,
        )
        return await loop.run(self.build_conversation(request))

    def start_stream(
        self,
        request: ChatStreamRequest,
        transport: StreamTransport,
    ) -> asyncio.Task[RunResult | None]:
        """Run ``process_stream`` in a task that a disconnect cancels."""

        task = asyncio.create_task(self._run_stream(request, transport))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        def _cancel() -> None:
            if not task.done():
                logger.info("Cancelling run after client disconnect")
                task.cancel()

        transport.on_disconnect(_cancel)
        return task

    async def _run_stream(
        self,
        request: ChatStreamRequest,
        transport: StreamTransport,
    ) -> RunResult | None:
        try:
            return await self.process_stream(request, transport)
        except ProviderRequestError:
            # Already reported to the client as an error event.
            return None
        except asyncio.CancelledError:
            logger.debug("Streaming run cancelled")
            raise
        except Exception:
            logger.exception("Streaming run failed")
            return None

    async def complete(self, request: ChatStreamRequest) -> RunResult:
        """Run the loop without a live client and return the final result."""

        transport = BufferTransport()
        return await self.process_stream(request, transport)


__all__ = ["ChatOrchestrator"]
