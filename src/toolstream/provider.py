"""Streaming client for the model provider's Responses API."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Iterable, Mapping, Optional, Sequence

import httpx
from fastapi import status

from .config import Settings
from .errors import ProviderRequestError
from .schemas.provider_events import (
    ProviderEvent,
    ResponseFailed,
    StreamError,
    parse_provider_event,
)

logger = logging.getLogger(__name__)

_REASONING_MODEL_PREFIXES = ("gpt-5", "o1", "o3", "o4")


@dataclass
class ServerSentEvent:
    """Represents a parsed Server-Sent Event."""

    data: str
    event: str = "message"
    event_id: Optional[str] = None


@dataclass(frozen=True)
class ModelOptions:
    """Per-run generation options forwarded to the provider."""

    model: str
    reasoning_effort: str = "high"
    verbosity: str = "medium"
    temperature: float | None = 0.3
    max_output_tokens: int | None = 16000

    @property
    def is_reasoning_model(self) -> bool:
        return self.model.startswith(_REASONING_MODEL_PREFIXES)


def normalize_tool_spec(spec: Mapping[str, Any]) -> dict[str, Any]:
    """Return a flat Responses-style function tool spec.

    Chat-Completions-style specs (``{"type": "function", "function": {...}}``)
    are flattened; flat specs pass through unchanged.
    """

    function = spec.get("function")
    if isinstance(function, Mapping):
        flattened: dict[str, Any] = {"type": "function", "name": function.get("name")}
        if function.get("description"):
            flattened["description"] = function["description"]
        flattened["parameters"] = function.get("parameters") or {
            "type": "object",
            "properties": {},
        }
        return flattened
    return dict(spec)


def tool_spec_name(spec: Mapping[str, Any]) -> str | None:
    function = spec.get("function")
    if isinstance(function, Mapping):
        name = function.get("name")
    else:
        name = spec.get("name")
    return name if isinstance(name, str) else None


def build_payload(
    options: ModelOptions,
    conversation: Sequence[Mapping[str, Any]],
    tool_specs: Sequence[Mapping[str, Any]],
) -> dict[str, Any]:
    """Assemble a streaming Responses API request body."""

    payload: dict[str, Any] = {
        "model": options.model,
        "input": [dict(item) for item in conversation],
        "stream": True,
    }
    if tool_specs:
        payload["tools"] = [normalize_tool_spec(spec) for spec in tool_specs]
        payload["tool_choice"] = "auto"
    if options.max_output_tokens is not None:
        payload["max_output_tokens"] = options.max_output_tokens
    if options.is_reasoning_model:
        # Reasoning models reject sampling parameters.
        payload["reasoning"] = {"effort": options.reasoning_effort}
        payload["text"] = {"verbosity": options.verbosity}
    elif options.temperature is not None:
        payload["temperature"] = options.temperature
    return payload


class ProviderClient:
    """Client responsible for streaming model responses from the provider."""

    _client_lock: asyncio.Lock = asyncio.Lock()
    _client_pool: dict[tuple[str, float], httpx.AsyncClient] = {}

    def __init__(self, settings: Settings):
        self._settings = settings

    def _client_key(self) -> tuple[str, float]:
        return (self._base_url, float(self._settings.request_timeout))

    async def _get_http_client(self) -> httpx.AsyncClient:
        key = self._client_key()
        client = self.__class__._client_pool.get(key)
        if client is not None:
            return client

        async with self.__class__._client_lock:
            client = self.__class__._client_pool.get(key)
            if client is None:
                timeout = httpx.Timeout(self._settings.request_timeout, connect=10.0)
                limits = httpx.Limits(
                    max_connections=50,
                    max_keepalive_connections=20,
                )
                client = httpx.AsyncClient(
                    timeout=timeout,
                    limits=limits,
                    http2=True,
                )
                self.__class__._client_pool[key] = client
        return client

    @property
    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._settings.provider_api_key.get_secret_value()}",
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
        }

    @property
    def _base_url(self) -> str:
        """Return the provider API base URL without a trailing slash."""

        return str(self._settings.provider_base_url).rstrip("/")

    async def stream_response(
        self, payload: dict[str, Any]
    ) -> AsyncIterator[ProviderEvent]:
        """Stream typed provider events for a prebuilt request payload."""

        url = f"{self._base_url}/responses"

        client = await self._get_http_client()
        try:
            async with client.stream(
                "POST",
                url,
                headers=self._headers,
                json=payload,
            ) as response:
                if response.status_code >= 400:
                    body = await response.aread()
                    detail = self._extract_error_detail(body)
                    raise ProviderRequestError(response.status_code, detail)

                async for sse in self._iter_events(response):
                    if not sse.data or sse.data == "[DONE]":
                        continue
                    try:
                        decoded = json.loads(sse.data)
                    except json.JSONDecodeError:
                        logger.debug("Skipping non-JSON SSE payload: %s", sse.data)
                        continue
                    event = parse_provider_event(decoded)
                    if isinstance(event, StreamError):
                        raise ProviderRequestError(
                            status.HTTP_502_BAD_GATEWAY,
                            event.message or event.code or "Provider stream error",
                        )
                    if isinstance(event, ResponseFailed):
                        raise ProviderRequestError(
                            status.HTTP_502_BAD_GATEWAY, event.message
                        )
                    yield event
        except httpx.HTTPError as exc:
            raise ProviderRequestError(status.HTTP_502_BAD_GATEWAY, str(exc)) from exc

    async def aclose(self) -> None:
        await self.__class__.aclose_shared()

    @classmethod
    async def aclose_shared(cls) -> None:
        async with cls._client_lock:
            clients = list(cls._client_pool.values())
            cls._client_pool.clear()
        for client in clients:
            try:
                await client.aclose()
            except Exception as exc:  # pragma: no cover - best effort cleanup
                logger.debug("Error closing provider HTTP client: %s", exc)

    async def _iter_events(
        self, response: httpx.Response
    ) -> AsyncIterator[ServerSentEvent]:
        buffer: list[str] = []
        async for line in response.aiter_lines():
            if not line:
                if buffer:
                    yield self._parse_event(buffer)
                    buffer.clear()
                continue
            if line.startswith(":"):
                continue
            buffer.append(line)
        if buffer:
            yield self._parse_event(buffer)

    def _parse_event(self, lines: Iterable[str]) -> ServerSentEvent:
        event_name: Optional[str] = None
        event_id: Optional[str] = None
        data_lines: list[str] = []

        for line in lines:
            field, _, value = line.partition(":")
            value = value.lstrip(" ")
            if field == "event":
                event_name = value or None
            elif field == "data":
                data_lines.append(value)
            elif field == "id":
                event_id = value or None

        data = "\n".join(data_lines)
        return ServerSentEvent(
            data=data, event=event_name or "message", event_id=event_id
        )

    @staticmethod
    def _extract_error_detail(raw: bytes) -> Any:
        if not raw:
            return "Provider returned an empty error response."
        text = raw.decode("utf-8", errors="ignore")
        try:
            payload = json.loads(text)
        except json.JSONDecodeError:
            return text
        if isinstance(payload, dict):
            return payload.get("error") or payload
        return payload


__all__ = [
    "ModelOptions",
    "ProviderClient",
    "ServerSentEvent",
    "build_payload",
    "normalize_tool_spec",
    "tool_spec_name",
]
