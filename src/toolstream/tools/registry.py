"""Built-in tool specs and the name-to-function map handed to the loop."""

from __future__ import annotations

from functools import partial
from typing import TYPE_CHECKING, Any

import httpx

from .calculator import calculator
from .http_fetch import http_fetch
from .retry import RetryPolicy
from .web_search import web_search

if TYPE_CHECKING:
    from ..chat.streaming.types import ToolFunction
    from ..config import Settings


TOOL_SPECS: list[dict[str, Any]] = [
    {
        "type": "function",
        "function": {
            "name": "web_search",
            "description": "Search the web for current information on any topic",
            "parameters": {
                "type": "object",
                "properties": {
                    "q": {"type": "string", "description": "Search query"},
                    "count": {
                        "type": "integer",
                        "description": "Number of results (1-10, default 5)",
                        "minimum": 1,
                        "maximum": 10,
                    },
                },
                "required": ["q"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "http_fetch",
            "description": "Fetch and read content from a specific URL",
            "parameters": {
                "type": "object",
                "properties": {
                    "url": {
                        "type": "string",
                        "format": "uri",
                        "description": "Absolute http(s) URL to fetch",
                    }
                },
                "required": ["url"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "calculator",
            "description": (
                "Evaluate an arithmetic expression "
                "(+ - * / // % ** ^, parentheses, sqrt, log, sin, cos, pi, e)"
            ),
            "parameters": {
                "type": "object",
                "properties": {
                    "expression": {
                        "type": "string",
                        "description": 'Expression to evaluate, e.g. "2 + 2" or "10 * 3 / 2"',
                    }
                },
                "required": ["expression"],
            },
        },
    },
]


def build_http_client(settings: Settings) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=httpx.Timeout(settings.tool_timeout_seconds, connect=5.0),
        follow_redirects=True,
        max_redirects=5,
    )


def build_tool_map(
    settings: Settings,
    *,
    client: httpx.AsyncClient | None = None,
) -> dict[str, ToolFunction]:
    """Bind the built-in tools to ``settings`` and a shared HTTP client."""

    http_client = client or build_http_client(settings)
    retry_policy = RetryPolicy(max_retries=settings.tool_max_retries)
    return {
        "web_search": partial(
            web_search,
            client=http_client,
            retry_policy=retry_policy,
            default_count=settings.search_result_count,
        ),
        "http_fetch": partial(
            http_fetch,
            client=http_client,
            retry_policy=retry_policy,
            max_bytes=settings.fetch_max_bytes,
            max_text_chars=settings.fetch_max_text_chars,
        ),
        "calculator": calculator,
    }


__all__ = ["TOOL_SPECS", "build_http_client", "build_tool_map"]
