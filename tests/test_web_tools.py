"""Tests for the HTTP-backed tools using mocked transports."""

from __future__ import annotations

import httpx
import pytest

from toolstream.tools.http_fetch import html_to_document, http_fetch
from toolstream.tools.retry import RetryPolicy, calculate_backoff_delay, with_retry
from toolstream.tools.security import UnsafeUrlError
from toolstream.tools.selection import select_relevant_tools
from toolstream.tools.web_search import parse_instant_answer, web_search

NO_RETRY = RetryPolicy(max_retries=0)
ALL_TOOLS = ["web_search", "http_fetch", "calculator"]


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler), follow_redirects=True)


class TestWebSearch:
    def test_parse_instant_answer(self):
        data = {
            "Heading": "Cottage food",
            "Abstract": "Foods made at home.",
            "AbstractURL": "https://en.wikipedia.org/wiki/Cottage_food",
            "RelatedTopics": [
                {"Text": "Minnesota - rules", "FirstURL": "https://duckduckgo.com/Minnesota"},
                {"Name": "Group", "Topics": [{"Text": "Texas - rules", "FirstURL": "https://duckduckgo.com/Texas"}]},
                {"Text": "no url"},
            ],
        }

        results = parse_instant_answer(data, count=5)

        assert [row["link"] for row in results] == [
            "https://en.wikipedia.org/wiki/Cottage_food",
            "https://duckduckgo.com/Minnesota",
            "https://duckduckgo.com/Texas",
        ]
        assert results[1]["title"] == "Minnesota"

    @pytest.mark.asyncio
    async def test_results_become_citations(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.params["q"] == "cottage food"
            return httpx.Response(
                200,
                json={"Abstract": "About.", "AbstractURL": "https://a.gov", "Heading": "A"},
            )

        async with _client(handler) as client:
            result = await web_search({"q": "cottage food"}, client=client, retry_policy=NO_RETRY)

        assert result["citations"] == ["https://a.gov"]
        assert result["results"][0]["snippet"] == "About."

    @pytest.mark.asyncio
    async def test_failure_returns_placeholder_results(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503)

        async with _client(handler) as client:
            result = await web_search({"q": "anything", "count": 2}, client=client, retry_policy=NO_RETRY)

        assert len(result["results"]) == 2
        assert "error" in result


class TestHttpFetch:
    def test_html_to_document(self):
        html = """
        <html><head><title> Cottage Food </title>
        <meta name="description" content="State rules."></head>
        <body><script>var x = 1;</script><main><h1>Rules</h1><p>Register first.</p></main></body></html>
        """

        title, excerpt, text = html_to_document(html)

        assert title == "Cottage Food"
        assert excerpt == "State rules."
        assert "Register first." in text
        assert "var x" not in text

    @pytest.mark.asyncio
    async def test_fetches_html_with_citation(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                text="<html><head><title>T</title></head><body><p>Body text</p></body></html>",
                headers={"content-type": "text/html; charset=utf-8"},
            )

        async with _client(handler) as client:
            result = await http_fetch({"url": "https://example.gov/page"}, client=client, retry_policy=NO_RETRY)

        assert result["title"] == "T"
        assert "Body text" in result["text"]
        assert result["citations"] == ["https://example.gov/page"]

    @pytest.mark.asyncio
    async def test_rejects_binary_content(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"%PDF", headers={"content-type": "application/pdf"})

        async with _client(handler) as client:
            result = await http_fetch({"url": "https://example.gov/a.pdf"}, client=client, retry_policy=NO_RETRY)

        assert result["title"] == "Error"
        assert result["citations"] == []

    @pytest.mark.asyncio
    async def test_truncates_large_bodies(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"a" * 5000, headers={"content-type": "text/plain"})

        async with _client(handler) as client:
            result = await http_fetch(
                {"url": "https://example.gov/big.txt"},
                client=client,
                retry_policy=NO_RETRY,
                max_bytes=1000,
            )

        assert len(result["text"]) == 1000
        assert result["truncated"] is True

    @pytest.mark.asyncio
    async def test_blocked_url_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:  # pragma: no cover - never reached
            raise AssertionError("request should not be sent")

        async with _client(handler) as client:
            with pytest.raises(UnsafeUrlError):
                await http_fetch({"url": "http://169.254.169.254/"}, client=client, retry_policy=NO_RETRY)


class TestRetry:
    @pytest.mark.asyncio
    async def test_retries_transient_status(self):
        attempts = []

        async def operation() -> str:
            attempts.append(1)
            if len(attempts) < 3:
                request = httpx.Request("GET", "https://example.com")
                raise httpx.HTTPStatusError("busy", request=request, response=httpx.Response(503, request=request))
            return "ok"

        assert await with_retry(operation, RetryPolicy(max_retries=3, initial_delay=0.0), label="test") == "ok"
        assert len(attempts) == 3

    @pytest.mark.asyncio
    async def test_does_not_retry_client_errors(self):
        attempts = []

        async def operation() -> str:
            attempts.append(1)
            request = httpx.Request("GET", "https://example.com")
            raise httpx.HTTPStatusError("missing", request=request, response=httpx.Response(404, request=request))

        with pytest.raises(httpx.HTTPStatusError):
            await with_retry(operation, RetryPolicy(max_retries=3), label="test")
        assert len(attempts) == 1

    def test_backoff_is_capped(self):
        policy = RetryPolicy(initial_delay=1.0, max_delay=4.0, jitter=0.0)
        assert [calculate_backoff_delay(n, policy) for n in (1, 2, 3, 4)] == [1.0, 2.0, 4.0, 4.0]


class TestToolSelection:
    def test_defaults_to_web_search(self):
        assert select_relevant_tools("hello", ALL_TOOLS) == ["web_search"]

    def test_detects_calculation(self):
        assert "calculator" in select_relevant_tools("compute 12 * 4", ALL_TOOLS)

    def test_detects_url(self):
        selected = select_relevant_tools("summarize https://example.gov/rules", ALL_TOOLS)
        assert "http_fetch" in selected

    def test_url_in_history_keeps_fetch(self):
        selected = select_relevant_tools("and the second section?", ALL_TOOLS, history=["read https://x.gov"])
        assert "http_fetch" in selected

    def test_respects_available_tools(self):
        assert select_relevant_tools("hello", ["calculator"]) == ["calculator"]
