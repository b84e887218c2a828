"""Fetch a URL and reduce it to readable text."""

from __future__ import annotations

import json
import logging
import re
from typing import Any
from urllib.parse import urlsplit

import httpx
from bs4 import BeautifulSoup
from pydantic import BaseModel, Field

from .retry import RetryPolicy, with_retry
from .security import validate_url


logger = logging.getLogger(__name__)

USER_AGENT = "Mozilla/5.0 (compatible; toolstream-fetch/1.0)"
MAX_EXCERPT_CHARS = 500
BINARY_CONTENT_TYPES = (
    "image/",
    "video/",
    "audio/",
    "application/pdf",
    "application/zip",
    "application/octet-stream",
)
_STRIPPED_TAGS = ["script", "style", "noscript", "svg", "iframe", "template"]
_BLANK_LINES_RE = re.compile(r"\n{3,}")


class HttpFetchParams(BaseModel):
    url: str = Field(min_length=1)


class FetchFailed(Exception):
    pass


def html_to_document(html: str) -> tuple[str, str, str]:
    """Return ``(title, excerpt, text)`` for an HTML page."""

    soup = BeautifulSoup(html, "html.parser")
    title = ""
    if soup.title and soup.title.string:
        title = soup.title.string.strip()

    excerpt = ""
    for attrs in ({"name": "description"}, {"property": "og:description"}):
        meta = soup.find("meta", attrs=attrs)
        content = meta.get("content") if meta is not None else None
        if isinstance(content, str) and content.strip():
            excerpt = content.strip()
            break

    for tag in soup(_STRIPPED_TAGS):
        tag.decompose()
    root = soup.find("main") or soup.find("article") or soup.body or soup
    text = root.get_text(separator="\n", strip=True)
    return title or "Untitled", excerpt[:MAX_EXCERPT_CHARS], _BLANK_LINES_RE.sub("\n\n", text)


async def _read_capped(response: httpx.Response, max_bytes: int) -> tuple[bytes, bool]:
    chunks: list[bytes] = []
    size = 0
    async for chunk in response.aiter_bytes():
        remaining = max_bytes - size
        if len(chunk) >= remaining:
            chunks.append(chunk[:remaining])
            return b"".join(chunks), True
        chunks.append(chunk)
        size += len(chunk)
    return b"".join(chunks), False


async def http_fetch(
    arguments: dict[str, Any],
    *,
    client: httpx.AsyncClient,
    retry_policy: RetryPolicy,
    max_bytes: int = 500_000,
    max_text_chars: int = 100_000,
) -> dict[str, Any]:
    params = HttpFetchParams.model_validate(arguments)
    url = validate_url(params.url)
    site = urlsplit(url).hostname or ""

    async def _request() -> tuple[str, str, bytes, bool]:
        async with client.stream(
            "GET", url, headers={"User-Agent": USER_AGENT}
        ) as response:
            # Redirects may land on a host the requested URL did not name.
            validate_url(str(response.url))
            response.raise_for_status()
            content_type = response.headers.get("content-type", "").lower()
            if any(kind in content_type for kind in BINARY_CONTENT_TYPES):
                raise FetchFailed(f"Binary content type not supported: {content_type}")
            body, truncated = await _read_capped(response, max_bytes)
            return str(response.url), content_type, body, truncated

    try:
        final_url, content_type, body, truncated = await with_retry(
            _request, retry_policy, label="http_fetch"
        )
    except (httpx.HTTPError, FetchFailed) as exc:
        logger.warning("Fetch of %s failed: %s", url, exc)
        message = str(exc) or exc.__class__.__name__
        return {
            "url": url,
            "site": site,
            "title": "Error",
            "excerpt": f"Failed to fetch content: {message}",
            "text": f"Failed to fetch content from {url}: {message}",
            "citations": [],
        }

    content = body.decode("utf-8", errors="replace")
    if "html" in content_type:
        title, excerpt, text = html_to_document(content)
    elif "json" in content_type:
        title, excerpt = "JSON Data", "JSON data content"
        try:
            text = json.dumps(json.loads(content), indent=2, ensure_ascii=False)
        except json.JSONDecodeError:
            text = content
    else:
        title = "Text Content"
        excerpt = " ".join(content[:200].split())
        text = content

    if truncated:
        logger.info("Fetched body of %s truncated at %d bytes", final_url, max_bytes)
    return {
        "url": final_url,
        "site": urlsplit(final_url).hostname or site,
        "title": title,
        "excerpt": excerpt,
        "text": text[:max_text_chars],
        "truncated": truncated or len(text) > max_text_chars,
        "citations": [url],
    }


__all__ = ["HttpFetchParams", "html_to_document", "http_fetch"]
