"""Keyword heuristics choosing which tools to offer for a query."""

from __future__ import annotations

import logging
import re
from typing import Iterable, Sequence


logger = logging.getLogger(__name__)

DEFAULT_TOOL = "web_search"

_SEARCH_RE = re.compile(
    r"\b(search|find|look up|what is|who is|when|where|latest|current|news|today|recent"
    r"|requirements?|regulations?|laws?|google|duckduckgo|bing)\b|\?"
)
_FETCH_RE = re.compile(
    r"\b(fetch|read|load|download|url|link|page|website|article)\b|https?://"
)
_CALCULATOR_RE = re.compile(
    r"\b(calculate|compute|math|sum|total|multiply|divide|subtract|equation|formula)\b"
    r"|\d+(\.\d+)?\s*[-+*/^%]\s*\d"
)

_RULES: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("web_search", _SEARCH_RE),
    ("http_fetch", _FETCH_RE),
    ("calculator", _CALCULATOR_RE),
)


def select_relevant_tools(
    query: str,
    available: Sequence[str],
    *,
    history: Iterable[str] = (),
) -> list[str]:
    """Return the subset of ``available`` tool names the query likely needs.

    Falls back to web search (or every tool, when web search is not
    available) so the model is never left without tools.
    """

    text = query.lower()
    recent = " ".join(history).lower()
    selected: list[str] = []
    for name, pattern in _RULES:
        if name not in available:
            continue
        if pattern.search(text):
            selected.append(name)
        elif name == "http_fetch" and re.search(r"https?://", recent):
            selected.append(name)

    if not selected:
        selected = [DEFAULT_TOOL] if DEFAULT_TOOL in available else list(available)
    logger.debug("Tool selection for query matched %s of %s", selected, list(available))
    return selected


__all__ = ["DEFAULT_TOOL", "select_relevant_tools"]
