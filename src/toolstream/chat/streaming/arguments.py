"""Tool argument validation and deterministic fallback synthesis."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Sequence

from ...errors import ToolValidationError
from .types import ConversationItem


logger = logging.getLogger(__name__)

MIN_QUERY_LENGTH = 3
MAX_FALLBACK_QUERY_CHARS = 120
TRAILING_TURNS = 6
ALLOWED_URL_SCHEMES = ("http://", "https://")

SEARCH_HINT = (
    'Expected {"q": "<search terms, at least 3 characters>", "count": <1-10, optional>}. '
    'Example: {"q": "Minnesota cottage food law requirements", "count": 5}'
)
FETCH_HINT = (
    'Expected {"url": "<absolute http:// or https:// URL>"}. '
    'Example: {"url": "https://www.example.gov/licensing"}'
)
CALCULATOR_HINT = (
    'Expected {"expression": "<arithmetic expression>"}. '
    'Example: {"expression": "(12 * 4) / 3"}'
)

_SEARCH_SUFFIX = "official requirements site:.gov"
_GENERIC_SCOPE_SUFFIX = "official guidance"

_JURISDICTIONS = (
    "alabama", "alaska", "arizona", "arkansas", "california", "colorado",
    "connecticut", "delaware", "florida", "georgia", "hawaii", "idaho",
    "illinois", "indiana", "iowa", "kansas", "kentucky", "louisiana", "maine",
    "maryland", "massachusetts", "michigan", "minnesota", "mississippi",
    "missouri", "montana", "nebraska", "nevada", "new hampshire", "new jersey",
    "new mexico", "new york", "north carolina", "north dakota", "ohio",
    "oklahoma", "oregon", "pennsylvania", "rhode island", "south carolina",
    "south dakota", "tennessee", "texas", "utah", "vermont", "virginia",
    "washington", "west virginia", "wisconsin", "wyoming",
    "district of columbia",
)

# Longer names first so "west virginia" wins over "virginia".
_JURISDICTION_RE = re.compile(
    r"\b("
    + "|".join(re.escape(name) for name in sorted(_JURISDICTIONS, key=len, reverse=True))
    + r")\b",
    re.IGNORECASE,
)

_TOPIC_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = tuple(
    (re.compile(pattern, re.IGNORECASE), canonical)
    for pattern, canonical in (
        (r"\bcottage[\s-]+food", "cottage food"),
        (r"\bfood[\s-]+trucks?\b", "food truck"),
        (r"\bfood[\s-]+handlers?\b", "food handler permit"),
        (r"\bhome[\s-]+based[\s-]+business", "home-based business"),
        (r"\bbusiness[\s-]+licen[cs]es?\b", "business license"),
        (r"\bliquor[\s-]+licen[cs]es?\b", "liquor license"),
        (r"\bcontractor'?s?[\s-]+licen[cs]es?\b", "contractor license"),
        (r"\bsales[\s-]+tax", "sales tax"),
        (r"\bseller'?s[\s-]+permit", "seller's permit"),
        (r"\bresale[\s-]+certificate", "resale certificate"),
        (r"\bhealth[\s-]+permit", "health permit"),
        (r"\bbuilding[\s-]+permit", "building permit"),
        (r"\bzoning\b", "zoning"),
        (r"\bllc\b|\blimited[\s-]+liability[\s-]+compan", "llc formation"),
        (r"\bworkers'?[\s-]+comp", "workers compensation"),
        (r"\bminimum[\s-]+wage", "minimum wage"),
        (r"\bfarmers'?[\s-]+market", "farmers market"),
    )
)

_URL_RE = re.compile(r"https?://[^\s\"'<>)\]]+", re.IGNORECASE)
_WHITESPACE_RE = re.compile(r"\s+")


@dataclass
class ValidatedArguments:
    arguments: dict[str, Any]
    synthesized: dict[str, Any] = field(default_factory=dict)

    @property
    def repaired(self) -> bool:
        return bool(self.synthesized)


Validator = Callable[[str, dict[str, Any], Sequence[ConversationItem]], ValidatedArguments]


def parse_arguments(tool: str, arguments_text: str) -> dict[str, Any]:
    """Decode streamed argument text into a JSON object."""

    if not arguments_text or not arguments_text.strip():
        return {}
    try:
        arguments = json.loads(arguments_text)
    except json.JSONDecodeError as exc:
        raise ToolValidationError(
            tool,
            f"arguments are not valid JSON ({exc.msg} at column {exc.colno})",
            hint=_HINTS.get(tool),
        ) from exc
    if not isinstance(arguments, dict):
        raise ToolValidationError(
            tool,
            f"expected a JSON object for arguments but received {type(arguments).__name__}",
            hint=_HINTS.get(tool),
        )
    return arguments


def validate_arguments(
    tool: str,
    arguments: Mapping[str, Any],
    conversation: Sequence[ConversationItem],
) -> ValidatedArguments:
    """Check tool-specific required fields, repairing them where safe."""

    validator = _VALIDATORS.get(tool)
    working = dict(arguments)
    if validator is None:
        return ValidatedArguments(working)
    return validator(tool, working, conversation)


def item_text(item: Mapping[str, Any]) -> str:
    """Plain text carried by a user or assistant conversation item."""

    content = item.get("content")
    if isinstance(content, str):
        return content
    if not isinstance(content, list):
        return ""
    fragments: list[str] = []
    for part in content:
        if isinstance(part, dict) and isinstance(part.get("text"), str):
            fragments.append(part["text"])
        elif isinstance(part, str):
            fragments.append(part)
    return " ".join(fragments)


def trailing_texts(
    conversation: Sequence[ConversationItem],
    *,
    roles: tuple[str, ...] = ("user", "assistant"),
    limit: int = TRAILING_TURNS,
) -> list[str]:
    """Most recent first texts of the last ``limit`` role-tagged turns."""

    texts: list[str] = []
    for item in reversed(conversation):
        if item.get("role") not in roles:
            continue
        text = item_text(item).strip()
        if text:
            texts.append(text)
        if len(texts) >= limit:
            break
    return texts


def synthesize_search_query(conversation: Sequence[ConversationItem]) -> str | None:
    """Build a search query from the trailing conversation, if possible."""

    texts = trailing_texts(conversation)
    jurisdiction: str | None = None
    topic: str | None = None
    for text in texts:
        if jurisdiction is None:
            match = _JURISDICTION_RE.search(text)
            if match:
                jurisdiction = match.group(1).lower()
        if topic is None:
            for pattern, canonical in _TOPIC_PATTERNS:
                if pattern.search(text):
                    topic = canonical
                    break
        if jurisdiction and topic:
            break

    if jurisdiction or topic:
        terms = " ".join(part for part in (jurisdiction, topic) if part)
        return f"{terms} {_SEARCH_SUFFIX}"

    user_texts = trailing_texts(conversation, roles=("user",), limit=1)
    if not user_texts:
        return None
    utterance = _WHITESPACE_RE.sub(" ", user_texts[0]).strip()
    if len(utterance) > MAX_FALLBACK_QUERY_CHARS:
        utterance = utterance[:MAX_FALLBACK_QUERY_CHARS].rsplit(" ", 1)[0] or utterance[
            :MAX_FALLBACK_QUERY_CHARS
        ]
    return f"{utterance} {_GENERIC_SCOPE_SUFFIX}"


def recent_user_url(conversation: Sequence[ConversationItem]) -> str | None:
    for text in trailing_texts(conversation, roles=("user",)):
        urls = _URL_RE.findall(text)
        if urls:
            return urls[-1].rstrip(".,;:")
    return None


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _validate_search(
    tool: str, arguments: dict[str, Any], conversation: Sequence[ConversationItem]
) -> ValidatedArguments:
    synthesized: dict[str, Any] = {}
    query = arguments.get("q")
    if _is_blank(query):
        fallback = synthesize_search_query(conversation)
        if fallback is None:
            raise ToolValidationError(
                tool,
                "missing required field 'q' and no query could be derived from the conversation",
                hint=SEARCH_HINT,
            )
        arguments["q"] = fallback
        synthesized["q"] = fallback
    elif not isinstance(query, str) or len(query.strip()) < MIN_QUERY_LENGTH:
        raise ToolValidationError(
            tool,
            f"'q' must be a string of at least {MIN_QUERY_LENGTH} characters",
            hint=SEARCH_HINT,
        )
    else:
        arguments["q"] = query.strip()

    count = arguments.get("count")
    if count is not None:
        if isinstance(count, float) and count.is_integer():
            count = int(count)
        if isinstance(count, bool) or not isinstance(count, int) or not 1 <= count <= 10:
            raise ToolValidationError(
                tool, "'count' must be an integer between 1 and 10", hint=SEARCH_HINT
            )
        arguments["count"] = count
    return ValidatedArguments(arguments, synthesized)


def _validate_fetch(
    tool: str, arguments: dict[str, Any], conversation: Sequence[ConversationItem]
) -> ValidatedArguments:
    synthesized: dict[str, Any] = {}
    url = arguments.get("url")
    if _is_blank(url):
        fallback = recent_user_url(conversation)
        if fallback is None:
            raise ToolValidationError(
                tool, "missing required field 'url'", hint=FETCH_HINT
            )
        arguments["url"] = fallback
        synthesized["url"] = fallback
    elif not isinstance(url, str) or not url.strip().lower().startswith(
        ALLOWED_URL_SCHEMES
    ):
        raise ToolValidationError(
            tool, "'url' must start with http:// or https://", hint=FETCH_HINT
        )
    else:
        arguments["url"] = url.strip()
    return ValidatedArguments(arguments, synthesized)


def _validate_expression(
    tool: str, arguments: dict[str, Any], conversation: Sequence[ConversationItem]
) -> ValidatedArguments:
    expression = arguments.get("expression")
    if isinstance(expression, (int, float)) and not isinstance(expression, bool):
        expression = str(expression)
    if not isinstance(expression, str) or not expression.strip():
        raise ToolValidationError(
            tool,
            "missing required field 'expression'",
            hint=CALCULATOR_HINT,
        )
    arguments["expression"] = expression.strip()
    return ValidatedArguments(arguments)


_VALIDATORS: dict[str, Validator] = {
    "web_search": _validate_search,
    "http_fetch": _validate_fetch,
    "calculator": _validate_expression,
}

_HINTS: dict[str, str] = {
    "web_search": SEARCH_HINT,
    "http_fetch": FETCH_HINT,
    "calculator": CALCULATOR_HINT,
}


__all__ = [
    "CALCULATOR_HINT",
    "FETCH_HINT",
    "SEARCH_HINT",
    "ValidatedArguments",
    "item_text",
    "parse_arguments",
    "recent_user_url",
    "synthesize_search_query",
    "trailing_texts",
    "validate_arguments",
]
