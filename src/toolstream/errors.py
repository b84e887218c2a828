"""Error taxonomy for the orchestration engine."""

from __future__ import annotations

from typing import Any


class ToolstreamError(Exception):
    """Base class for engine errors."""


class ProviderRequestError(ToolstreamError):
    """Wrap transport or API failures when talking to the model provider."""

    def __init__(self, status_code: int, detail: Any):
        super().__init__(str(detail))
        self.status_code = status_code
        self.detail = detail

    @property
    def message(self) -> str:
        if isinstance(self.detail, dict):
            value = self.detail.get("message")
            if isinstance(value, str) and value:
                return value
        return str(self.detail)


class ToolValidationError(ToolstreamError):
    """A tool call's arguments are missing or malformed and cannot be repaired."""

    def __init__(self, tool: str, message: str, *, hint: str | None = None):
        super().__init__(message)
        self.tool = tool
        self.message = message
        self.hint = hint

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": f"Invalid parameters: {self.message}"}
        if self.hint:
            payload["hint"] = self.hint
        return payload


class ToolExecutionError(ToolstreamError):
    """A tool function raised while running."""

    def __init__(self, tool: str, message: str):
        super().__init__(message)
        self.tool = tool
        self.message = message

    def to_payload(self) -> dict[str, Any]:
        return {"error": self.message}


class IterationBudgetExhausted(ToolstreamError):
    """The loop ran out of iterations while the model still wanted tools."""

    def __init__(self, max_iterations: int):
        super().__init__(f"Maximum iterations reached ({max_iterations})")
        self.max_iterations = max_iterations


__all__ = [
    "IterationBudgetExhausted",
    "ProviderRequestError",
    "ToolExecutionError",
    "ToolValidationError",
    "ToolstreamError",
]
