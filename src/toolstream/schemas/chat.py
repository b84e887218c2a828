"""Pydantic models for chat requests and responses."""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class ChatMessage(BaseModel):
    """Represents a single chat message."""

    role: Literal["system", "developer", "user", "assistant"]
    content: Union[str, List[Dict[str, Any]]]

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_conversation_item(self) -> Dict[str, Any]:
        return {"role": self.role, "content": self.content}


class ChatStreamRequest(BaseModel):
    """Incoming chat request payload."""

    messages: List[ChatMessage] = Field(min_length=1)
    model: Optional[str] = None
    max_iterations: Optional[int] = Field(default=None, ge=1, le=50)
    reasoning_effort: Optional[Literal["low", "medium", "high"]] = None
    verbosity: Optional[Literal["low", "medium", "high"]] = None

    # Restrict the run to these tool names; None selects tools heuristically.
    tools: Optional[List[str]] = None

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def latest_user_text(self) -> str:
        for message in reversed(self.messages):
            if message.role != "user":
                continue
            if isinstance(message.content, str):
                return message.content
            fragments = [
                part.get("text", "")
                for part in message.content
                if isinstance(part, dict) and isinstance(part.get("text"), str)
            ]
            return " ".join(fragments)
        return ""


class ChatCompletionResponse(BaseModel):
    """Buffered result of a full orchestration run."""

    text: str
    citations: List[str] = Field(default_factory=list)


__all__ = ["ChatCompletionResponse", "ChatMessage", "ChatStreamRequest"]
