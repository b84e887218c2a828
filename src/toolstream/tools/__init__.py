"""Built-in tools available to the model."""

from .registry import TOOL_SPECS, build_http_client, build_tool_map
from .selection import select_relevant_tools

__all__ = ["TOOL_SPECS", "build_http_client", "build_tool_map", "select_relevant_tools"]
