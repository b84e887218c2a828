"""Chat orchestration package."""

from .orchestrator import ChatOrchestrator

__all__ = ["ChatOrchestrator"]
