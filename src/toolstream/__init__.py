"""Streaming, tool-augmented model orchestration service."""

__version__ = "0.1.0"
