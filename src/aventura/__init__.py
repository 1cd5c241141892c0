"""Agentic retrieval and interactive lorebook editing for interactive fiction."""

__version__ = "0.1.0"
