"""Conversation history synchronization against remote object storage."""

__version__ = "0.1.0"
