"""Conversation history persistence."""

from jobscout.history.store import FileHistoryStore, InMemoryHistoryStore

__all__ = ["FileHistoryStore", "InMemoryHistoryStore"]
