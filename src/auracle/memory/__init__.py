"""Memory helpers for auracle."""

from .store import MemoryFile, MemoryRecord, MemoryStore, WindowEntry

__all__ = ["MemoryFile", "MemoryRecord", "MemoryStore", "WindowEntry"]
