"""Persistence backends for the progression engine"""

from hunter_engine.db.memory_store import InMemoryStore
from hunter_engine.db.protocols import ProgressionStore

__all__ = [
    "InMemoryStore",
    "ProgressionStore",
]
