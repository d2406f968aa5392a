"""
Store implementations: in-memory and SQLite.
"""

from .memory_store import InMemoryContentSource, InMemoryEmbeddingStore, InMemoryQueueStore
from .sqlite_store import SQLiteContentSource, SQLiteDatabase, SQLiteEmbeddingStore, SQLiteQueueStore

__all__ = [
    'InMemoryContentSource',
    'InMemoryEmbeddingStore',
    'InMemoryQueueStore',
    'SQLiteDatabase',
    'SQLiteContentSource',
    'SQLiteEmbeddingStore',
    'SQLiteQueueStore',
]
