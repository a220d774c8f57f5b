"""Durable storage for memories, legacy cluster records and the oblivion log."""

from memory_garden.storage.base import MemoryRepository, StoredClusterRecord
from memory_garden.storage.file_store import JsonFileRepository
from memory_garden.storage.memory_store import InMemoryRepository

__all__ = [
    "MemoryRepository",
    "StoredClusterRecord",
    "JsonFileRepository",
    "InMemoryRepository",
]
