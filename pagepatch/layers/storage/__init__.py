"""Storage Layer - Override lists over key-value backends."""

from pagepatch.layers.storage.backends import JsonFileBackend, MemoryBackend, StorageError
from pagepatch.layers.storage.store import Override, OverrideStore, get_page_key

__all__ = [
    "JsonFileBackend",
    "MemoryBackend",
    "Override",
    "OverrideStore",
    "StorageError",
    "get_page_key",
]
