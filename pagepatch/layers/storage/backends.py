"""
Key-value backends for the override store.

A backend maps a page identity key to a JSON-serialisable value. Both
operations are coroutines and may raise StorageError; the OverrideStore
decides how failures degrade.
"""

from typing import Any, Dict, List, Optional, Protocol
import asyncio
import copy
import json
import logging
import os
import tempfile

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when a backend cannot read or write."""


class KeyValueBackend(Protocol):
    async def get(self, key: str) -> Optional[Any]:
        ...

    async def set(self, key: str, value: Any) -> None:
        ...


class MemoryBackend:
    """In-process backend. Values are deep-copied in and out."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, Any] = copy.deepcopy(initial) if initial else {}

    async def get(self, key: str) -> Optional[Any]:
        return copy.deepcopy(self._data.get(key))

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    async def keys(self) -> List[str]:
        return list(self._data)


class JsonFileBackend:
    """
    All keys in one JSON object on disk.

    Writes go to a temporary file in the same directory and are moved into
    place with ``os.replace`` so a crash never leaves a half-written store.
    File I/O runs in a worker thread to keep the event loop responsive.

    Example:
        >>> backend = JsonFileBackend("~/.pagepatch/overrides.json")
        >>> await backend.set("https://a.com/p", [])
    """

    def __init__(self, path: str):
        self.path = os.path.abspath(os.path.expanduser(path))
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Optional[Any]:
        data = await asyncio.to_thread(self._read_all)
        return data.get(key)

    async def set(self, key: str, value: Any) -> None:
        async with self._lock:
            await asyncio.to_thread(self._write_key, key, value)

    async def keys(self) -> List[str]:
        data = await asyncio.to_thread(self._read_all)
        return list(data)

    def _read_all(self) -> Dict[str, Any]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise StorageError(f"Cannot read {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise StorageError(f"{self.path} does not hold a JSON object")
        return data

    def _write_key(self, key: str, value: Any) -> None:
        data = self._read_all()
        data[key] = value
        directory = os.path.dirname(self.path)
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(prefix=".overrides-", suffix=".json", dir=directory)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f, indent=2, ensure_ascii=False)
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.remove(tmp_path)
                raise
        except (OSError, TypeError, ValueError) as e:
            raise StorageError(f"Cannot write {self.path}: {e}") from e
