"""
Override Store - read-modify-write access to per-page override lists.

The store does not persist anything itself; it owns the list semantics
(upsert by selector, delete, clear) on top of a KeyValueBackend. Storage
is a convenience, not a system of record: every backend failure is logged
and degrades to "empty list" or "no-op".
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, TYPE_CHECKING
from urllib.parse import urlsplit
import logging
import time

from pagepatch.layers.storage.backends import StorageError

if TYPE_CHECKING:
    from pagepatch.layers.storage.backends import KeyValueBackend

logger = logging.getLogger(__name__)

DEFAULT_PORTS = {"http": 80, "https": 443, "ws": 80, "wss": 443, "ftp": 21}


@dataclass
class Override:
    """A persisted instruction to replace one element's text."""
    selector: str
    text: str
    timestamp: int  # ms since epoch

    def to_dict(self) -> Dict[str, Any]:
        return {
            "selector": self.selector,
            "text": self.text,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Any) -> Optional["Override"]:
        """Build from a stored record, or None if the record is malformed."""
        if not isinstance(data, dict):
            return None
        selector = data.get("selector")
        text = data.get("text")
        timestamp = data.get("timestamp", 0)
        if not isinstance(selector, str) or not selector or not isinstance(text, str):
            return None
        if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
            timestamp = 0
        return cls(selector=selector, text=text, timestamp=int(timestamp))


def get_page_key(url: str) -> str:
    """
    Normalise a URL to ``origin + pathname``.

    Query string and fragment are dropped, so every variant of one page
    shares its overrides. Unparsable URLs map to "" (no persistence).

    Example:
        >>> get_page_key("https://A.com:443/p?x=1#y")
        'https://a.com/p'
    """
    if not isinstance(url, str) or not url.strip():
        return ""
    try:
        parts = urlsplit(url.strip())
        scheme = parts.scheme.lower()
        host = parts.hostname
        port = parts.port
    except ValueError:
        return ""

    if not scheme:
        return ""
    path = parts.path or "/"

    if scheme == "file":
        return f"file://{path}"
    if not host:
        return ""

    if ":" in host:
        host = f"[{host}]"
    origin = f"{scheme}://{host}"
    if port is not None and DEFAULT_PORTS.get(scheme) != port:
        origin += f":{port}"
    return origin + path


def now_ms() -> int:
    return int(time.time() * 1000)


class OverrideStore:
    """
    Async accessor for override lists keyed by page identity.

    Writes replace the whole list (last write wins). Two concurrent saves
    on the same key can race.

    Example:
        >>> store = OverrideStore(MemoryBackend())
        >>> await store.save(key, 'span[data-testid="hero"]', "World")
        >>> [o.text for o in await store.load(key)]
        ['World']
    """

    def __init__(self, backend: "KeyValueBackend"):
        self.backend = backend

    async def load(self, key: str) -> List[Override]:
        if not key:
            return []
        try:
            raw = await self.backend.get(key)
        except StorageError as e:
            logger.warning(f"[OverrideStore] Load failed for {key}: {e}")
            return []
        except Exception as e:
            logger.warning(f"[OverrideStore] Backend error on load for {key}: {e}")
            return []
        if not isinstance(raw, list):
            if raw is not None:
                logger.warning(f"[OverrideStore] Ignoring malformed list for {key}")
            return []

        overrides = []
        for entry in raw:
            override = Override.from_dict(entry)
            if override is None:
                logger.debug(f"[OverrideStore] Dropping malformed record for {key}: {entry!r}")
                continue
            overrides.append(override)
        return overrides

    async def save(self, key: str, selector: str, text: str) -> Optional[Override]:
        """Upsert: replace any record with the same selector, append the new one."""
        if not key:
            return None
        existing = await self.load(key)
        record = Override(selector=selector, text=text, timestamp=now_ms())
        updated = [o for o in existing if o.selector != selector]
        updated.append(record)
        await self._write(key, updated)
        logger.info(f"[OverrideStore] Saved {selector} on {key}")
        return record

    async def delete(self, key: str, selector: str) -> None:
        if not key:
            return
        existing = await self.load(key)
        await self._write(key, [o for o in existing if o.selector != selector])

    async def clear(self, key: str) -> None:
        if not key:
            return
        await self._write(key, [])

    async def _write(self, key: str, overrides: List[Override]) -> None:
        try:
            await self.backend.set(key, [o.to_dict() for o in overrides])
        except Exception as e:
            logger.warning(f"[OverrideStore] Write failed for {key}: {e}")
