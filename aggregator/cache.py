"""
In-memory result cache with per-entry TTL.

Advisory only: a hit returns a report computed by the same engine on an
equivalent snapshot. The engine never reads or invalidates the cache itself.
"""
import hashlib
import json
import logging
import threading
import time
from datetime import datetime
from typing import Any, Dict, Optional, Sequence, Tuple

from .schemas import Granularity, GroupDefinition

logger = logging.getLogger(__name__)


class MemoryCache:
    """Simple thread-safe in-memory cache."""

    def __init__(self, default_ttl: int = 300, cleanup_interval: int = 60):
        """
        Initialize the cache.

        Args:
            default_ttl: Default TTL in seconds (0 means no expiration)
            cleanup_interval: Minimum seconds between expired-entry sweeps
        """
        self.default_ttl = default_ttl
        self.cleanup_interval = cleanup_interval
        self._entries: Dict[str, Tuple[Any, Optional[float]]] = {}
        self._lock = threading.Lock()
        self._last_cleanup = time.monotonic()

    def get(self, key: str) -> Optional[Any]:
        """Cached value, or None when missing or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expiry = entry
            if expiry is not None and expiry <= time.monotonic():
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: Any, ttl: Optional[int] = None):
        """Store a value; ``ttl`` falls back to the default TTL."""
        ttl = self.default_ttl if ttl is None else ttl
        now = time.monotonic()
        expiry = now + ttl if ttl > 0 else None
        with self._lock:
            self._entries[key] = (value, expiry)
            if now - self._last_cleanup >= self.cleanup_interval:
                self._remove_expired(now)

    def delete(self, key: str):
        """Remove a key if present."""
        with self._lock:
            self._entries.pop(key, None)

    def clear(self):
        """Remove every entry."""
        with self._lock:
            self._entries.clear()

    def __len__(self):
        with self._lock:
            return len(self._entries)

    def _remove_expired(self, now: float):
        expired = [
            key for key, (_, expiry) in self._entries.items()
            if expiry is not None and expiry <= now
        ]
        for key in expired:
            del self._entries[key]
        self._last_cleanup = now
        if expired:
            logger.debug(f"Cleaned up {len(expired)} expired cache entries")


def make_cache_key(
    report_type: str,
    groups: Sequence[GroupDefinition],
    start_time: datetime,
    end_time: datetime,
    granularity: Optional[Granularity],
    high_value_threshold: Optional[int],
) -> str:
    """Deterministic key for a report over a given snapshot definition."""
    payload = {
        "report": report_type,
        "groups": [
            [group.id, sorted(group.member_character_ids)]
            for group in groups
        ],
        "start": start_time.isoformat(),
        "end": end_time.isoformat(),
        "granularity": granularity.value if granularity else None,
        "threshold": str(high_value_threshold) if high_value_threshold is not None else None,
    }
    digest = hashlib.sha256(json.dumps(payload, sort_keys=True).encode("utf-8")).hexdigest()
    return f"report:{report_type}:{digest}"
