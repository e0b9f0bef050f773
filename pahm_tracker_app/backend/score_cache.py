# backend/score_cache.py
"""
Memoization for composed scores.

Entries are keyed by a hash of the user id, the record store's per-collection
last-modified markers and the evaluation date. A write to any collection
changes its marker, so the next lookup misses without any invalidation call.
"""
import copy
import hashlib
import json
from datetime import date
from typing import Any, Dict, Optional

from backend.instrumentation import log_cache_event


def cache_key(user_id: str, markers: Dict[str, Optional[str]], today: date, operation: str = 'happiness') -> str:
    material = json.dumps(
        {'user_id': user_id, 'markers': markers, 'today': today.isoformat(), 'operation': operation},
        sort_keys=True,
    )
    return hashlib.sha256(material.encode('utf-8')).hexdigest()


class ScoreCache:
    """Bounded in-memory cache; oldest entries are dropped first."""

    def __init__(self, max_entries: int = 256):
        self.max_entries = max_entries
        self._entries: Dict[str, Any] = {}
        self.hits = 0
        self.misses = 0

    def get(self, key: str, user_id: Optional[str] = None) -> Optional[Any]:
        if key in self._entries:
            self.hits += 1
            log_cache_event('hit', user_id, key=key[:12])
            return copy.deepcopy(self._entries[key])
        self.misses += 1
        log_cache_event('miss', user_id, key=key[:12])
        return None

    def put(self, key: str, value: Any) -> None:
        if key not in self._entries and len(self._entries) >= self.max_entries:
            oldest = next(iter(self._entries))
            del self._entries[oldest]
        self._entries[key] = copy.deepcopy(value)

    def invalidate(self, user_id: Optional[str] = None) -> None:
        """Drop every entry. Keys are hashes, so per-user eviction is not possible."""
        log_cache_event('invalidate', user_id, entries=len(self._entries))
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
