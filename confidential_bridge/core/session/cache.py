import asyncio
import time
from dataclasses import dataclass
from typing import Dict, List, Optional

from ...config import settings
from ..errors import SessionError
from .models import BalanceSnapshot, SessionKey, session_key


@dataclass
class CacheEntry:
    value: BalanceSnapshot
    expires_at: float


class BalanceCache:
    """In-memory TTL cache of balance snapshots keyed by (holder, asset).

    Only the session owning a key may store a snapshot under it.
    """

    def __init__(self, default_ttl: Optional[int] = None, max_size: int = 1000):
        self.default_ttl = default_ttl or settings.balance_cache_ttl_seconds
        self.max_size = max_size
        self._cache: Dict[SessionKey, CacheEntry] = {}
        self._access_order: List[SessionKey] = []
        self._lock = asyncio.Lock()

    async def get(self, holder: str, asset: str) -> Optional[BalanceSnapshot]:
        key = session_key(holder, asset)
        async with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                return None

            if time.time() > entry.expires_at:
                del self._cache[key]
                if key in self._access_order:
                    self._access_order.remove(key)
                return None

            # Update access order for LRU
            if key in self._access_order:
                self._access_order.remove(key)
            self._access_order.append(key)

            return entry.value

    async def put(self, owner: SessionKey, snapshot: BalanceSnapshot, ttl: Optional[int] = None) -> None:
        if snapshot.key != owner:
            raise SessionError(
                f"Session {owner} cannot write the snapshot of {snapshot.key}",
                owner=str(owner),
            )

        async with self._lock:
            expires_at = time.time() + (ttl or self.default_ttl)
            self._cache[owner] = CacheEntry(value=snapshot, expires_at=expires_at)

            if owner in self._access_order:
                self._access_order.remove(owner)
            self._access_order.append(owner)

            # Evict oldest if over max size
            while len(self._cache) > self.max_size:
                oldest_key = self._access_order.pop(0)
                self._cache.pop(oldest_key, None)

    async def invalidate(self, holder: str, asset: str) -> None:
        key = session_key(holder, asset)
        async with self._lock:
            self._cache.pop(key, None)
            if key in self._access_order:
                self._access_order.remove(key)

    async def clear(self) -> None:
        async with self._lock:
            self._cache.clear()
            self._access_order.clear()

    def size(self) -> int:
        return len(self._cache)
