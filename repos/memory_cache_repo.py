from __future__ import annotations

from typing import Any, Dict, Optional

from models.domain import CacheEntry


class InMemoryCacheRepository:
    """Process-local stand-in for FirestoreCacheRepository (CACHE_BACKEND=memory, tests)."""

    def __init__(self):
        self._docs: Dict[str, CacheEntry] = {}

    def __len__(self) -> int:
        return len(self._docs)

    async def get(self, key: str) -> Optional[CacheEntry]:
        return self._docs.get(key)

    async def put(self, entry: CacheEntry) -> None:
        self._docs[entry.key] = entry

    async def delete(self, key: str) -> None:
        self._docs.pop(key, None)

    async def delete_by_key_prefix(self, prefix: str) -> int:
        doomed = [k for k in self._docs if k.startswith(prefix)]
        for k in doomed:
            del self._docs[k]
        return len(doomed)

    async def delete_expired(self, now: float, limit: int) -> int:
        doomed = [k for k, e in self._docs.items() if e.expires_at <= now][:limit]
        for k in doomed:
            del self._docs[k]
        return len(doomed)

    async def probe(self, timeout_s: float = 0.20) -> Dict[str, Any]:
        return {"backend": "memory", "entries": len(self._docs)}
