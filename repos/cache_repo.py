from __future__ import annotations

from typing import Any, Dict, Optional

from google.cloud.firestore import AsyncClient

from models.domain import CacheEntry
from models.schema import COL_CALCULATION_CACHE, COL_SYSTEM, DOC_HEALTHZ
from storage.firestore_client import get_async_firestore_client
from utils.ids import cache_doc_id

# Firestore caps a write batch at 500 operations
_MAX_BATCH = 500


class FirestoreCacheRepository:
    """calculation_cache/{sha256(key)} -> {key, value, created_at, expires_at, ttl}.

    Raises whatever the client raises; CacheStore owns the fail-soft policy.
    """

    def __init__(self, db: Optional[AsyncClient] = None, collection: str = COL_CALCULATION_CACHE):
        self.db = db or get_async_firestore_client()
        self.collection = collection

    def _col(self):
        return self.db.collection(self.collection)

    async def get(self, key: str) -> Optional[CacheEntry]:
        snap = await self._col().document(cache_doc_id(key)).get()
        if not snap.exists:
            return None
        return CacheEntry.from_doc(snap.to_dict() or {})

    async def put(self, entry: CacheEntry) -> None:
        await self._col().document(cache_doc_id(entry.key)).set(entry.to_doc())

    async def delete(self, key: str) -> None:
        await self._col().document(cache_doc_id(key)).delete()

    async def delete_by_key_prefix(self, prefix: str) -> int:
        # plain key is stored on the doc so prefix scans stay possible despite hashed ids
        q = (
            self._col()
            .where("key", ">=", prefix)
            .where("key", "<", prefix + "\uf8ff")
        )
        return await self._delete_query(q)

    async def delete_expired(self, now: float, limit: int) -> int:
        q = self._col().where("expires_at", "<=", now).limit(limit)
        return await self._delete_query(q)

    async def _delete_query(self, q) -> int:
        deleted = 0
        batch = self.db.batch()
        pending = 0
        async for snap in q.stream():
            batch.delete(snap.reference)
            pending += 1
            if pending >= _MAX_BATCH:
                await batch.commit()
                deleted += pending
                batch = self.db.batch()
                pending = 0
        if pending:
            await batch.commit()
            deleted += pending
        return deleted

    async def probe(self, timeout_s: float = 0.20) -> Dict[str, Any]:
        # Read-only: a single doc get with timeout.
        await self.db.collection(COL_SYSTEM).document(DOC_HEALTHZ).get(timeout=timeout_s)
        return {"backend": "firestore"}
