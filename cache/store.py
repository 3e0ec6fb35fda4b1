"""
Cache-aside store with TTL expiry.

Keys are caller-built strings; the repository decides how they are stored.
Every public operation fails soft: a broken backend degrades to cache misses
and logged warnings, never to a failed request.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Protocol, Set, Tuple

from models.domain import CacheEntry
from utils.errors import CacheError

log = logging.getLogger("rxfill.cache")


class CacheRepository(Protocol):
    async def get(self, key: str) -> Optional[CacheEntry]: ...

    async def put(self, entry: CacheEntry) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def delete_by_key_prefix(self, prefix: str) -> int: ...

    async def delete_expired(self, now: float, limit: int) -> int: ...

    async def probe(self, timeout_s: float = 0.20) -> Dict[str, Any]: ...


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    errors: int = 0
    ops: int = 0
    total_ms: float = 0.0

    def record(self, started: float) -> None:
        self.ops += 1
        self.total_ms += (time.perf_counter() - started) * 1000.0

    def to_dict(self) -> Dict[str, Any]:
        lookups = self.hits + self.misses
        return {
            "hits": self.hits,
            "misses": self.misses,
            "errors": self.errors,
            "hit_rate": (self.hits / lookups) if lookups else 0.0,
            "avg_latency_ms": (self.total_ms / self.ops) if self.ops else 0.0,
        }


class CacheStore:
    def __init__(
        self,
        repo: CacheRepository,
        default_ttl_s: float = 24 * 60 * 60,
        sweep_interval_s: float = 60 * 60,
        sweep_batch_size: int = 100,
        clock: Callable[[], float] = time.time,
    ):
        self.repo = repo
        self.default_ttl_s = default_ttl_s
        self.sweep_interval_s = sweep_interval_s
        self.sweep_batch_size = sweep_batch_size
        self.clock = clock
        self.stats = CacheStats()
        self._pending: Set[asyncio.Task] = set()
        self._sweeper: Optional[asyncio.Task] = None

    async def get(self, key: str) -> Tuple[Any, bool]:
        """(value, found). Backend errors and expired entries are both misses."""
        started = time.perf_counter()
        try:
            entry = await self.repo.get(key)
        except Exception as e:
            self._soft_fail("cache_get_failed", key, e)
            self.stats.misses += 1
            return None, False
        finally:
            self.stats.record(started)

        if entry is None:
            self.stats.misses += 1
            return None, False
        if entry.is_expired(self.clock()):
            self.stats.misses += 1
            self._schedule_delete(key)
            return None, False
        self.stats.hits += 1
        return entry.value, True

    async def set(self, key: str, value: Any, ttl_s: Optional[float] = None) -> None:
        ttl = self.default_ttl_s if ttl_s is None else ttl_s
        now = self.clock()
        entry = CacheEntry(key=key, value=value, created_at=now, expires_at=now + ttl, ttl=ttl)
        started = time.perf_counter()
        try:
            await self.repo.put(entry)
        except Exception as e:
            self._soft_fail("cache_set_failed", key, e)
        finally:
            self.stats.record(started)

    async def invalidate(self, key: str) -> None:
        try:
            await self.repo.delete(key)
        except Exception as e:
            self._soft_fail("cache_invalidate_failed", key, e)

    async def invalidate_prefix(self, prefix: str) -> int:
        try:
            n = await self.repo.delete_by_key_prefix(prefix)
        except Exception as e:
            self._soft_fail("cache_invalidate_prefix_failed", prefix, e)
            return 0
        log.info("cache_prefix_invalidated", extra={"extra": {"prefix": prefix, "deleted": n}})
        return n

    async def sweep_expired(self) -> int:
        """Delete expired entries in bounded batches until a short batch comes back."""
        total = 0
        while True:
            try:
                n = await self.repo.delete_expired(self.clock(), self.sweep_batch_size)
            except Exception as e:
                self._soft_fail("cache_sweep_failed", "", e)
                break
            total += n
            if n < self.sweep_batch_size:
                break
        if total:
            log.info("cache_swept", extra={"extra": {"deleted": total}})
        return total

    async def probe(self) -> Dict[str, Any]:
        started = time.perf_counter()
        try:
            info = await self.repo.probe()
        except Exception as e:
            return {"ok": False, "error_type": type(e).__name__}
        return {"ok": True, "latency_ms": int((time.perf_counter() - started) * 1000), **info}

    def start_sweeper(self) -> None:
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self._sweep_loop())

    async def stop_sweeper(self) -> None:
        task, self._sweeper = self._sweeper, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval_s)
            await self.sweep_expired()

    def _schedule_delete(self, key: str) -> None:
        try:
            task = asyncio.get_running_loop().create_task(self.invalidate(key))
        except RuntimeError:
            return
        # keep a strong ref until done, the loop only holds weak ones
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def _soft_fail(self, event: str, key: str, exc: Exception) -> None:
        self.stats.errors += 1
        err = exc if isinstance(exc, CacheError) else CacheError(str(exc))
        log.warning(
            event,
            extra={"extra": {"event": event, "key": key, "error_type": type(exc).__name__, "code": err.code}},
        )
