"""Request deduplication for chat-platform ingress.

Webhook platforms redeliver the same logical message. Identical
(actor, query) pairs arriving close together must cost one pipeline run:

- executed    no matching request in flight or recently completed; the
              factory runs.
- shared      an identical request is in flight; await its result.
- suppressed  an identical request completed less than ``window_s`` ago;
              nothing runs and ``value`` is None.

Keys are content-based, ``(actor_id, sha256(normalized query))``, so event
ids play no part. State lives in an injected DedupStore with explicit TTL
eviction; DedupJanitor runs eviction on an owned background task.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Generic, Protocol, TypeVar

from docqa.config import DedupCfg

logger = logging.getLogger(__name__)

T = TypeVar("T")

DedupKey = tuple[str, str]

EXECUTED = "executed"
SHARED = "shared"
SUPPRESSED = "suppressed"


def dedup_key(actor_id: str, query: str) -> DedupKey:
    """Content key: actor plus a hash of the whitespace-normalized query."""
    normalized = " ".join(query.split())
    return actor_id, hashlib.sha256(normalized.encode("utf-8")).hexdigest()


@dataclass
class DedupResult(Generic[T]):
    status: str
    value: T | None = None


class DedupStore(Protocol):
    """Storage for in-flight and recently completed requests.

    A shared-cache implementation can back multi-process deployments; this
    package ships the in-memory one.
    """

    def get_inflight(self, key: DedupKey) -> tuple[asyncio.Future[Any], float] | None: ...

    def set_inflight(self, key: DedupKey, future: asyncio.Future[Any], started_at: float) -> None: ...

    def clear_inflight(self, key: DedupKey, future: asyncio.Future[Any]) -> None: ...

    def get_completed(self, key: DedupKey) -> float | None: ...

    def set_completed(self, key: DedupKey, completed_at: float) -> None: ...

    def evict(self, now: float, window_s: float, processing_timeout_s: float) -> int: ...


class InMemoryDedupStore:
    """Single-process DedupStore backed by two dicts."""

    def __init__(self) -> None:
        self._inflight: dict[DedupKey, tuple[asyncio.Future[Any], float]] = {}
        self._completed: dict[DedupKey, float] = {}

    def get_inflight(self, key: DedupKey) -> tuple[asyncio.Future[Any], float] | None:
        return self._inflight.get(key)

    def set_inflight(self, key: DedupKey, future: asyncio.Future[Any], started_at: float) -> None:
        self._inflight[key] = (future, started_at)

    def clear_inflight(self, key: DedupKey, future: asyncio.Future[Any]) -> None:
        entry = self._inflight.get(key)
        if entry is not None and entry[0] is future:
            del self._inflight[key]

    def get_completed(self, key: DedupKey) -> float | None:
        return self._completed.get(key)

    def set_completed(self, key: DedupKey, completed_at: float) -> None:
        self._completed[key] = completed_at

    def evict(self, now: float, window_s: float, processing_timeout_s: float) -> int:
        """Drop completions older than the window and stale in-flight entries."""
        expired = [k for k, t in self._completed.items() if now - t >= window_s]
        for key in expired:
            del self._completed[key]
        stale = [k for k, (_, t) in self._inflight.items() if now - t >= processing_timeout_s]
        for key in stale:
            del self._inflight[key]
        return len(expired) + len(stale)

    def __len__(self) -> int:
        return len(self._inflight) + len(self._completed)


class RequestDeduplicator:
    """Collapse duplicate (actor, query) requests into one invocation.

    Args:
        store: Where in-flight and completed requests are tracked.
        window_s: How long a completed request suppresses identical repeats.
        processing_timeout_s: After this long an in-flight entry is treated
            as abandoned and no longer shared.
        clock: Monotonic time source; tests inject a fake.
    """

    def __init__(
        self,
        store: DedupStore | None = None,
        window_s: float = 3.0,
        processing_timeout_s: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store if store is not None else InMemoryDedupStore()
        self.window_s = window_s
        self.processing_timeout_s = processing_timeout_s
        self._clock = clock

    @classmethod
    def from_config(cls, cfg: DedupCfg, store: DedupStore | None = None) -> RequestDeduplicator:
        return cls(
            store=store,
            window_s=cfg.window_ms / 1000,
            processing_timeout_s=cfg.processing_timeout_ms / 1000,
        )

    async def run(
        self,
        actor_id: str,
        query: str,
        factory: Callable[[], Awaitable[T]],
    ) -> DedupResult[T]:
        """Run *factory* unless an identical request is in flight or just finished.

        Failures of the executing request propagate to every sharer and are
        not recorded as completions, so a retry is not suppressed.
        """
        key = dedup_key(actor_id, query)
        now = self._clock()

        inflight = self.store.get_inflight(key)
        if inflight is not None:
            future, started_at = inflight
            if now - started_at < self.processing_timeout_s:
                logger.debug("Sharing in-flight request for actor %s", actor_id)
                value = await asyncio.shield(future)
                return DedupResult(SHARED, value)
            logger.warning(
                "In-flight request for actor %s exceeded %.0fs; starting a new one",
                actor_id,
                self.processing_timeout_s,
            )
            self.store.clear_inflight(key, future)

        completed_at = self.store.get_completed(key)
        if completed_at is not None and now - completed_at < self.window_s:
            logger.info(
                "Suppressed duplicate request from actor %s (%.0f ms after completion)",
                actor_id,
                (now - completed_at) * 1000,
            )
            return DedupResult(SUPPRESSED)

        future = asyncio.get_running_loop().create_future()
        self.store.set_inflight(key, future, now)
        try:
            value = await factory()
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as exc:
            future.set_exception(exc)
            # Mark retrieved so an unshared failure does not warn at GC time.
            future.exception()
            raise
        else:
            future.set_result(value)
            self.store.set_completed(key, self._clock())
            return DedupResult(EXECUTED, value)
        finally:
            self.store.clear_inflight(key, future)

    def evict(self) -> int:
        """Apply TTL eviction now. Returns the number of entries removed."""
        removed = self.store.evict(self._clock(), self.window_s, self.processing_timeout_s)
        if removed:
            logger.debug("Evicted %d dedup entries", removed)
        return removed


class DedupJanitor:
    """Owned background task that periodically evicts expired dedup entries.

    Nothing is scheduled until the host calls start(); stop() cancels and
    awaits the task.
    """

    def __init__(self, deduplicator: RequestDeduplicator, interval_s: float = 30.0) -> None:
        self.deduplicator = deduplicator
        self.interval_s = interval_s
        self._running = False
        self._task: asyncio.Task[None] | None = None

    @classmethod
    def from_config(cls, deduplicator: RequestDeduplicator, cfg: DedupCfg) -> DedupJanitor:
        return cls(deduplicator, interval_s=cfg.cleanup_interval_ms / 1000)

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            logger.warning("Dedup janitor already running")
            return
        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info("Dedup janitor started (interval=%.1fs)", self.interval_s)

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Dedup janitor stopped")

    async def _run_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.interval_s)
            try:
                self.deduplicator.evict()
            except Exception as exc:
                logger.error("Dedup eviction failed: %s", exc)
