"""
Engine pool: bounded, leased access to render-engine instances.

The pool is the only mutable state shared between conversions. Accounting is
guarded by a threading.Lock held for bookkeeping only, so the pool works for
requests running on different threads and different event loops. Waiting
for a slot polls with asyncio.sleep, which keeps every wait cancellable and
bounded by the caller's deadline.
"""

import asyncio
import inspect
import itertools
import threading
import time
from contextlib import asynccontextmanager
from enum import Enum
from typing import Callable, Dict, List, Mapping, Optional

from .engines.base import StrategyKind
from .errors import ResourceExhausted
from .logger import ConsoleLogger


class BackpressurePolicy(str, Enum):
    QUEUE = "queue"
    REJECT = "reject"


class EngineLease:
    """Exclusive, time-bounded ownership of one engine instance.

    Strategies attach the instance's close/stop callables with ``adopt``; they
    run in reverse order when the lease is closed.
    """

    def __init__(self, lease_id: int, kind: StrategyKind, acquired_at: float, expires_at: float,
                 logger: ConsoleLogger):
        self.lease_id = lease_id
        self.kind = kind
        self.acquired_at = acquired_at
        self.expires_at = expires_at
        self.released = False
        self._logger = logger
        self._closers: List[Callable] = []

    def __repr__(self) -> str:
        return f"EngineLease(id={self.lease_id}, kind={self.kind.value}, released={self.released})"

    def adopt(self, closer: Callable) -> Callable:
        """Register a sync or async callable that releases an engine resource."""
        self._closers.append(closer)
        return closer

    def expired(self, now: Optional[float] = None) -> bool:
        return (now if now is not None else time.monotonic()) >= self.expires_at

    async def aclose(self) -> None:
        """Run adopted closers, last adopted first."""
        while self._closers:
            closer = self._closers.pop()
            try:
                result = closer()
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                self._logger.log_warning(f"Lease {self.lease_id} ({self.kind.value}): failed to close engine resource: {e}")


class EnginePool:
    """Per-kind concurrency limits with queue or reject backpressure."""

    def __init__(
        self,
        limits: Mapping[StrategyKind, Optional[int]],
        policy: BackpressurePolicy = BackpressurePolicy.QUEUE,
        acquire_timeout: float = 5.0,
        lease_ttl: float = 120.0,
        poll_interval: float = 0.05,
        logger: ConsoleLogger = None,
    ):
        self.limits = dict(limits)
        self.policy = BackpressurePolicy(policy)
        self.acquire_timeout = acquire_timeout
        self.lease_ttl = lease_ttl
        self.poll_interval = poll_interval
        self.logger = logger or ConsoleLogger()
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._held: Dict[int, EngineLease] = {}
        self._counts: Dict[StrategyKind, int] = {kind: 0 for kind in StrategyKind}

    def held_count(self, kind: Optional[StrategyKind] = None) -> int:
        with self._lock:
            if kind is None:
                return len(self._held)
            return self._counts[kind]

    def _reclaim_expired(self, kind: StrategyKind, now: float) -> None:
        # Caller holds the lock; bounded by the kind's limit
        expired = [lease for lease in self._held.values() if lease.kind == kind and lease.expired(now)]
        for lease in expired:
            del self._held[lease.lease_id]
            self._counts[kind] -= 1
            self.logger.log_warning(f"Reclaimed expired lease {lease.lease_id} ({kind.value})")

    def _try_acquire(self, kind: StrategyKind) -> Optional[EngineLease]:
        with self._lock:
            now = time.monotonic()
            limit = self.limits.get(kind)
            if limit is not None and self._counts[kind] >= limit:
                self._reclaim_expired(kind, now)
                if self._counts[kind] >= limit:
                    return None
            lease = EngineLease(next(self._ids), kind, now, now + self.lease_ttl, self.logger)
            self._held[lease.lease_id] = lease
            self._counts[kind] += 1
            return lease

    async def acquire(self, kind: StrategyKind, deadline: float) -> EngineLease:
        """Lease a slot for ``kind``, waiting no longer than the policy and deadline allow.

        Raises:
            ResourceExhausted: pool saturated (immediately under the reject policy,
                after the bounded wait under the queue policy)
        """
        wait_until = min(deadline, time.monotonic() + self.acquire_timeout)
        while True:
            lease = self._try_acquire(kind)
            if lease is not None:
                self.logger.log_debug(f"Acquired lease {lease.lease_id} ({kind.value})")
                return lease
            if self.policy is BackpressurePolicy.REJECT:
                raise ResourceExhausted(
                    f"all {self.limits.get(kind)} {kind.value} engine slots are busy",
                    tier=kind.value, rejected=True,
                )
            left = wait_until - time.monotonic()
            if left <= 0:
                raise ResourceExhausted(f"no {kind.value} engine slot freed up in time", tier=kind.value)
            await asyncio.sleep(min(self.poll_interval, left))

    def release(self, lease: EngineLease) -> None:
        """Return the slot. Releasing twice, or after reclamation, is a no-op."""
        with self._lock:
            if self._held.pop(lease.lease_id, None) is not None:
                self._counts[lease.kind] -= 1
        if not lease.released:
            lease.released = True
            self.logger.log_debug(f"Released lease {lease.lease_id} ({lease.kind.value})")

    @asynccontextmanager
    async def lease(self, kind: StrategyKind, deadline: float):
        """Scoped lease: engine resources are closed and the slot released on every exit path."""
        engine_lease = await self.acquire(kind, deadline)
        try:
            yield engine_lease
        finally:
            try:
                await engine_lease.aclose()
            finally:
                self.release(engine_lease)
