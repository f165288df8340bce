"""
Fixed-window rate limiter keyed by client identity.

Each identity gets a counter that lives until ``window_reset_at``. A request
arriving at or after that instant always opens a fresh window, regardless of
how many requests the old one saw. Expired counters are evicted by a sweep
that runs with a small probability on each request instead of on a timer, so
memory is bounded statistically rather than strictly.

The record table sits behind ``RateLimitStore`` so tests can use an isolated
store and a fake clock, and a shared store can be dropped in when the gate
runs in several processes.
"""

import logging
import math
import random
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, ContextManager, Dict, List, Optional

from stockgate.managers.config.config_models import SecurityPolicy

logger = logging.getLogger(__name__)


@dataclass
class RateLimitRecord:
    """Request counter for one identity within one window."""

    identity: str
    count: int
    window_reset_at: float

    def expired(self, now: float) -> bool:
        return now >= self.window_reset_at


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of one rate-limit check."""

    limited: bool
    limit: int
    remaining: int
    reset_at: float
    retry_after: Optional[int] = None


class RateLimitStore(ABC):
    """Storage for rate-limit records.

    ``lock(key)`` must serialize read-modify-write cycles on one key; the
    limiter holds it around ``get`` and ``set``.
    """

    @abstractmethod
    def get(self, key: str) -> Optional[RateLimitRecord]:
        ...

    @abstractmethod
    def set(self, record: RateLimitRecord) -> None:
        ...

    @abstractmethod
    def sweep(self, now: float) -> int:
        """Delete expired records and return how many were removed."""

    @abstractmethod
    def lock(self, key: str) -> ContextManager:
        ...


class InMemoryRateLimitStore(RateLimitStore):
    """Process-local store guarded by a fixed set of striped locks."""

    def __init__(self, lock_stripes: int = 64):
        if lock_stripes < 1:
            raise ValueError("lock_stripes must be at least 1")
        self._records: Dict[str, RateLimitRecord] = {}
        self._locks: List[threading.Lock] = [threading.Lock() for _ in range(lock_stripes)]

    def lock(self, key: str) -> ContextManager:
        return self._locks[hash(key) % len(self._locks)]

    def get(self, key: str) -> Optional[RateLimitRecord]:
        return self._records.get(key)

    def set(self, record: RateLimitRecord) -> None:
        self._records[record.identity] = record

    def sweep(self, now: float) -> int:
        removed = 0
        for key in list(self._records):
            with self.lock(key):
                record = self._records.get(key)
                if record is not None and record.expired(now):
                    del self._records[key]
                    removed += 1
        return removed

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, key: object) -> bool:
        return key in self._records


class RateLimiter:
    """Counts requests per identity and decides when to reject them.

    Example:
        limiter = RateLimiter(max_requests=100, window_seconds=900)

        if limiter.check_and_increment("203.0.113.7:GET:/api/portfolio"):
            ...  # reject with 429
    """

    def __init__(
        self,
        store: Optional[RateLimitStore] = None,
        max_requests: int = 500,
        window_seconds: float = 900.0,
        sweep_probability: float = 0.01,
        clock: Callable[[], float] = time.time,
        rng: Callable[[], float] = random.random,
    ):
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.store = store if store is not None else InMemoryRateLimitStore()
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.sweep_probability = sweep_probability
        self._clock = clock
        self._rng = rng

    @classmethod
    def from_policy(
        cls,
        policy: SecurityPolicy,
        store: Optional[RateLimitStore] = None,
        clock: Callable[[], float] = time.time,
        rng: Callable[[], float] = random.random,
    ) -> "RateLimiter":
        return cls(
            store=store,
            max_requests=policy.max_requests,
            window_seconds=policy.window_seconds,
            sweep_probability=policy.sweep_probability,
            clock=clock,
            rng=rng,
        )

    def hit(self, identity: str) -> RateLimitDecision:
        """Record one request for ``identity`` and report whether it is over quota."""
        with self.store.lock(identity):
            now = self._clock()
            record = self.store.get(identity)

            # Expiry is checked before the quota so a stale full window never blocks.
            if record is None or record.expired(now):
                record = RateLimitRecord(
                    identity=identity, count=1, window_reset_at=now + self.window_seconds
                )
                self.store.set(record)
                return RateLimitDecision(
                    limited=False,
                    limit=self.max_requests,
                    remaining=self.max_requests - 1,
                    reset_at=record.window_reset_at,
                )

            if record.count >= self.max_requests:
                retry_after = max(1, math.ceil(record.window_reset_at - now))
                return RateLimitDecision(
                    limited=True,
                    limit=self.max_requests,
                    remaining=0,
                    reset_at=record.window_reset_at,
                    retry_after=retry_after,
                )

            record.count += 1
            self.store.set(record)
            return RateLimitDecision(
                limited=False,
                limit=self.max_requests,
                remaining=self.max_requests - record.count,
                reset_at=record.window_reset_at,
            )

    def check_and_increment(self, identity: str) -> bool:
        """Return True when the request must be rejected."""
        return self.hit(identity).limited

    def sweep(self) -> int:
        removed = self.store.sweep(self._clock())
        if removed:
            logger.debug(f"Evicted {removed} expired rate limit records")
        return removed

    def maybe_sweep(self) -> int:
        """Run the eviction sweep with probability ``sweep_probability``."""
        if self._rng() < self.sweep_probability:
            return self.sweep()
        return 0
