"""
Per-identity token buckets.

A ``BucketRegistry`` is built once by ``create_app`` and handed to the
rate-limit gate; it is never a module global. Each bucket owns its lock so
identities never contend with each other, and the registry lock is only taken
when a bucket has to be created (or idle buckets swept). Only idle buckets
that have refilled to capacity are evicted, so eviction never hands a client
back tokens it has not earned.

Refill is interval based: every whole ``refill_interval`` seconds elapsed since
the last refill adds ``refill_tokens`` tokens, capped at ``capacity``.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

from loguru import logger

Clock = Callable[[], float]


@dataclass(frozen=True)
class BucketConfig:
    capacity: int
    refill_tokens: int
    refill_interval: float

    def __post_init__(self) -> None:
        if self.capacity <= 0:
            raise ValueError('capacity must be positive')
        if self.refill_tokens <= 0:
            raise ValueError('refill_tokens must be positive')
        if self.refill_interval <= 0:
            raise ValueError('refill_interval must be positive')


class TokenBucket:
    def __init__(self, config: BucketConfig, clock: Clock = time.monotonic) -> None:
        self.capacity = config.capacity
        self.refill_tokens = config.refill_tokens
        self.refill_interval = config.refill_interval
        self._clock = clock
        self._lock = threading.Lock()
        self._tokens = config.capacity
        self._last_refill = clock()
        self._last_used = self._last_refill

    @property
    def tokens(self) -> int:
        with self._lock:
            self._refill(self._clock())
            return self._tokens

    @property
    def last_used(self) -> float:
        return self._last_used

    def _refill(self, now: float) -> None:
        # caller holds self._lock
        elapsed = now - self._last_refill
        if elapsed < self.refill_interval:
            return
        intervals = int(elapsed // self.refill_interval)
        self._tokens = min(self.capacity, self._tokens + intervals * self.refill_tokens)
        self._last_refill += intervals * self.refill_interval

    def try_consume(self, amount: int = 1) -> bool:
        if amount <= 0:
            raise ValueError('amount must be positive')
        with self._lock:
            now = self._clock()
            self._refill(now)
            self._last_used = now
            if self._tokens < amount:
                return False
            self._tokens -= amount
            return True


class BucketRegistry:
    def __init__(
        self,
        config: BucketConfig,
        *,
        idle_ttl: Optional[float] = None,
        clock: Clock = time.monotonic,
    ) -> None:
        self.config = config
        self.idle_ttl = idle_ttl if idle_ttl and idle_ttl > 0 else None
        self._clock = clock
        self._buckets: dict[str, TokenBucket] = {}
        self._lock = threading.Lock()
        self._last_sweep = clock()

    @classmethod
    def from_settings(cls, config) -> 'BucketRegistry':
        return cls(
            BucketConfig(
                capacity=config.RATE_LIMIT_CAPACITY,
                refill_tokens=config.RATE_LIMIT_REFILL_TOKENS,
                refill_interval=float(config.RATE_LIMIT_REFILL_DURATION),
            ),
            idle_ttl=float(config.RATE_LIMIT_IDLE_TTL),
        )

    def __len__(self) -> int:
        return len(self._buckets)

    def __contains__(self, identity: str) -> bool:
        return identity in self._buckets

    def get_or_create(self, identity: str) -> TokenBucket:
        if self.idle_ttl is not None:
            self._maybe_sweep()
        bucket = self._buckets.get(identity)
        if bucket is not None:
            return bucket
        with self._lock:
            bucket = self._buckets.get(identity)
            if bucket is None:
                bucket = TokenBucket(self.config, clock=self._clock)
                self._buckets[identity] = bucket
            return bucket

    def try_consume(self, identity: str, amount: int = 1) -> bool:
        return self.get_or_create(identity).try_consume(amount)

    def _maybe_sweep(self) -> None:
        now = self._clock()
        if now - self._last_sweep < self.idle_ttl:
            return
        with self._lock:
            if now - self._last_sweep < self.idle_ttl:
                return
            self._last_sweep = now
            idle = [
                key
                for key, bucket in self._buckets.items()
                if now - bucket.last_used >= self.idle_ttl and bucket.tokens >= bucket.capacity
            ]
            for key in idle:
                del self._buckets[key]
        if idle:
            logger.debug('rate_limit.buckets_evicted', count=len(idle), remaining=len(self._buckets))
