import threading

import pytest

from app.core.rate_limit import BucketConfig, BucketRegistry, TokenBucket


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _config(capacity: int = 3, refill_tokens: int = 3, refill_interval: float = 60.0) -> BucketConfig:
    return BucketConfig(capacity=capacity, refill_tokens=refill_tokens, refill_interval=refill_interval)


def test_bucket_allows_exactly_capacity_consumptions():
    clock = FakeClock()
    bucket = TokenBucket(_config(capacity=5), clock=clock)
    results = [bucket.try_consume() for _ in range(6)]
    assert results == [True] * 5 + [False]
    assert bucket.tokens == 0


def test_bucket_refills_once_per_whole_interval():
    clock = FakeClock()
    bucket = TokenBucket(_config(capacity=10, refill_tokens=2, refill_interval=10.0), clock=clock)
    for _ in range(10):
        assert bucket.try_consume()
    assert not bucket.try_consume()

    clock.advance(9)
    assert not bucket.try_consume()

    clock.advance(1)
    assert bucket.tokens == 2

    clock.advance(25)
    # two more whole intervals elapsed
    assert bucket.tokens == 6


def test_bucket_refill_is_capped_at_capacity():
    clock = FakeClock()
    bucket = TokenBucket(_config(capacity=3, refill_tokens=5, refill_interval=1.0), clock=clock)
    assert bucket.try_consume()
    clock.advance(100)
    assert bucket.tokens == 3


def test_bucket_tokens_stay_within_bounds():
    clock = FakeClock()
    bucket = TokenBucket(_config(capacity=4, refill_tokens=3, refill_interval=2.0), clock=clock)
    for step in range(200):
        bucket.try_consume()
        if step % 3 == 0:
            clock.advance(1.5)
        assert 0 <= bucket.tokens <= bucket.capacity


def test_bucket_rejects_non_positive_amount():
    bucket = TokenBucket(_config())
    with pytest.raises(ValueError):
        bucket.try_consume(0)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"capacity": 0, "refill_tokens": 1, "refill_interval": 1.0},
        {"capacity": 1, "refill_tokens": 0, "refill_interval": 1.0},
        {"capacity": 1, "refill_tokens": 1, "refill_interval": 0},
    ],
)
def test_bucket_config_validation(kwargs):
    with pytest.raises(ValueError):
        BucketConfig(**kwargs)


def test_registry_returns_same_bucket_per_identity():
    registry = BucketRegistry(_config())
    first = registry.get_or_create("client-a")
    assert registry.get_or_create("client-a") is first
    assert registry.get_or_create("client-b") is not first
    assert len(registry) == 2


def test_registry_identities_do_not_share_tokens():
    registry = BucketRegistry(_config(capacity=1), clock=FakeClock())
    assert registry.try_consume("client-a")
    assert not registry.try_consume("client-a")
    assert registry.try_consume("client-b")


def test_registry_concurrent_first_access_creates_one_bucket():
    registry = BucketRegistry(_config())
    workers = 32
    barrier = threading.Barrier(workers)
    seen: list[TokenBucket] = []
    seen_lock = threading.Lock()

    def worker():
        barrier.wait()
        bucket = registry.get_or_create("shared")
        with seen_lock:
            seen.append(bucket)

    threads = [threading.Thread(target=worker) for _ in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(seen) == workers
    assert len({id(bucket) for bucket in seen}) == 1
    assert len(registry) == 1


def test_registry_concurrent_consumption_never_oversells():
    capacity = 25
    registry = BucketRegistry(_config(capacity=capacity, refill_interval=3600.0))
    workers = 8
    attempts = 10
    barrier = threading.Barrier(workers)
    granted = []
    granted_lock = threading.Lock()

    def worker():
        barrier.wait()
        local = sum(1 for _ in range(attempts) if registry.try_consume("shared"))
        with granted_lock:
            granted.append(local)

    threads = [threading.Thread(target=worker) for _ in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sum(granted) == capacity
    assert registry.get_or_create("shared").tokens == 0


def test_registry_without_ttl_keeps_buckets():
    clock = FakeClock()
    registry = BucketRegistry(_config(), clock=clock)
    registry.get_or_create("client-a")
    clock.advance(10_000)
    registry.get_or_create("client-b")
    assert "client-a" in registry


def test_registry_evicts_idle_buckets_when_ttl_set():
    clock = FakeClock()
    registry = BucketRegistry(_config(), idle_ttl=300, clock=clock)
    registry.try_consume("idle-client")
    clock.advance(100)
    registry.try_consume("busy-client")
    clock.advance(250)

    registry.get_or_create("busy-client")

    assert "idle-client" not in registry
    assert "busy-client" in registry


def test_registry_keeps_drained_bucket_past_idle_ttl():
    clock = FakeClock()
    registry = BucketRegistry(_config(capacity=2, refill_tokens=2, refill_interval=3600.0), idle_ttl=10, clock=clock)
    assert registry.try_consume("k")
    assert registry.try_consume("k")
    assert not registry.try_consume("k")

    clock.advance(11)

    assert not registry.try_consume("k")
    assert "k" in registry


def test_registry_from_settings(settings_factory):
    config = settings_factory(
        RATE_LIMIT_CAPACITY=7,
        RATE_LIMIT_REFILL_TOKENS=2,
        RATE_LIMIT_REFILL_DURATION=30,
        RATE_LIMIT_IDLE_TTL=0,
    )
    registry = BucketRegistry.from_settings(config)
    assert registry.config == BucketConfig(capacity=7, refill_tokens=2, refill_interval=30.0)
    assert registry.idle_ttl is None
