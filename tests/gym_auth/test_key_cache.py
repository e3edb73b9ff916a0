import threading
import time

import pytest
from conftest import FakeKeySource

import gym_auth as m


class FakeClock:
    def __init__(self, now: float = 100.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class BlockingKeySource(FakeKeySource):
    """Blocks inside fetch() until released, to pile up concurrent misses."""

    def __init__(self, key_set):
        super().__init__(key_set)
        self.started = threading.Event()
        self.release = threading.Event()

    def fetch(self):
        self.started.set()
        self.release.wait(timeout=5)
        return super().fetch()


def test_serves_cached_set_within_ttl(fake_source):
    clock = FakeClock()
    cache = m.KeySetCache(fake_source, ttl_seconds=300, clock=clock)

    first = cache.get()
    clock.now += 299
    second = cache.get()

    assert first is second
    assert fake_source.calls == 1
    assert cache.fetched_at == 100.0


def test_refetches_once_ttl_has_elapsed(fake_source):
    clock = FakeClock()
    cache = m.KeySetCache(fake_source, ttl_seconds=300, clock=clock)

    cache.get()
    clock.now += 300
    cache.get()

    assert fake_source.calls == 2
    assert cache.fetched_at == 400.0


def test_invalidate_forces_refetch(fake_source):
    cache = m.KeySetCache(fake_source, clock=FakeClock())

    cache.get()
    cache.invalidate()

    assert cache.fetched_at is None
    cache.get()
    assert fake_source.calls == 2


def test_failed_fetch_propagates_and_leaves_slot_untouched(key_set):
    clock = FakeClock()
    source = FakeKeySource(key_set)
    cache = m.KeySetCache(source, ttl_seconds=300, clock=clock)
    cache.get()

    clock.now += 301
    source.error = m.BadStatus(503)

    with pytest.raises(m.BadStatus):
        cache.get()
    assert cache.fetched_at == 100.0

    source.error = None
    assert cache.get() is key_set
    assert cache.fetched_at == 401.0


def test_concurrent_misses_share_one_fetch(key_set):
    source = BlockingKeySource(key_set)
    cache = m.KeySetCache(source)
    results = []

    def worker():
        results.append(cache.get())

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()

    assert source.started.wait(timeout=5)
    time.sleep(0.05)
    source.release.set()
    for thread in threads:
        thread.join(timeout=5)

    assert source.calls == 1
    assert len(results) == 8
    assert all(result is key_set for result in results)


def test_gate_throttles_fetches_after_failure(key_set):
    clock = FakeClock(1000.0)

    source = FakeKeySource(key_set, error=m.NetworkFailure("down"))
    cache = m.KeySetCache(
        source,
        ttl_seconds=300,
        gate=m.RefreshGate(min_interval=10, clock=clock),
        clock=clock,
    )

    with pytest.raises(m.NetworkFailure, match="down"):
        cache.get()
    with pytest.raises(m.NetworkFailure, match="throttled"):
        cache.get()
    assert source.calls == 1

    clock.now = 1010.0
    source.error = None
    assert cache.get() is key_set
    assert source.calls == 2


@pytest.mark.parametrize("ttl", [0, -5])
def test_ttl_must_be_positive(fake_source, ttl):
    with pytest.raises(ValueError):
        m.KeySetCache(fake_source, ttl_seconds=ttl)


def test_gate_interval_cannot_exceed_ttl(fake_source):
    with pytest.raises(ValueError, match="TTL"):
        m.KeySetCache(fake_source, ttl_seconds=5, gate=m.RefreshGate(min_interval=10))
