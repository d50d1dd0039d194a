"""Tests for the token bucket and request limiter, using a fake clock."""

import threading

import pytest

from scripts.rsc_sync.rate_limit import RequestLimiter, TokenBucket


class FakeClock:
    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


def test_burst_up_to_capacity_without_waiting():
    clock = FakeClock()
    bucket = TokenBucket(5.0, clock=clock, sleep=clock.sleep)
    assert [bucket.acquire() for _ in range(5)] == [0.0] * 5
    assert clock.sleeps == []


def test_waits_when_bucket_empty():
    clock = FakeClock()
    bucket = TokenBucket(2.0, capacity=1, clock=clock, sleep=clock.sleep)
    bucket.acquire()
    waited = bucket.acquire()
    assert waited == pytest.approx(0.5)
    assert clock.now == pytest.approx(0.5)


def test_sustained_rate_is_respected():
    clock = FakeClock()
    bucket = TokenBucket(4.0, capacity=1, clock=clock, sleep=clock.sleep)
    for _ in range(9):
        bucket.acquire()
    # First token is free, the next eight arrive at 4 per second
    assert clock.now == pytest.approx(2.0)


def test_refill_is_capped_at_capacity():
    clock = FakeClock()
    bucket = TokenBucket(1.0, capacity=2, clock=clock, sleep=clock.sleep)
    clock.now = 100.0
    bucket.acquire()
    bucket.acquire()
    assert bucket.acquire() == pytest.approx(1.0)


def test_rate_must_be_positive():
    with pytest.raises(ValueError):
        TokenBucket(0)


def test_limiter_caps_concurrency():
    limiter = RequestLimiter(max_concurrent=2, rate_per_second=1000)
    inside = 0
    peak = 0
    lock = threading.Lock()
    gate = threading.Barrier(2, timeout=5)

    def worker():
        nonlocal inside, peak
        with limiter:
            with lock:
                inside += 1
                peak = max(peak, inside)
            try:
                gate.wait()
            except threading.BrokenBarrierError:
                pass
            with lock:
                inside -= 1

    threads = [threading.Thread(target=worker) for _ in range(6)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10)

    assert peak <= 2


def test_limiter_releases_slot_on_error():
    limiter = RequestLimiter(max_concurrent=1, rate_per_second=1000)
    with pytest.raises(RuntimeError):
        with limiter:
            raise RuntimeError("request failed")
    # Slot is free again
    with limiter:
        pass
