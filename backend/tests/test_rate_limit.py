import threading

import pytest

from conftest import FakeClock
from humangate.errors import RateLimitExceeded
from humangate.security.rate_limit import RateLimiter


def test_fixed_window_allows_then_rejects_then_resets():
    clock = FakeClock(start=0.0)
    limiter = RateLimiter(max_requests=5, window_seconds=10, clock=clock)

    decisions = [limiter.check("client-a") for _ in range(5)]
    assert all(d.allowed for d in decisions)
    assert [d.remaining for d in decisions] == [4, 3, 2, 1, 0]

    sixth = limiter.check("client-a")
    assert not sixth.allowed
    assert sixth.retry_after == 10

    clock.advance(10.5)
    fresh = limiter.check("client-a")
    assert fresh.allowed
    window = limiter.window_for("client-a")
    assert window.count == 1
    assert window.reset_at == pytest.approx(20.5)


def test_window_still_closed_exactly_at_reset_time():
    clock = FakeClock(start=0.0)
    limiter = RateLimiter(max_requests=1, window_seconds=10, clock=clock)
    assert limiter.check("c").allowed
    clock.advance(10)
    assert not limiter.check("c").allowed
    clock.advance(0.001)
    assert limiter.check("c").allowed


def test_rejection_does_not_increment_count():
    clock = FakeClock(start=0.0)
    limiter = RateLimiter(max_requests=2, window_seconds=10, clock=clock)
    limiter.check("c")
    limiter.check("c")
    for _ in range(5):
        assert not limiter.check("c").allowed
    assert limiter.window_for("c").count == 2


def test_clients_are_independent():
    clock = FakeClock(start=0.0)
    limiter = RateLimiter(max_requests=1, window_seconds=10, clock=clock)
    assert limiter.check("a").allowed
    assert not limiter.check("a").allowed
    assert limiter.check("b").allowed


def test_boundary_burst_is_permitted():
    clock = FakeClock(start=0.0)
    limiter = RateLimiter(max_requests=3, window_seconds=10, clock=clock)
    assert limiter.check("c").allowed
    clock.advance(9.9)
    assert all(limiter.check("c").allowed for _ in range(2))
    clock.advance(0.2)  # past reset_at=10, opens a new window
    assert all(limiter.check("c").allowed for _ in range(3))
    assert not limiter.check("c").allowed


def test_enforce_raises_with_retry_after():
    clock = FakeClock(start=0.0)
    limiter = RateLimiter(max_requests=1, window_seconds=30, clock=clock)
    limiter.enforce("c")
    clock.advance(12.4)
    with pytest.raises(RateLimitExceeded) as excinfo:
        limiter.enforce("c")
    assert excinfo.value.client_id == "c"
    assert excinfo.value.retry_after == 18


def test_sweep_removes_only_expired_windows():
    clock = FakeClock(start=0.0)
    limiter = RateLimiter(max_requests=5, window_seconds=10, clock=clock)
    limiter.check("old")
    clock.advance(6)
    limiter.check("new")
    clock.advance(5)  # "old" reset at 10, "new" resets at 16

    assert limiter.sweep() == 1
    assert limiter.window_for("old") is None
    assert limiter.window_for("new") is not None
    assert len(limiter) == 1


def test_reset_clears_registry():
    limiter = RateLimiter(max_requests=1, window_seconds=10)
    limiter.check("c")
    limiter.reset()
    assert len(limiter) == 0
    assert limiter.check("c").allowed


def test_concurrent_checks_never_exceed_limit():
    limiter = RateLimiter(max_requests=50, window_seconds=600)
    allowed = []
    lock = threading.Lock()
    start = threading.Barrier(20)

    def worker():
        start.wait()
        for _ in range(10):
            if limiter.check("hot-client").allowed:
                with lock:
                    allowed.append(1)

    threads = [threading.Thread(target=worker) for _ in range(20)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(allowed) == 50
    assert limiter.window_for("hot-client").count == 50


@pytest.mark.parametrize("max_requests,window", [(0, 10), (5, 0), (-1, 10)])
def test_invalid_configuration_rejected(max_requests, window):
    with pytest.raises(ValueError):
        RateLimiter(max_requests=max_requests, window_seconds=window)
