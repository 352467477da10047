from __future__ import annotations

from cineflow.telegram.ratelimit import RateLimiter


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_burst_ceiling_within_window() -> None:
    clock = FakeClock()
    limiter = RateLimiter(window_seconds=2.0, burst=5, clock=clock)
    results = [limiter.admit(7) for _ in range(8)]
    assert results == [True] * 5 + [False] * 3
    assert limiter.state_for(7).count == 5


def test_window_reset_admits_regardless_of_prior_count() -> None:
    clock = FakeClock()
    limiter = RateLimiter(window_seconds=2.0, burst=2, clock=clock)
    for _ in range(10):
        limiter.admit("user")
    clock.now += 2.0
    assert limiter.admit("user") is True
    state = limiter.state_for("user")
    assert state.count == 1
    assert state.window_start == clock.now


def test_identities_are_independent() -> None:
    clock = FakeClock()
    limiter = RateLimiter(window_seconds=2.0, burst=1, clock=clock)
    assert limiter.admit(1) is True
    assert limiter.admit(1) is False
    assert limiter.admit(2) is True


def test_window_does_not_slide_on_denied_requests() -> None:
    clock = FakeClock()
    limiter = RateLimiter(window_seconds=2.0, burst=1, clock=clock)
    limiter.admit(1)
    clock.now += 1.5
    assert limiter.admit(1) is False
    clock.now += 0.5
    assert limiter.admit(1) is True


def test_expired_windows_are_swept() -> None:
    clock = FakeClock()
    limiter = RateLimiter(window_seconds=2.0, burst=5, clock=clock)
    for user in range(50):
        limiter.admit(user)
    assert len(limiter) == 50
    clock.now += 10.0
    assert limiter.admit("late") is True
    assert len(limiter) == 1
    assert limiter.state_for(3) is None
    assert limiter.admit(3) is True


def test_sweep_keeps_live_windows() -> None:
    clock = FakeClock()
    limiter = RateLimiter(window_seconds=2.0, burst=1, clock=clock)
    limiter.admit("old")
    clock.now += 2.5
    limiter.admit("fresh")
    assert limiter.state_for("old") is None
    assert limiter.admit("fresh") is False
