from __future__ import annotations

from hypo.core.rate_limiter import RateLimiter


def test_first_request_allowed_second_inside_cooldown_rejected(clock):
    limiter = RateLimiter(cooldown_seconds=3, clock=clock)

    assert limiter.check("10.0.0.1").allowed is True

    clock.advance(1)
    decision = limiter.check("10.0.0.1")
    assert decision.allowed is False
    assert decision.reason == RateLimiter.COOLDOWN
    assert decision.wait_time == 2


def test_wait_time_rounds_up_and_is_at_least_one(clock):
    limiter = RateLimiter(cooldown_seconds=3, clock=clock)
    limiter.check("a")

    clock.advance(2.9)
    assert limiter.check("a").wait_time == 1

    clock.advance(0.05)
    assert limiter.check("a").wait_time == 1


def test_cooldown_expires(clock):
    limiter = RateLimiter(cooldown_seconds=3, clock=clock)
    limiter.check("a")
    clock.advance(3)
    assert limiter.check("a").allowed is True


def test_rejected_requests_do_not_extend_cooldown(clock):
    limiter = RateLimiter(cooldown_seconds=3, clock=clock)
    limiter.check("a")
    clock.advance(2)
    limiter.check("a")
    clock.advance(1)
    assert limiter.check("a").allowed is True


def test_clients_are_independent(clock):
    limiter = RateLimiter(cooldown_seconds=3, clock=clock)
    assert limiter.check("a").allowed
    assert limiter.check("b").allowed


def test_per_minute_budget(clock):
    limiter = RateLimiter(cooldown_seconds=0, requests_per_minute=3, clock=clock)
    for _ in range(3):
        assert limiter.check("a").allowed
        clock.advance(1)

    decision = limiter.check("a")
    assert decision.allowed is False
    assert decision.reason == RateLimiter.BUDGET
    assert decision.wait_time == 57

    clock.advance(57)
    assert limiter.check("a").allowed


def test_reset_and_stats(clock):
    limiter = RateLimiter(cooldown_seconds=3, requests_per_minute=20, clock=clock)
    limiter.check("a")
    limiter.check("b")
    assert limiter.get_stats()["active_clients"] == 2

    limiter.reset("a")
    assert limiter.check("a").allowed is True

    limiter.reset()
    assert limiter.get_stats()["active_clients"] == 0
