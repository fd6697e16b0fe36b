"""Tests for the mock service's fixed-window limiter."""

from mock_service.app import FixedWindowLimiter


class FakeClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


class TestFixedWindowLimiter:
    def test_limit_and_reset(self):
        clock = FakeClock(1000.0)
        limiter = FixedWindowLimiter(clock)
        assert limiter.check("k", 2) == (True, 1, 20)
        assert limiter.check("k", 2) == (True, 0, 20)
        assert limiter.check("k", 2) == (False, 0, 20)

    def test_new_window_admits_again(self):
        clock = FakeClock(1000.0)
        limiter = FixedWindowLimiter(clock)
        limiter.check("k", 1)
        assert limiter.check("k", 1)[0] is False
        clock.now = 1020.0
        assert limiter.check("k", 1)[0] is True

    def test_past_windows_are_dropped(self):
        clock = FakeClock(1000.0)
        limiter = FixedWindowLimiter(clock)
        limiter.check("a", 10)
        limiter.check("b", 10)
        clock.now = 1020.0
        limiter.check("a", 10)
        assert list(limiter._counts) == [("a", 1020)]
