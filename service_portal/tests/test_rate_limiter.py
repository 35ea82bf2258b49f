"""
Unit tests for the fixed-window rate limiter.
"""

from unittest.mock import MagicMock

import pytest

from service_portal.app.ratelimit.fixed_window import FixedWindowRateLimiter, client_identity
from shared.errors import RateLimitError


class MonotonicClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestFixedWindowRateLimiter:
    """Test cases for FixedWindowRateLimiter."""

    @pytest.fixture
    def clock(self):
        return MonotonicClock()

    @pytest.fixture
    def limiter(self, clock):
        return FixedWindowRateLimiter({"chat": 3}, window_seconds=60.0, clock=clock)

    def test_n_plus_first_call_is_rejected(self, limiter):
        """With max=N the (N+1)th call in a window is refused."""
        assert [limiter.allow("1.2.3.4", "chat") for _ in range(4)] == [True, True, True, False]

    def test_window_resets_lazily(self, limiter, clock):
        """After the window passes, the next call starts a new window."""
        for _ in range(4):
            limiter.allow("1.2.3.4", "chat")

        clock.now += 60.5

        assert [limiter.allow("1.2.3.4", "chat") for _ in range(4)] == [True, True, True, False]

    def test_identities_and_classes_are_independent(self, limiter):
        for _ in range(3):
            limiter.allow("1.2.3.4", "chat")

        assert limiter.allow("5.6.7.8", "chat") is True
        assert limiter.allow("1.2.3.4", "read") is True
        assert limiter.allow("1.2.3.4", "chat") is False

    def test_default_limits(self):
        limiter = FixedWindowRateLimiter()
        assert limiter.default_limits == {"chat": 5, "registration": 10, "read": 20, "admin": 30}

    def test_check_reports_remaining_and_reset(self, limiter, clock):
        first = limiter.check_rate_limit("ip", "chat")
        clock.now += 20
        second = limiter.check_rate_limit("ip", "chat")

        assert first["remaining"] == 2
        assert first["reset_in_seconds"] == 60
        assert second["remaining"] == 1
        assert second["reset_in_seconds"] == 40

    def test_enforce_raises_with_retry_after(self, limiter, clock):
        for _ in range(3):
            limiter.enforce("ip", "chat")
        clock.now += 15

        with pytest.raises(RateLimitError) as exc_info:
            limiter.enforce("ip", "chat")

        assert exc_info.value.status_code == 429
        assert exc_info.value.details == {"limit": 3, "retry_after": 45}


class TestClientIdentity:
    """Test cases for client_identity."""

    def _request(self, headers):
        request = MagicMock()
        request.headers = headers
        return request

    def test_header_precedence(self):
        request = self._request({
            "CF-Connecting-IP": "9.9.9.9",
            "X-Forwarded-For": "1.1.1.1, 10.0.0.1",
            "X-Real-IP": "2.2.2.2",
        })
        assert client_identity(request) == "9.9.9.9"

    def test_forwarded_for_first_hop(self):
        assert client_identity(self._request({"X-Forwarded-For": "1.1.1.1, 10.0.0.1"})) == "1.1.1.1"

    def test_fallbacks(self):
        assert client_identity(self._request({"X-Real-IP": "2.2.2.2"})) == "2.2.2.2"
        assert client_identity(self._request({"X-Client-IP": "3.3.3.3"})) == "3.3.3.3"
        assert client_identity(self._request({})) == "unknown"
