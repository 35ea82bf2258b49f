"""
Fixed-window rate limiter for the portal API.

State is process-local: every worker counts on its own, so limits are
approximate under horizontal scaling.
"""

import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

from fastapi import Request, Response

from shared.errors import RateLimitError
from shared.logging import get_logger, set_client_context
from shared.metrics import MetricsCollector

DEFAULT_LIMITS = {
    "chat": 5,
    "registration": 10,
    "read": 20,
    "admin": 30,
}

IDENTITY_HEADERS = ("CF-Connecting-IP", "X-Forwarded-For", "X-Real-IP", "X-Client-IP")


@dataclass
class RateWindow:
    count: int
    reset_at: float


class FixedWindowRateLimiter:
    """Counts requests per (limit type, client) in fixed windows that reset lazily."""

    def __init__(
        self,
        limits: Optional[Dict[str, int]] = None,
        window_seconds: float = 60.0,
        *,
        clock: Callable[[], float] = time.monotonic,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.default_limits = dict(DEFAULT_LIMITS)
        if limits:
            self.default_limits.update(limits)
        self.window_seconds = window_seconds
        self._clock = clock
        self._metrics = metrics
        self._windows: Dict[Tuple[str, str], RateWindow] = {}
        self.logger = get_logger("portal.rate_limiter")

    def _limit_for(self, limit_type: str) -> int:
        return self.default_limits.get(limit_type, self.default_limits["read"])

    def check_rate_limit(self, client_id: str, limit_type: str = "read") -> Dict[str, Any]:
        """Count one request and report whether it fits in the current window."""
        limit = self._limit_for(limit_type)
        now = self._clock()
        key = (limit_type, client_id)

        window = self._windows.get(key)
        if window is None or now > window.reset_at:
            window = RateWindow(count=0, reset_at=now + self.window_seconds)
            self._windows[key] = window

        window.count += 1
        reset_in = max(0, int(round(window.reset_at - now)))

        if window.count > limit:
            self.logger.warning(
                "Rate limit exceeded",
                client_id=client_id,
                limit_type=limit_type,
                current_count=window.count,
                limit=limit,
            )
            if self._metrics is not None:
                self._metrics.increment_counter("rate_limit_rejections_total", limit_type=limit_type)
            return {
                "allowed": False,
                "current_count": window.count,
                "limit": limit,
                "remaining": 0,
                "reset_in_seconds": reset_in,
                "retry_after": max(1, reset_in),
            }

        return {
            "allowed": True,
            "current_count": window.count,
            "limit": limit,
            "remaining": max(0, limit - window.count),
            "reset_in_seconds": reset_in,
        }

    def allow(self, client_id: str, limit_type: str = "read") -> bool:
        return self.check_rate_limit(client_id, limit_type)["allowed"]

    def enforce(self, client_id: str, limit_type: str = "read") -> Dict[str, Any]:
        """Like ``check_rate_limit`` but raises RateLimitError on rejection."""
        result = self.check_rate_limit(client_id, limit_type)
        if not result["allowed"]:
            raise RateLimitError(details={"limit": result["limit"], "retry_after": result["retry_after"]})
        return result


def client_identity(request: Request) -> str:
    """Client address from the proxy header chain, else ``unknown``."""
    for header in IDENTITY_HEADERS:
        value = request.headers.get(header)
        if value:
            # X-Forwarded-For lists the originating client first.
            first = value.split(",")[0].strip()
            if first:
                return first
    return "unknown"


def rate_limit(limiter: FixedWindowRateLimiter, limit_type: str):
    """FastAPI dependency counting the request against ``limit_type``."""

    async def dependency(request: Request, response: Response) -> Dict[str, Any]:
        identity = client_identity(request)
        request.state.client_id = identity
        set_client_context(identity)
        result = limiter.enforce(identity, limit_type)
        response.headers["X-RateLimit-Limit"] = str(result["limit"])
        response.headers["X-RateLimit-Remaining"] = str(result["remaining"])
        response.headers["X-RateLimit-Reset"] = str(result["reset_in_seconds"])
        return result

    return dependency
