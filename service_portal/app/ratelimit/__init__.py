"""
Rate limiting for the portal API.
"""

from .fixed_window import FixedWindowRateLimiter, RateWindow, client_identity, rate_limit

__all__ = ["FixedWindowRateLimiter", "RateWindow", "client_identity", "rate_limit"]
