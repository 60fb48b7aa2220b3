"""Outbound call guards."""

from answering.middleware.rate_limiter import SlidingWindowRateLimiter

__all__ = ["SlidingWindowRateLimiter"]
