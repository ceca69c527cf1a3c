"""
API Middleware.
"""

from .rate_limit import RateLimiter, RateLimitMiddleware

__all__ = ["RateLimiter", "RateLimitMiddleware"]
