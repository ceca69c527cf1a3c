"""
Rate limiting for the Sales Room API.

Sliding-window counter per client (API key or IP). ``RateLimiter`` holds the
window logic; ``RateLimitMiddleware`` applies it to the chat endpoints.
"""

import logging
import time
from typing import Callable, Dict, Iterable, List, Optional

from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)


def _epoch_ms() -> int:
    return int(time.time() * 1000)


class RateLimiter:
    """
    Allows at most ``max_requests`` per ``window_ms`` for each identifier.

    Only allowed requests are recorded, so a client that keeps hammering a
    full window is let back in once its oldest accepted request ages out.
    Identifiers with nothing left in the window are swept at most once per
    window.
    """

    def __init__(
        self,
        max_requests: int = 10,
        window_ms: int = 60000,
        clock: Optional[Callable[[], int]] = None,
    ):
        self.max_requests = max_requests
        self.window_ms = window_ms
        self._clock = clock or _epoch_ms
        self._requests: Dict[str, List[int]] = {}
        self._last_sweep = self._clock()

    def _recent(self, identifier: str, now: int) -> List[int]:
        return [t for t in self._requests.get(identifier, []) if now - t < self.window_ms]

    def _sweep(self, now: int) -> None:
        if now - self._last_sweep < self.window_ms:
            return
        self._last_sweep = now
        stale = [
            key for key, times in self._requests.items()
            if not times or now - times[-1] >= self.window_ms
        ]
        for key in stale:
            del self._requests[key]

    def is_allowed(self, identifier: str) -> bool:
        now = self._clock()
        self._sweep(now)
        recent = self._recent(identifier, now)

        if len(recent) >= self.max_requests:
            self._requests[identifier] = recent
            return False

        recent.append(now)
        self._requests[identifier] = recent
        return True

    def get_remaining_requests(self, identifier: str) -> int:
        recent = self._recent(identifier, self._clock())
        return max(0, self.max_requests - len(recent))

    def tracked_identifiers(self) -> List[str]:
        return list(self._requests)

    def reset(self, identifier: Optional[str] = None) -> None:
        if identifier is None:
            self._requests.clear()
        else:
            self._requests.pop(identifier, None)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Rejects requests over the limit with 429 on the limited path prefixes."""

    def __init__(self, app, limiter: RateLimiter, paths: Iterable[str] = ("/api/v1/chat",)):
        super().__init__(app)
        self.limiter = limiter
        self.paths = tuple(paths)

    async def dispatch(self, request: Request, call_next):
        if not request.url.path.startswith(self.paths):
            return await call_next(request)

        client_id = self._get_client_id(request)
        retry_after = str(max(1, self.limiter.window_ms // 1000))

        if not self.limiter.is_allowed(client_id):
            logger.warning(f"Rate limit exceeded for {client_id}")
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={
                    "code": "RATE_LIMITED",
                    "message": "Too many messages. Please wait a moment before trying again.",
                },
                headers={"Retry-After": retry_after},
            )

        response = await call_next(request)

        response.headers["X-RateLimit-Limit"] = str(self.limiter.max_requests)
        response.headers["X-RateLimit-Remaining"] = str(self.limiter.get_remaining_requests(client_id))
        return response

    def _get_client_id(self, request: Request) -> str:
        """Identify client by API key or IP."""
        api_key = request.headers.get("X-API-Key")
        if api_key:
            return f"key:{api_key[:8]}"

        return f"ip:{request.client.host}" if request.client else "ip:unknown"
