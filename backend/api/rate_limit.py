"""Per-client-IP rate limiting for the ``/api/`` surface."""

import logging
import time
from collections import defaultdict
from typing import Callable, Optional

from fastapi import Request, status
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from config import settings

logger = logging.getLogger(__name__)

CLEANUP_INTERVAL_SECONDS = 300


class RateLimitMiddleware(BaseHTTPMiddleware):
    """In-memory sliding window: at most ``max_requests`` per IP per window.

    A coarse safety net in front of the quote cache, not part of it.
    """

    def __init__(
        self,
        app,
        max_requests: Optional[int] = None,
        window_seconds: Optional[int] = None,
        prefix: str = "/api/",
        timer: Callable[[], float] = time.monotonic,
    ):
        super().__init__(app)
        self.max_requests = max_requests or settings.RATE_LIMIT_MAX_REQUESTS
        self.window_seconds = window_seconds or settings.RATE_LIMIT_WINDOW_SECONDS
        self.prefix = prefix
        self._timer = timer
        self._history: dict[str, list[float]] = defaultdict(list)
        self._last_cleanup = timer()

    async def dispatch(self, request: Request, call_next):
        if not request.url.path.startswith(self.prefix):
            return await call_next(request)

        now = self._timer()
        if now - self._last_cleanup > CLEANUP_INTERVAL_SECONDS:
            self._cleanup(now)
            self._last_cleanup = now

        client_ip = request.client.host if request.client else "unknown"
        recent = [ts for ts in self._history[client_ip] if now - ts < self.window_seconds]
        if len(recent) >= self.max_requests:
            self._history[client_ip] = recent
            logger.warning("Rate limit exceeded for %s", client_ip)
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={
                    "detail": f"Rate limit exceeded: Maximum {self.max_requests} "
                    f"requests per {self.window_seconds} seconds"
                },
            )
        recent.append(now)
        self._history[client_ip] = recent
        return await call_next(request)

    def _cleanup(self, now: float) -> None:
        """Drop IPs with no requests inside the window."""
        for ip in list(self._history):
            kept = [ts for ts in self._history[ip] if now - ts < self.window_seconds]
            if kept:
                self._history[ip] = kept
            else:
                del self._history[ip]
