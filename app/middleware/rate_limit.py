from __future__ import annotations

import logging
import time
from collections import defaultdict, deque

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

logger = logging.getLogger("middleware.rate_limit")

WINDOW_SECONDS = 60.0
SWEEP_INTERVAL_SECONDS = 300.0


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Per-IP sliding window on the scan endpoints.

    Scans fan out into many backend queries, so only paths under
    `path_prefix` count; health and classify calls pass through.
    """

    def __init__(self, app, requests_per_minute: int = 60, path_prefix: str = "/v1/interactions"):
        super().__init__(app)
        self._limit = requests_per_minute
        self._prefix = path_prefix
        self._windows: dict[str, deque[float]] = defaultdict(deque)
        self._next_sweep = time.time() + SWEEP_INTERVAL_SECONDS

    def _sweep(self, cutoff: float) -> None:
        idle = [ip for ip, window in self._windows.items() if not window or window[-1] <= cutoff]
        for ip in idle:
            del self._windows[ip]
        if idle:
            logger.debug(f"Dropped {len(idle)} idle rate-limit windows")

    async def dispatch(self, request: Request, call_next) -> Response:
        if not request.url.path.startswith(self._prefix):
            return await call_next(request)

        ip = request.client.host if request.client else "unknown"
        now = time.time()
        cutoff = now - WINDOW_SECONDS

        if now >= self._next_sweep:
            self._sweep(cutoff)
            self._next_sweep = now + SWEEP_INTERVAL_SECONDS

        window = self._windows[ip]
        while window and window[0] <= cutoff:
            window.popleft()

        if len(window) >= self._limit:
            retry_after = int(window[0] - cutoff) + 1
            logger.warning(f"Rate limited: ip={ip}, hits={len(window)}/{self._limit}")
            return JSONResponse(
                status_code=429,
                content={
                    "error": "Rate limit exceeded",
                    "detail": f"Max {self._limit} scans per minute",
                    "retry_after_seconds": retry_after,
                },
            )

        window.append(now)
        return await call_next(request)
