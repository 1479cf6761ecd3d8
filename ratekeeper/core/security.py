"""Boundary guards for the /rates routes: shared-secret check and rate limit.

The API key may arrive as an ``X-API-Key`` header or an ``api_key`` query
parameter. With no key configured the guard refuses every request.
"""

from __future__ import annotations

import logging
import math
import secrets
import threading
import time
from typing import Callable, Dict, Optional, Tuple

from fastapi import HTTPException, Request
from starlette import status

logger = logging.getLogger("ratekeeper.security")

API_KEY_HEADER = "X-API-Key"
API_KEY_QUERY = "api_key"


def _presented_key(request: Request) -> Optional[str]:
    return request.headers.get(API_KEY_HEADER) or request.query_params.get(API_KEY_QUERY)


def require_api_key(request: Request) -> None:
    expected = request.app.state.settings.api_key
    if not expected:
        logger.error("API key not configured; refusing request")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="API key not configured"
        )
    presented = _presented_key(request)
    if presented is None or not secrets.compare_digest(
        presented.encode("utf-8"), expected.encode("utf-8")
    ):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or missing API key"
        )


class FixedWindowRateLimiter:
    """Counts hits per caller key inside fixed, aligned time windows."""

    def __init__(
        self,
        limit: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._windows: Dict[str, Tuple[int, int]] = {}  # key -> (window index, hits)

    def hit(self, key: str) -> Optional[float]:
        """Record a hit; return None if allowed, else seconds until the window resets."""
        now = self._clock()
        window = int(now // self.window_seconds)
        with self._lock:
            current, hits = self._windows.get(key, (window, 0))
            if current != window:
                hits = 0
            hits += 1
            self._windows[key] = (window, hits)
            # drop counters from past windows
            if len(self._windows) > 10_000:
                self._windows = {k: v for k, v in self._windows.items() if v[0] == window}
        if hits <= self.limit:
            return None
        return (window + 1) * self.window_seconds - now


def _caller_key(request: Request) -> str:
    # only the configured key gets its own bucket; anything else counts against the client host
    key = _presented_key(request)
    expected = request.app.state.settings.api_key
    if key and expected and secrets.compare_digest(key.encode("utf-8"), expected.encode("utf-8")):
        return f"key:{key}"
    host = request.client.host if request.client else "unknown"
    return f"ip:{host}"


def rate_limit(request: Request) -> None:
    limiter: FixedWindowRateLimiter = request.app.state.rate_limiter
    retry_after = limiter.hit(_caller_key(request))
    if retry_after is not None:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many requests",
            headers={"Retry-After": str(max(1, math.ceil(retry_after)))},
        )
