from __future__ import annotations

import math
import time
from collections import deque

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from ..observability.logging import get_logger
from ..problem_details import problem_response
from ..settings import settings
from .request_context import client_ip

# Credential endpoints: password guessing and account enumeration targets.
RATE_LIMITED_PATHS = frozenset(
    {
        "/api/auth/login",
        "/api/auth/register",
        "/api/auth/reset-password",
    }
)

WINDOW_SECONDS = 60.0

log = get_logger("rate_limit")


def _now() -> float:
    return time.monotonic()


class LoginRateLimitMiddleware(BaseHTTPMiddleware):
    """
    Sliding one-minute window per client IP and endpoint, held in process
    memory. Each API task enforces its own limit.
    """

    _hits: dict[str, deque[float]] = {}
    _last_sweep: float = 0.0

    @classmethod
    def reset(cls) -> None:
        cls._hits.clear()
        cls._last_sweep = 0.0

    @classmethod
    def _sweep(cls, now: float) -> None:
        # Drop keys whose newest hit has left the window; at most once per window.
        if now - cls._last_sweep < WINDOW_SECONDS:
            return
        cls._last_sweep = now
        for key in [k for k, hits in cls._hits.items() if not hits or now - hits[-1] >= WINDOW_SECONDS]:
            del cls._hits[key]

    @staticmethod
    def _limit() -> int:
        return max(1, min(6000, int(settings.login_rate_limit_rpm or 20)))

    async def dispatch(self, request: Request, call_next) -> Response:
        path = request.url.path
        if request.method != "POST" or path not in RATE_LIMITED_PATHS:
            return await call_next(request)

        ip = client_ip(request) or "unknown"
        now = _now()
        self._sweep(now)
        key = f"{ip}:{path}"
        hits = self._hits.get(key)
        if hits is not None:
            while hits and now - hits[0] >= WINDOW_SECONDS:
                hits.popleft()
            if not hits:
                del self._hits[key]
                hits = None

        if hits is not None and len(hits) >= self._limit():
            retry_after = max(1, math.ceil(WINDOW_SECONDS - (now - hits[0])))
            log.warning("login_rate_limited", path=path, client_ip=ip, retry_after=retry_after)
            return problem_response(
                request=request,
                status_code=429,
                detail="Too many attempts, try again later",
                extensions={"code": "rate_limited"},
                headers={"Retry-After": str(retry_after)},
            )

        self._hits.setdefault(key, deque()).append(now)
        return await call_next(request)
