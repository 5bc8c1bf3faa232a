from __future__ import annotations

import time

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from ..observability.logging import get_logger
from .request_context import client_ip

log = get_logger("access")


def _caller(request: Request) -> dict[str, str]:
    user = getattr(request.state, "user", None)
    if user is None:
        return {}
    return {"user_id": str(user.id), "user_role": str(user.role)}


class AccessLogMiddleware(BaseHTTPMiddleware):
    """
    One structured line per request. 5xx responses log at error level and
    4xx at warning, so auth and ownership refusals are easy to filter.
    """

    def __init__(self, app, *, exclude_paths: set[str] | None = None):
        super().__init__(app)
        self._exclude = frozenset(exclude_paths or ())

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if path in self._exclude or request.method == "OPTIONS":
            return await call_next(request)

        started = time.perf_counter()
        fields = {"http_method": request.method, "path": path, "client_ip": client_ip(request)}
        try:
            response = await call_next(request)
        except Exception:
            log.exception(
                "request_failed",
                duration_ms=round((time.perf_counter() - started) * 1000.0, 1),
                **fields,
                **_caller(request),
            )
            raise

        status = int(response.status_code)
        emit = log.error if status >= 500 else log.warning if status >= 400 else log.info
        emit(
            "request",
            status_code=status,
            duration_ms=round((time.perf_counter() - started) * 1000.0, 1),
            **fields,
            **_caller(request),
        )
        return response
