from __future__ import annotations

from .access_log import AccessLogMiddleware
from .auth import AuthMiddleware
from .login_rate_limit import LoginRateLimitMiddleware
from .request_context import RequestContextMiddleware

__all__ = [
    "AccessLogMiddleware",
    "AuthMiddleware",
    "LoginRateLimitMiddleware",
    "RequestContextMiddleware",
]
