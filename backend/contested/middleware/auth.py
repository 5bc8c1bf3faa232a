from __future__ import annotations

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from ..auth.resolver import resolve_user
from ..db.dynamodb.errors import DdbError
from ..observability.context import bind_user, reset_user
from ..observability.logging import get_logger
from ..problem_details import problem_response

PUBLIC_PATHS = frozenset(
    {
        "/",
        "/api/auth/login",
        "/api/auth/register",
        "/api/auth/refresh",
        "/api/auth/reset-password",
        # Returns a redirect decision for anonymous callers.
        "/api/auth/route-decision",
        "/api/subscription/plans",
        # Authenticated by Stripe signature, not by a user credential.
        "/api/subscription/webhook",
        "/api/bundle/types",
    }
)


def is_public_path(path: str) -> bool:
    return path in PUBLIC_PATHS


class AuthMiddleware(BaseHTTPMiddleware):
    """
    Resolves the caller for every /api request and rejects anonymous
    callers on non-public paths.

    Added before CORSMiddleware so CORS wraps auth failures too.
    """

    async def dispatch(self, request: Request, call_next):
        path = request.url.path

        # Let CORS preflight through; non-API paths fall through to 404.
        if request.method.upper() == "OPTIONS" or not path.startswith("/api/"):
            return await call_next(request)

        if is_public_path(path):
            return await call_next(request)

        log = get_logger("auth_middleware")
        try:
            user = resolve_user(request)
        except DdbError as exc:
            log.exception("auth_middleware_error", path=path, operation=exc.operation)
            return problem_response(
                request=request,
                status_code=503,
                detail="Session store unavailable",
            )

        if user is None:
            log.info("auth_middleware_denied", status_code=401, path=path)
            return problem_response(
                request=request,
                status_code=401,
                title="Unauthorized",
                detail="Authentication required",
                extensions={"redirectTo": "/auth"},
            )

        request.state.user = user
        request.state.user_resolved = True
        tokens = bind_user(user)
        try:
            return await call_next(request)
        finally:
            reset_user(tokens)
