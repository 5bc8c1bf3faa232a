from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import Response

from .db.dynamodb.errors import DdbError
from .errors import AppError
from .middleware.access_log import AccessLogMiddleware
from .middleware.auth import AuthMiddleware
from .middleware.cors import build_allowed_origin_regex, build_allowed_origins
from .middleware.login_rate_limit import LoginRateLimitMiddleware
from .middleware.request_context import RequestContextMiddleware
from .observability.logging import configure_logging, get_logger
from .problem_details import (
    app_error_response,
    ddb_error_response,
    http_exception_response,
    problem_response,
    validation_error_response,
)
from .routers.auth import router as auth_router
from .routers.bundle import router as bundle_router
from .routers.campaigns import router as campaigns_router
from .routers.dashboard import router as dashboard_router
from .routers.health import router as health_router
from .routers.match import router as match_router
from .routers.matches import router as matches_router
from .routers.notifications import router as notifications_router
from .routers.offers import router as offers_router
from .routers.profile import router as profile_router
from .routers.subscription import router as subscription_router
from .settings import settings


def create_app() -> FastAPI:
    configure_logging(level=settings.log_level, fmt=settings.log_format)
    log = get_logger("startup")

    settings.require_in_production()

    app = FastAPI(
        title="Contested Marketplace Backend",
        version="1.0.0",
        default_response_class=ORJSONResponse,
        # No 307/308 hops between /path and /path/ behind the SPA's proxy.
        redirect_slashes=False,
    )

    allowed_origins = build_allowed_origins(
        frontend_base_url=settings.frontend_base_url,
        frontend_urls=settings.frontend_urls,
    )

    log.info("app_starting", settings=settings.to_log_safe_dict())

    # Middlewares (order matters; last added is outermost)
    # Auth runs inside CORS so auth failures still get CORS headers.
    app.add_middleware(AuthMiddleware)
    app.add_middleware(LoginRateLimitMiddleware)
    app.add_middleware(AccessLogMiddleware, exclude_paths={"/"})
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_origin_regex=build_allowed_origin_regex(),
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Requested-With", "Idempotency-Key"],
        expose_headers=["X-Request-Id", "Retry-After"],
        max_age=3000,
    )
    # Outermost: request context (request-id) wraps everything.
    app.add_middleware(RequestContextMiddleware)

    # Error handlers
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _validation_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(AppError, _app_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(DdbError, _ddb_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _unhandled_exception_handler)

    # Routes
    app.include_router(health_router)
    app.include_router(auth_router, prefix="/api/auth")
    app.include_router(profile_router, prefix="/api/profile")
    app.include_router(campaigns_router, prefix="/api/campaigns")
    app.include_router(match_router, prefix="/api/match")
    app.include_router(matches_router, prefix="/api/matches")
    app.include_router(offers_router, prefix="/api/offers")
    app.include_router(bundle_router, prefix="/api/bundle")
    app.include_router(subscription_router, prefix="/api/subscription")
    app.include_router(notifications_router, prefix="/api/notifications")
    app.include_router(dashboard_router, prefix="/api/dashboard")

    return app


def _app_error_handler(request: Request, exc: AppError) -> Response:
    if exc.status_code >= 500:
        get_logger("app_error").warning(
            "app_error",
            error_type=type(exc).__name__,
            code=exc.code,
            path=request.url.path,
        )
    return app_error_response(request, exc)


def _ddb_error_handler(request: Request, exc: DdbError) -> Response:
    get_logger("storage").warning("ddb_error_response", status_code=exc.status_code, **exc.log_fields())
    return ddb_error_response(request, exc)


def _http_exception_handler(request: Request, exc: StarletteHTTPException) -> Response:
    return http_exception_response(request, exc)


def _validation_error_handler(request: Request, exc: RequestValidationError) -> Response:
    return validation_error_response(request, exc)


def _unhandled_exception_handler(request: Request, exc: Exception) -> Response:
    # Runs outside the middleware stack, so context vars are already reset.
    user = getattr(request.state, "user", None)
    get_logger("unhandled").exception(
        "unhandled_exception",
        request_id=getattr(request.state, "request_id", None),
        user_id=getattr(user, "id", None),
        http_method=request.method,
        path=request.url.path,
        exc_info=exc,
    )
    return problem_response(
        request=request,
        status_code=500,
        title="Internal Server Error",
        detail=str(exc) if exc else None,
    )


app = create_app()
