from __future__ import annotations

from http import HTTPStatus
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import ORJSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .db.dynamodb.errors import DdbError
from .errors import AppError
from .observability.context import get_request_id
from .settings import settings

PROBLEM_JSON = "application/problem+json"


def _title_for(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return "Internal Server Error" if status_code >= 500 else "Error"


def problem_payload(
    *,
    request: Request,
    status_code: int,
    title: str | None = None,
    detail: str | None = None,
    type: str = "about:blank",
    errors: list[dict[str, Any]] | None = None,
    extensions: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """
    RFC 7807 body. App-specific members (`code`, `redirectTo`, ...) go under
    `extensions` so clients read them from one place.
    """
    status = int(status_code)
    body: dict[str, Any] = {
        "type": type or "about:blank",
        "title": title or _title_for(status),
        "status": status,
        "instance": request.url.path,
    }
    if detail:
        body["detail"] = str(detail)
    rid = getattr(request.state, "request_id", None) or get_request_id()
    if rid:
        body["requestId"] = str(rid)
    if errors:
        body["errors"] = errors
    if extensions:
        body["extensions"] = extensions
    return body


def problem_response(
    *,
    request: Request,
    status_code: int,
    title: str | None = None,
    detail: str | None = None,
    type: str = "about:blank",
    errors: list[dict[str, Any]] | None = None,
    extensions: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
) -> ORJSONResponse:
    # 5xx detail can carry boto/stripe internals; production gets the title only.
    if int(status_code) >= 500 and settings.is_production:
        detail = None
    return ORJSONResponse(
        status_code=int(status_code),
        content=problem_payload(
            request=request,
            status_code=status_code,
            title=title,
            detail=detail,
            type=type,
            errors=errors,
            extensions=extensions,
        ),
        media_type=PROBLEM_JSON,
        headers=headers,
    )


def app_error_response(request: Request, exc: AppError) -> ORJSONResponse:
    extensions: dict[str, Any] = dict(exc.extensions or {})
    if exc.code:
        extensions.setdefault("code", exc.code)
    return problem_response(
        request=request,
        status_code=exc.status_code,
        title=exc.title,
        detail=exc.message,
        extensions=extensions or None,
    )


def ddb_error_response(request: Request, exc: DdbError) -> ORJSONResponse:
    extensions = {
        "operation": exc.operation,
        "table": exc.table_name,
        "awsRequestId": exc.aws_request_id,
        "retryable": bool(exc.retryable),
    }
    return problem_response(
        request=request,
        status_code=exc.status_code,
        title=exc.title,
        detail=exc.message,
        extensions={k: v for k, v in extensions.items() if v is not None},
    )


def http_exception_response(request: Request, exc: StarletteHTTPException) -> ORJSONResponse:
    """Routing errors (404/405) and any HTTPException raised by FastAPI itself."""
    status = int(exc.status_code or 500)
    detail = exc.detail
    extensions: dict[str, Any] | None = None
    if isinstance(detail, dict):
        extensions = dict(detail)
        detail = extensions.get("message")
    elif status == 404 and detail in (None, "Not Found"):
        detail = "Route not found"
    return problem_response(
        request=request,
        status_code=status,
        detail=str(detail) if detail else None,
        extensions=extensions,
        headers=getattr(exc, "headers", None),
    )


def _field_path(loc: Any) -> str:
    # ("body", "athlete_ids", 3) -> "athlete_ids.3"; query/path params keep their name.
    parts = [str(p) for p in (loc or ()) if p != "body"]
    return ".".join(parts)


def validation_error_response(request: Request, exc: RequestValidationError) -> ORJSONResponse:
    errors = [
        {
            "location": list(e.get("loc") or ()),
            "path": _field_path(e.get("loc")),
            "message": e.get("msg") or "Invalid value",
            "type": e.get("type"),
        }
        for e in exc.errors()
    ]
    return problem_response(
        request=request,
        status_code=422,
        title="Validation Failed",
        detail="Request validation failed",
        errors=errors,
    )
