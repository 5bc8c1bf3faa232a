from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(slots=True)
class AppError(Exception):
    """Base error for domain rules (ownership, state transitions, config).

    Rendered by the app-level exception handler as an RFC7807 problem
    response; `extensions` is passed through verbatim.
    """

    message: str
    code: str | None = None
    extensions: dict[str, Any] = field(default_factory=dict)

    status_code = 500
    title = "Internal Server Error"

    def __str__(self) -> str:
        return self.message


@dataclass(slots=True)
class BadRequest(AppError):
    status_code = 400
    title = "Bad Request"


@dataclass(slots=True)
class Unauthorized(AppError):
    status_code = 401
    title = "Unauthorized"


@dataclass(slots=True)
class Forbidden(AppError):
    status_code = 403
    title = "Forbidden"


@dataclass(slots=True)
class NotFound(AppError):
    status_code = 404
    title = "Not Found"


@dataclass(slots=True)
class Conflict(AppError):
    status_code = 409
    title = "Conflict"


@dataclass(slots=True)
class UpstreamError(AppError):
    status_code = 502
    title = "Bad Gateway"


@dataclass(slots=True)
class ServiceNotConfigured(AppError):
    status_code = 503
    title = "Service Unavailable"
