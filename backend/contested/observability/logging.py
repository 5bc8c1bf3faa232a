from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

from .context import log_context

# Event keys whose values never reach the log sink.
_REDACTED_KEYS = frozenset(
    {
        "password",
        "newpassword",
        "currentpassword",
        "password_hash",
        "token",
        "access_token",
        "refresh_token",
        "authorization",
        "cookie",
        "stripe_signature",
        "secret",
    }
)

# Chatty at DEBUG and may echo request payloads (card data, JWTs).
_QUIET_LOGGERS = ("botocore", "boto3", "urllib3", "stripe", "httpx", "httpcore")

_CONFIGURED = False


def _add_request_context(_: Any, __: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    for k, v in log_context().items():
        event_dict.setdefault(k, v)
    return event_dict


def _redact(_: Any, __: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    for k in list(event_dict):
        if k.lower() in _REDACTED_KEYS and event_dict[k] is not None:
            event_dict[k] = "[redacted]"
    return event_dict


def _renderer(fmt: str):
    if str(fmt or "").strip().lower() == "console":
        return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    return structlog.processors.JSONRenderer()


def configure_logging(*, level: str | int = "INFO", fmt: str = "json") -> None:
    """
    Route stdlib and structlog records through one handler on stdout.

    Every line carries request id and, once authenticated, the caller's
    user id and role. Safe to call more than once.
    """
    global _CONFIGURED
    if _CONFIGURED:
        return

    shared: list[Any] = [
        _add_request_context,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _redact,
    ]

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(fmt),
            ],
            foreign_pre_chain=shared,
        )
    )

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(str(level).upper() if isinstance(level, str) else level)

    for name in ("uvicorn", "uvicorn.error"):
        uv = logging.getLogger(name)
        uv.handlers = []
        uv.propagate = True
    # AccessLogMiddleware already records every request.
    logging.getLogger("uvicorn.access").disabled = True

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            *shared,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    _CONFIGURED = True


def get_logger(name: str | None = None):
    return structlog.get_logger(name)
