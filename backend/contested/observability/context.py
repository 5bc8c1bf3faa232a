from __future__ import annotations

from contextvars import ContextVar, Token
from typing import Any

request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
user_id_var: ContextVar[str | None] = ContextVar("user_id", default=None)
user_role_var: ContextVar[str | None] = ContextVar("user_role", default=None)


def get_request_id() -> str | None:
    return request_id_var.get()


def bind_user(user: Any) -> tuple[Token, Token]:
    """Attach the resolved caller to log lines emitted for this request."""
    return (
        user_id_var.set(str(getattr(user, "id", "") or "") or None),
        user_role_var.set(str(getattr(user, "role", "") or "") or None),
    )


def reset_user(tokens: tuple[Token, Token]) -> None:
    uid_token, role_token = tokens
    user_id_var.reset(uid_token)
    user_role_var.reset(role_token)


def log_context() -> dict[str, str]:
    out = {
        "request_id": request_id_var.get(),
        "user_id": user_id_var.get(),
        "user_role": user_role_var.get(),
    }
    return {k: v for k, v in out.items() if v}
