from __future__ import annotations

from typing import Any

from fastapi import Request

from ..modules.identity.roles import VISITOR, normalize_role, role_from_claims
from ..observability.logging import get_logger
from ..repositories import sessions_repo, users_repo
from ..settings import settings
from .models import AuthenticatedUser
from .supabase import SupabaseAuthError, looks_like_jwt, verify_access_token

log = get_logger("auth")


def extract_token(request: Request) -> tuple[str | None, str | None]:
    """
    Returns (token, origin). A bearer header wins over the session cookie.
    """
    auth = request.headers.get("authorization") or ""
    parts = auth.split()
    if len(parts) == 2 and parts[0].lower() == "bearer" and parts[1].strip():
        return parts[1].strip(), "bearer"
    cookie = request.cookies.get(settings.session_cookie_name)
    if cookie and cookie.strip():
        return cookie.strip(), "cookie"
    return None, None


def _user_from_session(token: str) -> AuthenticatedUser | None:
    session = sessions_repo.get_active_session(token=token)
    if not session:
        return None
    user_id = str(session.get("userId") or "")
    account = users_repo.get_user(user_id=user_id)
    if not account:
        return None
    return AuthenticatedUser(
        id=user_id,
        email=account.get("email"),
        role=normalize_role(account.get("role") or session.get("role")),
        source="session",
        first_name=account.get("firstName"),
        last_name=account.get("lastName"),
        session_hash=str(session.get("tokenHash") or "") or None,
    )


def _meta(claims: dict[str, Any], *names: str) -> str | None:
    meta = claims.get("user_metadata") if isinstance(claims.get("user_metadata"), dict) else {}
    for n in names:
        v = str(meta.get(n) or "").strip()
        if v:
            return v
    return None


def _user_from_supabase(token: str) -> AuthenticatedUser | None:
    try:
        claims = verify_access_token(token)
    except SupabaseAuthError as e:
        log.info("supabase_token_rejected", reason=str(e))
        return None

    user_id = str(claims.get("sub"))
    email = str(claims.get("email") or "").strip().lower() or None
    role = role_from_claims(claims)
    account: dict[str, Any] | None = None
    if role == VISITOR:
        # Token carries no app role; the stored account is authoritative.
        account = users_repo.get_user(user_id=user_id)
        role = normalize_role((account or {}).get("role"))

    return AuthenticatedUser(
        id=user_id,
        email=email or (account or {}).get("email"),
        role=role,
        source="supabase",
        first_name=_meta(claims, "firstName", "first_name") or (account or {}).get("firstName"),
        last_name=_meta(claims, "lastName", "last_name") or (account or {}).get("lastName"),
        claims=claims,
    )


def resolve_user(request: Request) -> AuthenticatedUser | None:
    """
    Resolve the caller from whichever credential is present.

    JWT-shaped bearer tokens are Supabase access tokens; anything else
    (bearer or cookie) is an opaque custom session token. Invalid
    credentials resolve to None, never raise.
    """
    token, origin = extract_token(request)
    if not token:
        return None
    if origin == "bearer" and looks_like_jwt(token):
        return _user_from_supabase(token)
    return _user_from_session(token)


def current_user(request: Request) -> AuthenticatedUser | None:
    """The user set by AuthMiddleware, resolving lazily on public paths."""
    state = request.state
    if getattr(state, "user_resolved", False):
        return getattr(state, "user", None)
    user = resolve_user(request)
    state.user = user
    state.user_resolved = True
    return user
