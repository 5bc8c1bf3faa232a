from __future__ import annotations

from typing import Any

import httpx
from cachetools import TTLCache
from jose import JWTError, jwt

from ..settings import settings


class SupabaseAuthError(Exception):
    status_code = 401


_JWKS_CACHE: TTLCache[str, dict[str, Any]] = TTLCache(maxsize=4, ttl=60 * 60)


def looks_like_jwt(token: str | None) -> bool:
    parts = str(token or "").split(".")
    return len(parts) == 3 and all(parts)


def _jwks_url() -> str:
    base = str(settings.supabase_url or "").strip().rstrip("/")
    if not base:
        raise SupabaseAuthError("Supabase auth is not configured")
    return f"{base}/auth/v1/.well-known/jwks.json"


def _get_jwks() -> dict[str, Any]:
    url = _jwks_url()
    cached = _JWKS_CACHE.get(url)
    if cached:
        return cached

    with httpx.Client(timeout=10.0) as client:
        resp = client.get(url)
        resp.raise_for_status()
        jwks = resp.json()

    _JWKS_CACHE[url] = jwks
    return jwks


def verify_access_token(token: str) -> dict[str, Any]:
    """
    Verify a Supabase access token and return its claims.

    Projects with a shared JWT secret sign HS256; newer projects publish
    asymmetric keys at /auth/v1/.well-known/jwks.json.
    """
    if not token:
        raise SupabaseAuthError("Missing token")
    if not settings.supabase_configured:
        raise SupabaseAuthError("Supabase auth is not configured")

    audience = settings.supabase_jwt_audience or "authenticated"
    try:
        if settings.supabase_jwt_secret:
            claims = jwt.decode(
                token,
                settings.supabase_jwt_secret,
                algorithms=["HS256"],
                audience=audience,
            )
        else:
            try:
                jwks = _get_jwks()
            except httpx.HTTPError as e:
                raise SupabaseAuthError("Unable to fetch Supabase signing keys") from e
            claims = jwt.decode(
                token,
                jwks,
                algorithms=["RS256", "ES256"],
                audience=audience,
            )
    except JWTError as e:
        raise SupabaseAuthError("Invalid or expired token") from e

    if not str(claims.get("sub") or "").strip():
        raise SupabaseAuthError("Token is missing sub")
    return claims
