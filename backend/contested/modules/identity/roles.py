from __future__ import annotations

from typing import Any, Iterable

ATHLETE = "athlete"
BUSINESS = "business"
COMPLIANCE = "compliance"
ADMIN = "admin"
VISITOR = "visitor"

KNOWN_ROLES: tuple[str, ...] = (ATHLETE, BUSINESS, COMPLIANCE, ADMIN)
# Roles a user may pick for themselves at registration.
SELF_SERVICE_ROLES: tuple[str, ...] = (ATHLETE, BUSINESS)
# Roles that see every match/offer rather than their own.
REVIEWER_ROLES: tuple[str, ...] = (COMPLIANCE, ADMIN)

_ALIASES: dict[str, str] = {
    "sponsor": BUSINESS,
    "brand": BUSINESS,
    "compliance_officer": COMPLIANCE,
    "compliance-officer": COMPLIANCE,
    "administrator": ADMIN,
}

# Supabase sets `role` to the Postgres role, which is not an app role.
_POSTGRES_ROLES = {"authenticated", "anon", "service_role"}

_DASHBOARDS: dict[str, str] = {
    ATHLETE: "/athlete/dashboard",
    BUSINESS: "/business/dashboard",
    COMPLIANCE: "/compliance/dashboard",
    ADMIN: "/admin/dashboard",
}


def normalize_role(value: Any) -> str:
    s = str(value or "").strip().lower()
    if not s:
        return VISITOR
    s = _ALIASES.get(s, s)
    return s if s in KNOWN_ROLES else VISITOR


def normalize_roles(values: Any) -> tuple[str, ...]:
    """Accepts a single role or a list; unknown entries are dropped."""
    if values is None:
        return ()
    if isinstance(values, str):
        raw: Iterable[Any] = [v for v in values.split(",")]
    elif isinstance(values, (list, tuple, set)):
        raw = values
    else:
        raw = [values]
    out: list[str] = []
    for v in raw:
        r = normalize_role(v)
        if r != VISITOR and r not in out:
            out.append(r)
    return tuple(out)


def dashboard_path_for(role: str | None) -> str:
    return _DASHBOARDS.get(normalize_role(role), "/")


def role_from_claims(claims: dict[str, Any] | None) -> str:
    """Resolve an app role from Supabase JWT claims.

    Lookup order: user_metadata.role, role, user_metadata.userType,
    user_metadata.user_type, app_metadata.role.
    """
    c = claims or {}
    user_meta = c.get("user_metadata") if isinstance(c.get("user_metadata"), dict) else {}
    app_meta = c.get("app_metadata") if isinstance(c.get("app_metadata"), dict) else {}

    top_level = c.get("role")
    if str(top_level or "").strip().lower() in _POSTGRES_ROLES:
        top_level = None

    for candidate in (
        user_meta.get("role"),
        top_level,
        user_meta.get("userType"),
        user_meta.get("user_type"),
        app_meta.get("role"),
    ):
        role = normalize_role(candidate)
        if role != VISITOR:
            return role
    return VISITOR


def is_reviewer(role: str | None) -> bool:
    return normalize_role(role) in REVIEWER_ROLES
