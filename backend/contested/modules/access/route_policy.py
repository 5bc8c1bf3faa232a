from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Literal

from ..identity.roles import ATHLETE, BUSINESS, dashboard_path_for, normalize_role, normalize_roles

DEFAULT_REDIRECT_PATH = "/auth"

DecisionKind = Literal["render", "redirect", "create_profile"]


@dataclass(frozen=True, slots=True)
class RouteDecision:
    kind: DecisionKind
    reason: str
    redirect_to: str | None = None

    @property
    def allowed(self) -> bool:
        return self.kind == "render"

    def to_api(self) -> dict[str, Any]:
        return {"kind": self.kind, "reason": self.reason, "redirectTo": self.redirect_to}


def _has_text(v: Any) -> bool:
    if v is None:
        return False
    if isinstance(v, (list, tuple, set, dict)):
        return len(v) > 0
    return str(v).strip() != ""


def is_profile_complete(role: str | None, profile: dict[str, Any] | None) -> bool:
    """
    Athletes need a name and a sport. Businesses need a name (or businessName)
    plus something describing what they sell (industry, productType or values).
    Other roles carry no profile and are always complete.
    """
    r = normalize_role(role)
    if r not in (ATHLETE, BUSINESS):
        return True
    if not profile:
        return False
    if r == ATHLETE:
        return _has_text(profile.get("name")) and _has_text(profile.get("sport"))
    has_name = _has_text(profile.get("name")) or _has_text(profile.get("businessName"))
    has_offering = (
        _has_text(profile.get("industry"))
        or _has_text(profile.get("productType"))
        or _has_text(profile.get("values"))
    )
    return has_name and has_offering


def decide_route(
    *,
    user: Any | None,
    required_roles: str | Iterable[str] | None = None,
    requires_profile: bool = False,
    profile: dict[str, Any] | None = None,
    redirect_path: str | None = None,
) -> RouteDecision:
    """
    The single access table for pages and API routes.

    1. no user -> redirect to `redirect_path`
    2. role not in `required_roles` -> redirect to the user's own dashboard
    3. profile required but incomplete -> businesses get a profile created,
       everyone else is redirected
    4. otherwise render
    """
    target = (redirect_path or "").strip() or DEFAULT_REDIRECT_PATH

    if user is None:
        return RouteDecision(kind="redirect", reason="unauthenticated", redirect_to=target)

    role = normalize_role(getattr(user, "role", None))

    allowed = normalize_roles(required_roles)
    if allowed and role not in allowed:
        return RouteDecision(
            kind="redirect",
            reason="role_mismatch",
            redirect_to=dashboard_path_for(role),
        )

    if requires_profile and not is_profile_complete(role, profile):
        if role == BUSINESS and not profile:
            return RouteDecision(kind="create_profile", reason="business_profile_missing")
        return RouteDecision(kind="redirect", reason="profile_incomplete", redirect_to=target)

    return RouteDecision(kind="render", reason="ok")
