from __future__ import annotations

from typing import Callable

from fastapi import Request

from ..errors import Forbidden, Unauthorized
from ..modules.access.route_policy import decide_route
from ..observability.logging import get_logger
from ..repositories import profiles_repo
from .models import AuthenticatedUser
from .resolver import current_user

log = get_logger("access")


def onboarding_path_for(role: str | None) -> str:
    return f"/onboarding/{role}" if role else "/onboarding"


def require_user(request: Request) -> AuthenticatedUser:
    user = current_user(request)
    if user is None:
        raise Unauthorized(
            "Authentication required",
            code="unauthenticated",
            extensions={"redirectTo": "/auth"},
        )
    return user


def _enforce(request: Request, roles: tuple[str, ...], requires_profile: bool) -> AuthenticatedUser:
    user = current_user(request)
    profile = None
    if user is not None and requires_profile:
        profile = profiles_repo.get_profile_for_role(user_id=user.id, role=user.role)

    decision = decide_route(
        user=user,
        required_roles=roles or None,
        requires_profile=requires_profile,
        profile=profile,
    )

    if user is None:
        raise Unauthorized("Authentication required", code="unauthenticated", extensions=decision.to_api())
    if decision.reason == "role_mismatch":
        raise Forbidden(
            "This resource is not available to your role",
            code="role_mismatch",
            extensions=decision.to_api(),
        )
    if decision.reason == "profile_incomplete":
        raise Forbidden(
            "Complete your profile to continue",
            code="profile_required",
            extensions={
                "error": "profile_required",
                "kind": decision.kind,
                "reason": decision.reason,
                "redirectTo": onboarding_path_for(user.role),
            },
        )
    if decision.kind == "create_profile":
        display_name = " ".join(x for x in (user.first_name, user.last_name) if x) or None
        profile, created = profiles_repo.ensure_business_profile(user_id=user.id, name=display_name)
        if created:
            log.info("business_profile_auto_created", user_id=user.id)

    request.state.profile = profile
    return user


def require_roles(*roles: str) -> Callable[[Request], AuthenticatedUser]:
    def _dep(request: Request) -> AuthenticatedUser:
        return _enforce(request, tuple(roles), requires_profile=False)

    return _dep


def require_profile(*roles: str) -> Callable[[Request], AuthenticatedUser]:
    """Role gate plus a complete profile; businesses without one get it created."""

    def _dep(request: Request) -> AuthenticatedUser:
        return _enforce(request, tuple(roles), requires_profile=True)

    return _dep
