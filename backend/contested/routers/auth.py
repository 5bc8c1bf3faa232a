from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query, Request, Response
from pydantic import BaseModel, EmailStr, Field

from ..auth.dependencies import onboarding_path_for, require_user
from ..auth.models import AuthenticatedUser
from ..auth.passwords import hash_password, validate_new_password, verify_password
from ..auth.resolver import current_user, extract_token
from ..auth.supabase import looks_like_jwt
from ..errors import BadRequest, Unauthorized
from ..middleware.request_context import client_ip
from ..modules.access.route_policy import decide_route, is_profile_complete
from ..modules.identity.roles import ATHLETE, SELF_SERVICE_ROLES, dashboard_path_for, normalize_role
from ..observability.logging import get_logger
from ..repositories import profiles_repo, sessions_repo, users_repo
from ..security.token_crypto import hash_token
from ..settings import settings

router = APIRouter(tags=["auth"])
log = get_logger("auth")


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)
    useCookies: bool = False


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)
    firstName: str | None = None
    lastName: str | None = None
    role: str = Field(..., min_length=1)
    useCookies: bool = False


class UserUpdateRequest(BaseModel):
    firstName: str | None = None
    lastName: str | None = None
    # Accepted only so a change attempt can be refused explicitly.
    role: str | None = None
    userType: str | None = None


class ChangePasswordRequest(BaseModel):
    currentPassword: str = Field(..., min_length=1)
    newPassword: str = Field(..., min_length=1)


class ResetPasswordRequest(BaseModel):
    email: EmailStr


def _set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        max_age=int(settings.session_ttl_seconds),
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
        path="/",
    )


def _clear_session_cookie(response: Response) -> None:
    response.delete_cookie(key=settings.session_cookie_name, path="/")


def _session_payload(token: str, item: dict[str, Any]) -> dict[str, Any]:
    return {
        "access_token": token,
        "token_type": "bearer",
        "expires_at": int(item.get("expiresAt") or 0),
    }


def _user_payload(account: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": account.get("id"),
        "email": account.get("email"),
        "role": normalize_role(account.get("role")),
        "firstName": account.get("firstName"),
        "lastName": account.get("lastName"),
    }


def _landing_for(role: str, profile: dict[str, Any] | None) -> tuple[bool, str]:
    needs_profile = not is_profile_complete(role, profile)
    return needs_profile, onboarding_path_for(role) if needs_profile else dashboard_path_for(role)


def _start_session(request: Request, response: Response, account: dict[str, Any], use_cookies: bool) -> dict[str, Any]:
    token, item = sessions_repo.create_session(
        user_id=str(account.get("id")),
        role=normalize_role(account.get("role")),
        email=account.get("email"),
        user_agent=request.headers.get("user-agent"),
        ip=client_ip(request),
    )
    if use_cookies:
        _set_session_cookie(response, token)
    return _session_payload(token, item)


@router.post("/login")
def login(body: LoginRequest, request: Request, response: Response):
    account = users_repo.get_user_by_email(email=str(body.email))
    if not account or not verify_password(body.password, account.get("passwordHash")):
        log.info("login_failed", email_domain=str(body.email).split("@", 1)[1])
        raise Unauthorized("Invalid email or password", code="invalid_credentials")

    role = normalize_role(account.get("role"))
    session = _start_session(request, response, account, body.useCookies)
    users_repo.record_login(user_id=str(account["id"]))

    profile = profiles_repo.get_profile_for_role(user_id=str(account["id"]), role=role)
    needs_profile, redirect_to = _landing_for(role, profile)
    log.info("login_succeeded", user_id=account["id"], role=role)
    return {
        "user": _user_payload(account),
        "session": session,
        "needsProfile": needs_profile,
        "redirectTo": redirect_to,
    }


@router.post("/register", status_code=201)
def register(body: RegisterRequest, request: Request, response: Response):
    role = normalize_role(body.role)
    if role not in SELF_SERVICE_ROLES:
        raise BadRequest("Role must be athlete or business", code="invalid_role")
    try:
        validate_new_password(body.password)
    except ValueError as e:
        raise BadRequest(str(e), code="weak_password") from e

    account = users_repo.create_user(
        email=str(body.email),
        role=role,
        first_name=body.firstName,
        last_name=body.lastName,
        password_hash=hash_password(body.password),
    )
    uid = str(account["id"])

    # Skeleton profile so onboarding has a record to fill in.
    display_name = " ".join(x for x in (body.firstName, body.lastName) if x and x.strip()) or None
    if role == ATHLETE:
        profiles_repo.upsert_athlete_profile(user_id=uid, updates={"name": display_name})
    else:
        profiles_repo.upsert_business_profile(user_id=uid, updates={"name": display_name})

    session = _start_session(request, response, account, body.useCookies)
    log.info("user_registered", user_id=uid, role=role)
    return {
        "user": _user_payload(account),
        "session": session,
        "needsProfile": True,
        "redirectTo": onboarding_path_for(role),
    }


@router.post("/logout")
def logout(response: Response, user: AuthenticatedUser = Depends(require_user)):
    if user.session_hash:
        sessions_repo.delete_session(token_hash=user.session_hash)
    _clear_session_cookie(response)
    log.info("logout", user_id=user.id, auth_source=user.source)
    return {"success": True}


@router.get("/user")
def get_current_user(user: AuthenticatedUser = Depends(require_user)):
    profile = profiles_repo.get_profile_for_role(user_id=user.id, role=user.role)
    return {
        "user": user.to_api(),
        "profile": profiles_repo.normalize_profile_for_api(profile, role=user.role),
        "profileComplete": is_profile_complete(user.role, profile),
        "dashboardPath": dashboard_path_for(user.role),
    }


@router.patch("/user")
def update_current_user(body: UserUpdateRequest, user: AuthenticatedUser = Depends(require_user)):
    updates = body.model_dump(exclude_none=True)
    if user.source == "supabase":
        users_repo.ensure_user(user_id=user.id, email=user.email, role=user.role)
    account = users_repo.update_user(user_id=user.id, updates=updates)
    return {"user": _user_payload(account)}


@router.post("/refresh")
def refresh(request: Request, response: Response):
    token, origin = extract_token(request)
    if not token or looks_like_jwt(token):
        # Supabase tokens are refreshed by the Supabase client.
        raise Unauthorized("No session to refresh", code="no_session")

    rotated = sessions_repo.rotate_session(token_hash=hash_token(token))
    if rotated is None:
        _clear_session_cookie(response)
        raise Unauthorized("Session expired", code="session_expired", extensions={"redirectTo": "/auth"})

    new_token, item = rotated
    if origin == "cookie":
        _set_session_cookie(response, new_token)
    return {"session": _session_payload(new_token, item)}


@router.post("/change-password")
def change_password(body: ChangePasswordRequest, user: AuthenticatedUser = Depends(require_user)):
    if user.source != "session":
        raise BadRequest("Password is managed by your identity provider", code="external_identity")
    account = users_repo.get_user(user_id=user.id) or {}
    if not verify_password(body.currentPassword, account.get("passwordHash")):
        raise Unauthorized("Current password is incorrect", code="invalid_credentials")
    try:
        validate_new_password(body.newPassword)
    except ValueError as e:
        raise BadRequest(str(e), code="weak_password") from e

    users_repo.set_password_hash(user_id=user.id, password_hash=hash_password(body.newPassword))
    revoked = sessions_repo.delete_sessions_for_user(user_id=user.id, keep_token_hash=user.session_hash)
    log.info("password_changed", user_id=user.id, sessions_revoked=revoked)
    return {"success": True}


@router.post("/reset-password")
def reset_password(body: ResetPasswordRequest):
    email = str(body.email).strip().lower()
    uid = users_repo.get_user_id_by_email(email=email)
    # Enumeration-safe: same response either way.
    log.info(
        "password_reset_requested",
        email_domain=email.split("@", 1)[1],
        account_found=bool(uid),
    )
    return {
        "success": True,
        "message": "If an account exists for that email, a reset link has been sent.",
    }


@router.get("/route-decision")
def route_decision(
    request: Request,
    path: str | None = Query(default=None),
    requiredRole: list[str] | None = Query(default=None),
    requiresProfile: bool = Query(default=False),
    redirectPath: str | None = Query(default=None),
):
    user = current_user(request)
    profile = None
    if user is not None and requiresProfile:
        profile = profiles_repo.get_profile_for_role(user_id=user.id, role=user.role)

    # Accept both repeated params and a comma-separated value.
    roles = [r for v in (requiredRole or []) for r in v.split(",") if r.strip()]
    decision = decide_route(
        user=user,
        required_roles=roles,
        requires_profile=requiresProfile,
        profile=profile,
        redirect_path=redirectPath,
    )
    return {
        "path": path,
        **decision.to_api(),
        "user": user.to_api() if user else None,
    }
