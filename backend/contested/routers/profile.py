from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ..auth.dependencies import require_roles, require_user
from ..auth.models import AuthenticatedUser
from ..errors import NotFound
from ..modules.access.route_policy import is_profile_complete
from ..modules.identity.roles import ATHLETE, BUSINESS
from ..observability.logging import get_logger
from ..repositories import profiles_repo

router = APIRouter(tags=["profile"])
log = get_logger("profile")


class AthleteProfileRequest(BaseModel):
    name: str | None = None
    sport: str | None = None
    division: str | None = None
    school: str | None = None
    socialHandles: dict[str, Any] | None = None
    followerCount: int | None = Field(default=None, ge=0)
    engagementRate: float | None = Field(default=None, ge=0)
    age: int | None = Field(default=None, ge=0, le=120)
    gender: str | None = None
    contentStyle: str | None = None
    compensationGoals: str | None = None
    preferences: dict[str, Any] | None = None
    bio: str | None = None
    profileImage: str | None = None


class BusinessProfileRequest(BaseModel):
    name: str | None = None
    businessName: str | None = None
    productType: str | None = None
    industry: str | None = None
    audienceGoals: str | None = None
    campaignVibe: str | None = None
    values: str | None = None
    targetSchoolsSports: str | None = None
    budget: str | None = None
    website: str | None = None
    profileImage: str | None = None


@router.get("")
@router.get("/")
def get_own_profile(user: AuthenticatedUser = Depends(require_user)):
    profile = profiles_repo.get_profile_for_role(user_id=user.id, role=user.role)
    return {
        "role": user.role,
        "profile": profiles_repo.normalize_profile_for_api(profile, role=user.role),
        "profileComplete": is_profile_complete(user.role, profile),
    }


@router.put("/athlete")
def put_athlete_profile(
    body: AthleteProfileRequest,
    user: AuthenticatedUser = Depends(require_roles(ATHLETE)),
):
    item = profiles_repo.upsert_athlete_profile(
        user_id=user.id,
        updates=body.model_dump(exclude_none=True),
    )
    log.info("athlete_profile_saved", user_id=user.id)
    return {"profile": profiles_repo.normalize_profile_for_api(item, role=ATHLETE)}


@router.put("/business")
def put_business_profile(
    body: BusinessProfileRequest,
    user: AuthenticatedUser = Depends(require_roles(BUSINESS)),
):
    item = profiles_repo.upsert_business_profile(
        user_id=user.id,
        updates=body.model_dump(exclude_none=True),
    )
    log.info("business_profile_saved", user_id=user.id)
    return {"profile": profiles_repo.normalize_profile_for_api(item, role=BUSINESS)}


@router.post("/business/ensure")
def ensure_business_profile(user: AuthenticatedUser = Depends(require_roles(BUSINESS))):
    display_name = " ".join(x for x in (user.first_name, user.last_name) if x) or None
    item, created = profiles_repo.ensure_business_profile(user_id=user.id, name=display_name)
    if created:
        log.info("business_profile_auto_created", user_id=user.id)
    return {
        "profile": profiles_repo.normalize_profile_for_api(item, role=BUSINESS),
        "created": created,
    }


@router.get("/athletes/{athleteId}")
def get_athlete_profile(athleteId: str, user: AuthenticatedUser = Depends(require_user)):
    item = profiles_repo.get_athlete_profile(user_id=athleteId)
    if not item:
        raise NotFound("Athlete profile not found", code="profile_not_found")
    return {"profile": profiles_repo.normalize_profile_for_api(item, role=ATHLETE)}


@router.get("/businesses/{businessId}")
def get_business_profile(businessId: str, user: AuthenticatedUser = Depends(require_user)):
    item = profiles_repo.get_business_profile(user_id=businessId)
    if not item:
        raise NotFound("Business profile not found", code="profile_not_found")
    return {"profile": profiles_repo.normalize_profile_for_api(item, role=BUSINESS)}
