from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Header, Response
from pydantic import BaseModel, Field

from ..auth.dependencies import require_profile, require_user
from ..auth.models import AuthenticatedUser
from ..errors import Forbidden, NotFound
from ..modules.bundles.presets import BUNDLE_TYPES, DEFAULT_BUNDLE_TYPE
from ..modules.identity.roles import BUSINESS, is_reviewer
from ..observability.logging import get_logger
from ..repositories import bundles_repo
from ..services import bundles as bundle_service

router = APIRouter(tags=["bundles"])
log = get_logger("bundles")


class BundleCreateRequest(BaseModel):
    campaign_id: str = Field(..., min_length=1)
    type: str = DEFAULT_BUNDLE_TYPE
    custom_details: dict[str, Any] | None = None
    athlete_ids: list[str] = Field(default_factory=list)


@router.get("/types")
def list_bundle_types():
    return {"types": BUNDLE_TYPES}


@router.post("/create")
def create_bundle(
    body: BundleCreateRequest,
    response: Response,
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
    user: AuthenticatedUser = Depends(require_profile(BUSINESS)),
):
    bundle, created = bundle_service.create_bundle(
        business_id=user.id,
        campaign_id=body.campaign_id,
        bundle_type=body.type,
        custom_details=body.custom_details,
        athlete_ids=body.athlete_ids,
        idempotency_key=idempotency_key,
    )
    response.status_code = 201 if created else 200
    out = bundles_repo.normalize_bundle_for_api(bundle) or {}
    return {"bundle": out, "athlete_count": out.get("athlete_count", 0), "replayed": not created}


@router.get("/{bundleId}")
def get_bundle(bundleId: str, user: AuthenticatedUser = Depends(require_user)):
    meta, members = bundles_repo.get_bundle_with_members(bundle_id=bundleId)
    if not meta:
        raise NotFound("Bundle not found", code="bundle_not_found")
    member_ids = {str(m.get("athleteId")) for m in members}
    if meta.get("businessId") != user.id and user.id not in member_ids and not is_reviewer(user.role):
        raise Forbidden("You do not have access to this bundle", code="not_bundle_party")
    return {"bundle": bundles_repo.normalize_bundle_for_api(meta, members)}


@router.delete("/{bundleId}")
def delete_bundle(bundleId: str, user: AuthenticatedUser = Depends(require_profile(BUSINESS))):
    meta, members = bundles_repo.get_bundle_with_members(bundle_id=bundleId)
    if not meta:
        raise NotFound("Bundle not found", code="bundle_not_found")
    if meta.get("businessId") != user.id:
        raise Forbidden("Only the bundle creator can delete it", code="not_bundle_owner")
    bundles_repo.delete_bundle(bundle=meta, members=members)
    log.info("bundle_deleted", bundle_id=bundleId, business_id=user.id, athletes=len(members))
    return {"success": True}
