from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Header, Query
from pydantic import BaseModel, Field

from ..auth.dependencies import require_profile, require_roles
from ..auth.models import AuthenticatedUser
from ..errors import Conflict, Forbidden
from ..modules.bundles.presets import DEFAULT_BUNDLE_TYPE
from ..modules.identity.roles import ADMIN, BUSINESS, COMPLIANCE, is_reviewer
from ..observability.logging import get_logger
from ..repositories import bundles_repo, campaigns_repo, matches_repo, wizard_drafts_repo
from ..repositories.campaigns_repo import DEFAULT_TARGET_AUDIENCE, STATUS_DRAFT
from ..services import bundles as bundle_service

router = APIRouter(tags=["campaigns"])
log = get_logger("campaigns")

WIZARD_STEPS = 6


class TargetAudience(BaseModel):
    ageRange: list[int] = Field(default_factory=lambda: [18, 34], min_length=2, max_length=2)
    gender: str = "all"
    interests: list[str] = Field(default_factory=list)
    location: str = ""


class CampaignCreateRequest(BaseModel):
    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    objective: str | None = None
    channels: list[str] | None = None
    startDate: str | None = None
    endDate: str | None = None
    targetAudience: TargetAudience | None = None
    targetSports: list[str] | None = None
    budget: str | None = None
    deliverables: list[str] | None = None
    hashtagRequirements: str | None = None


class CampaignUpdateRequest(BaseModel):
    title: str | None = Field(default=None, min_length=1)
    description: str | None = Field(default=None, min_length=1)
    objective: str | None = None
    channels: list[str] | None = None
    startDate: str | None = None
    endDate: str | None = None
    targetAudience: TargetAudience | None = None
    targetSports: list[str] | None = None
    budget: str | None = None
    deliverables: list[str] | None = None
    hashtagRequirements: str | None = None


class LaunchRequest(BaseModel):
    bundleType: str | None = None
    selectedAthletes: list[str] | None = None
    bundleDetails: dict[str, Any] | None = None


class MatchScoreRequest(BaseModel):
    score: float = Field(..., ge=0, le=1)
    reason: str | None = None


class WizardDraftRequest(BaseModel):
    currentStep: int = Field(default=1, ge=1, le=WIZARD_STEPS)
    campaignId: str | None = None
    form: dict[str, Any] = Field(default_factory=dict)


def _wizard_form_defaults() -> dict[str, Any]:
    return {
        "targetAudience": dict(DEFAULT_TARGET_AUDIENCE),
        "targetSports": [],
        "deliverables": [],
        "channels": [],
        "selectedMatches": [],
        "bundleType": DEFAULT_BUNDLE_TYPE,
        "customBundle": None,
        "selectedBundle": None,
    }


def _owned_campaign(campaign_id: str, user: AuthenticatedUser, *, allow_reviewers: bool = False) -> dict[str, Any]:
    campaign = campaigns_repo.get_campaign_required(campaign_id=campaign_id)
    if campaign.get("businessId") == user.id:
        return campaign
    if allow_reviewers and is_reviewer(user.role):
        return campaign
    raise Forbidden("You do not have access to this campaign", code="not_campaign_owner")


# Wizard routes come before /{campaignId} so "wizard" is not read as an id.
@router.get("/wizard")
def get_wizard_draft(user: AuthenticatedUser = Depends(require_roles(BUSINESS))):
    draft = wizard_drafts_repo.get_wizard_draft(user_id=user.id)
    if not draft:
        return {"currentStep": 1, "campaignId": None, "form": _wizard_form_defaults(), "saved": False}
    return {**draft, "form": {**_wizard_form_defaults(), **(draft.get("form") or {})}, "saved": True}


@router.put("/wizard")
def put_wizard_draft(body: WizardDraftRequest, user: AuthenticatedUser = Depends(require_roles(BUSINESS))):
    draft = wizard_drafts_repo.put_wizard_draft(
        user_id=user.id,
        draft={
            "currentStep": body.currentStep,
            "campaignId": body.campaignId,
            "form": {**_wizard_form_defaults(), **body.form},
        },
    )
    return {**draft, "saved": True}


@router.delete("/wizard")
def delete_wizard_draft(user: AuthenticatedUser = Depends(require_roles(BUSINESS))):
    wizard_drafts_repo.delete_wizard_draft(user_id=user.id)
    return {"success": True}


@router.get("")
@router.get("/")
def list_campaigns(
    status: str | None = Query(default=None),
    user: AuthenticatedUser = Depends(require_profile(BUSINESS)),
):
    items = campaigns_repo.list_campaigns_for_business(business_id=user.id, status=status)
    data = [campaigns_repo.normalize_campaign_for_api(it) for it in items]
    return {"data": data, "total": len(data)}


@router.post("", status_code=201)
@router.post("/", status_code=201)
def create_campaign(body: CampaignCreateRequest, user: AuthenticatedUser = Depends(require_profile(BUSINESS))):
    item = campaigns_repo.create_campaign(business_id=user.id, data=body.model_dump(exclude_none=True))
    log.info("campaign_created", campaign_id=item["id"], business_id=user.id)
    return {"campaign": campaigns_repo.normalize_campaign_for_api(item)}


@router.get("/{campaignId}")
def get_campaign(
    campaignId: str,
    user: AuthenticatedUser = Depends(require_profile(BUSINESS, ADMIN, COMPLIANCE)),
):
    campaign = _owned_campaign(campaignId, user, allow_reviewers=True)
    out = campaigns_repo.normalize_campaign_for_api(campaign) or {}
    bundle_id = str(campaign.get("bundleId") or "").strip()
    if bundle_id:
        meta, members = bundles_repo.get_bundle_with_members(bundle_id=bundle_id)
        out["bundle"] = bundles_repo.normalize_bundle_for_api(meta, members)
    return {"campaign": out}


@router.patch("/{campaignId}")
def update_campaign(
    campaignId: str,
    body: CampaignUpdateRequest,
    user: AuthenticatedUser = Depends(require_profile(BUSINESS)),
):
    _owned_campaign(campaignId, user)
    updated = campaigns_repo.update_campaign(
        campaign_id=campaignId,
        updates=body.model_dump(exclude_none=True),
        require_status=STATUS_DRAFT,
    )
    return {"campaign": campaigns_repo.normalize_campaign_for_api(updated)}


@router.delete("/{campaignId}")
def delete_campaign(campaignId: str, user: AuthenticatedUser = Depends(require_profile(BUSINESS))):
    _owned_campaign(campaignId, user)
    campaigns_repo.delete_draft_campaign(campaign_id=campaignId)
    log.info("campaign_deleted", campaign_id=campaignId, business_id=user.id)
    return {"success": True}


@router.post("/{campaignId}/launch")
def launch_campaign(
    campaignId: str,
    body: LaunchRequest | None = None,
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
    user: AuthenticatedUser = Depends(require_profile(BUSINESS)),
):
    campaign = _owned_campaign(campaignId, user)
    if campaign.get("status") != STATUS_DRAFT:
        # Checked before the bundle write; mark_launched re-checks atomically.
        raise Conflict("Campaign is already launched", code="campaign_already_launched")

    bundle: dict[str, Any] | None = None
    if body is not None and body.selectedAthletes:
        created_bundle, _ = bundle_service.create_bundle(
            business_id=user.id,
            campaign_id=campaignId,
            bundle_type=body.bundleType,
            custom_details=body.bundleDetails,
            athlete_ids=body.selectedAthletes,
            idempotency_key=idempotency_key,
        )
        bundle = bundles_repo.normalize_bundle_for_api(created_bundle)

    launched = campaigns_repo.mark_launched(campaign_id=campaignId)
    wizard_draft = wizard_drafts_repo.get_wizard_draft(user_id=user.id)
    if wizard_draft and wizard_draft.get("campaignId") == campaignId:
        wizard_drafts_repo.delete_wizard_draft(user_id=user.id)

    log.info("campaign_launched", campaign_id=campaignId, business_id=user.id, has_bundle=bundle is not None)
    return {"campaign": campaigns_repo.normalize_campaign_for_api(launched), "bundle": bundle}


@router.post("/{campaignId}/complete")
def complete_campaign(campaignId: str, user: AuthenticatedUser = Depends(require_profile(BUSINESS))):
    _owned_campaign(campaignId, user)
    completed = campaigns_repo.mark_completed(campaign_id=campaignId)
    log.info("campaign_completed", campaign_id=campaignId, business_id=user.id)
    return {"campaign": campaigns_repo.normalize_campaign_for_api(completed)}


@router.post("/{campaignId}/cancel")
def cancel_campaign(campaignId: str, user: AuthenticatedUser = Depends(require_profile(BUSINESS))):
    _owned_campaign(campaignId, user)
    canceled = campaigns_repo.mark_canceled(campaign_id=campaignId)
    wizard_draft = wizard_drafts_repo.get_wizard_draft(user_id=user.id)
    if wizard_draft and wizard_draft.get("campaignId") == campaignId:
        wizard_drafts_repo.delete_wizard_draft(user_id=user.id)
    log.info("campaign_canceled", campaign_id=campaignId, business_id=user.id)
    return {"campaign": campaigns_repo.normalize_campaign_for_api(canceled)}


@router.get("/{campaignId}/matches")
def list_campaign_matches(
    campaignId: str,
    user: AuthenticatedUser = Depends(require_profile(BUSINESS, ADMIN, COMPLIANCE)),
):
    campaign = _owned_campaign(campaignId, user, allow_reviewers=True)
    items = matches_repo.list_matches_for_business(
        business_id=str(campaign.get("businessId")),
        campaign_id=campaignId,
    )
    items.sort(key=lambda m: float(m.get("score") or 0), reverse=True)
    data = [matches_repo.normalize_match_for_api(it) for it in items]
    return {"data": data, "total": len(data)}


@router.put("/{campaignId}/matches/{athleteId}")
def save_match_score(
    campaignId: str,
    athleteId: str,
    body: MatchScoreRequest,
    user: AuthenticatedUser = Depends(require_profile(BUSINESS)),
):
    _owned_campaign(campaignId, user)
    item = matches_repo.save_match_score(
        campaign_id=campaignId,
        athlete_id=athleteId,
        business_id=user.id,
        score=body.score,
        reason=body.reason,
    )
    return {"match": matches_repo.normalize_match_for_api(item)}
