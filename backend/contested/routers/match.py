from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ..auth.dependencies import require_roles
from ..auth.models import AuthenticatedUser
from ..errors import Forbidden
from ..modules.identity.roles import ADMIN, BUSINESS
from ..repositories import campaigns_repo
from ..services.matching import run_matching

router = APIRouter(tags=["matching"])


class MatchRunRequest(BaseModel):
    campaignId: str = Field(..., min_length=1)
    targetSports: list[str] | None = None
    targetAudience: dict[str, Any] | None = None


@router.post("/run")
def run_match(body: MatchRunRequest, user: AuthenticatedUser = Depends(require_roles(BUSINESS, ADMIN))):
    campaign = campaigns_repo.get_campaign_required(campaign_id=body.campaignId)
    if campaign.get("businessId") != user.id and user.role != ADMIN:
        raise Forbidden("You do not have access to this campaign", code="not_campaign_owner")
    return run_matching(
        campaign=campaign,
        target_sports=body.targetSports,
        target_audience=body.targetAudience,
    )
