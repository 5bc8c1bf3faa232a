from __future__ import annotations

from typing import Any, Literal

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from ..auth.dependencies import require_roles, require_user
from ..auth.models import AuthenticatedUser
from ..errors import Conflict, Forbidden
from ..modules.identity.roles import ADMIN, ATHLETE, BUSINESS, COMPLIANCE, is_reviewer
from ..observability.logging import get_logger
from ..repositories import matches_repo, offers_repo
from ..repositories.matches_repo import MATCH_ACCEPTED
from ..services.notifications import notify

router = APIRouter(tags=["matches"])
log = get_logger("matches")


class MatchResponseRequest(BaseModel):
    response: Literal["accepted", "declined"]


class ComplianceReviewRequest(BaseModel):
    status: Literal["approved", "rejected"]
    notes: str | None = None


class OfferCreateRequest(BaseModel):
    compensationType: str = Field(..., min_length=1)
    offerAmount: float | str
    term: str = Field(..., min_length=1)
    usageRights: str = Field(..., min_length=1)
    deliverables: list[str] | None = None
    message: str | None = None
    expiresAt: str | None = None


def _is_party(match: dict[str, Any], user: AuthenticatedUser) -> bool:
    return user.id in (match.get("athleteId"), match.get("businessId"))


def _visible_match(match_id: str, user: AuthenticatedUser) -> dict[str, Any]:
    match = matches_repo.get_match_required(match_id=match_id)
    if not (_is_party(match, user) or is_reviewer(user.role)):
        raise Forbidden("You do not have access to this match", code="not_match_party")
    return match


@router.get("")
@router.get("/")
def list_matches(
    status: str | None = Query(default=None),
    complianceStatus: str | None = Query(default=None),
    user: AuthenticatedUser = Depends(require_user),
):
    if user.role == ATHLETE:
        items = matches_repo.list_matches_for_athlete(athlete_id=user.id)
    elif user.role == BUSINESS:
        items = matches_repo.list_matches_for_business(business_id=user.id)
    elif is_reviewer(user.role):
        items = matches_repo.list_all_matches()
    else:
        raise Forbidden("This resource is not available to your role", code="role_mismatch")

    if status:
        items = [m for m in items if m.get("status") == status]
    if complianceStatus:
        items = [m for m in items if m.get("complianceStatus") == complianceStatus]
    data = [matches_repo.normalize_match_for_api(m) for m in items]
    return {"data": data, "total": len(data)}


@router.get("/{matchId}")
def get_match(matchId: str, user: AuthenticatedUser = Depends(require_user)):
    match = _visible_match(matchId, user)
    offer = offers_repo.get_offer_for_match(match_id=matchId)
    out = matches_repo.normalize_match_for_api(match) or {}
    out["offers"] = [offers_repo.normalize_offer_for_api(offer)] if offer else []
    return {"match": out}


@router.post("/{matchId}/respond")
def respond_to_match(
    matchId: str,
    body: MatchResponseRequest,
    user: AuthenticatedUser = Depends(require_roles(ATHLETE)),
):
    match = matches_repo.get_match_required(match_id=matchId)
    if match.get("athleteId") != user.id:
        raise Forbidden("Only the matched athlete can respond", code="not_match_party")

    updated = matches_repo.respond_to_match(match_id=matchId, athlete_id=user.id, response=body.response)
    notify(
        user_id=match.get("businessId"),
        type="match_response",
        title=f"Match {body.response}",
        content=f"An athlete has {body.response} your match request.",
        reference_type="match",
        reference_id=matchId,
    )
    log.info("match_responded", match_id=matchId, athlete_id=user.id, response=body.response)
    return {"match": matches_repo.normalize_match_for_api(updated)}


@router.post("/{matchId}/compliance")
def review_match(
    matchId: str,
    body: ComplianceReviewRequest,
    user: AuthenticatedUser = Depends(require_roles(COMPLIANCE, ADMIN)),
):
    match = matches_repo.get_match_required(match_id=matchId)
    updated = matches_repo.set_compliance_status(
        match_id=matchId,
        status=body.status,
        reviewer_id=user.id,
        notes=body.notes,
    )
    for party in (match.get("athleteId"), match.get("businessId")):
        notify(
            user_id=party,
            type="compliance_review",
            title=f"Partnership {body.status}",
            content=f"A compliance officer has {body.status} this partnership."
            + (f" Notes: {body.notes}" if body.notes else ""),
            reference_type="match",
            reference_id=matchId,
        )
    log.info("match_compliance_reviewed", match_id=matchId, reviewer_id=user.id, status=body.status)
    return {"match": matches_repo.normalize_match_for_api(updated)}


@router.post("/{matchId}/offers", status_code=201)
def create_offer(
    matchId: str,
    body: OfferCreateRequest,
    user: AuthenticatedUser = Depends(require_roles(BUSINESS)),
):
    match = matches_repo.get_match_required(match_id=matchId)
    if match.get("businessId") != user.id:
        raise Forbidden("Only the matched business can make an offer", code="not_match_party")
    if match.get("status") != MATCH_ACCEPTED:
        raise Conflict("Offers can only be made on accepted matches", code="match_state")

    offer = offers_repo.create_offer(match=match, data=body.model_dump(exclude_none=True))
    notify(
        user_id=match.get("athleteId"),
        type="partnership_offer",
        title="New partnership offer",
        content=f"You received a {body.compensationType} offer of {body.offerAmount}.",
        reference_type="offer",
        reference_id=str(offer.get("id")),
    )
    log.info("offer_created", offer_id=offer.get("id"), match_id=matchId, business_id=user.id)
    return {"offer": offers_repo.normalize_offer_for_api(offer)}
