from __future__ import annotations

from typing import Any, Literal

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from ..auth.dependencies import require_roles, require_user
from ..auth.models import AuthenticatedUser
from ..errors import BadRequest, Forbidden
from ..modules.identity.roles import ATHLETE, BUSINESS, is_reviewer
from ..observability.logging import get_logger
from ..repositories import offers_repo
from ..repositories.offers_repo import OFFER_COUNTERED
from ..services.notifications import notify

router = APIRouter(tags=["offers"])
log = get_logger("offers")


class OfferResponseRequest(BaseModel):
    response: Literal["accepted", "declined", "countered"]
    counterTerms: dict[str, Any] | None = None


@router.get("")
@router.get("/")
def list_offers(
    status: str | None = Query(default=None),
    user: AuthenticatedUser = Depends(require_user),
):
    if user.role == ATHLETE:
        items = offers_repo.list_offers_for_athlete(athlete_id=user.id)
    elif user.role == BUSINESS:
        items = offers_repo.list_offers_for_business(business_id=user.id)
    elif is_reviewer(user.role):
        items = offers_repo.list_all_offers()
    else:
        raise Forbidden("This resource is not available to your role", code="role_mismatch")
    if status:
        items = [o for o in items if o.get("status") == status]
    data = [offers_repo.normalize_offer_for_api(o) for o in items]
    return {"data": data, "total": len(data)}


@router.get("/{offerId}")
def get_offer(offerId: str, user: AuthenticatedUser = Depends(require_user)):
    offer = offers_repo.get_offer_required(offer_id=offerId)
    if user.id not in (offer.get("athleteId"), offer.get("businessId")) and not is_reviewer(user.role):
        raise Forbidden("You do not have access to this offer", code="not_offer_party")
    return {"offer": offers_repo.normalize_offer_for_api(offer)}


@router.post("/{offerId}/respond")
def respond_to_offer(
    offerId: str,
    body: OfferResponseRequest,
    user: AuthenticatedUser = Depends(require_roles(ATHLETE)),
):
    offer = offers_repo.get_offer_required(offer_id=offerId)
    if offer.get("athleteId") != user.id:
        raise Forbidden("Only the offered athlete can respond", code="not_offer_party")
    if body.response == OFFER_COUNTERED and not body.counterTerms:
        raise BadRequest("counterTerms is required to counter an offer", code="counter_terms_required")

    updated = offers_repo.respond_to_offer(
        offer_id=offerId,
        athlete_id=user.id,
        response=body.response,
        counter_terms=body.counterTerms if body.response == OFFER_COUNTERED else None,
    )
    notify(
        user_id=offer.get("businessId"),
        type="offer_response",
        title=f"Offer {body.response}",
        content=f"An athlete has {body.response} your partnership offer.",
        reference_type="offer",
        reference_id=offerId,
    )
    log.info("offer_responded", offer_id=offerId, athlete_id=user.id, response=body.response)
    return {"offer": offers_repo.normalize_offer_for_api(updated)}


@router.post("/{offerId}/cancel")
def cancel_offer(offerId: str, user: AuthenticatedUser = Depends(require_roles(BUSINESS))):
    offer = offers_repo.get_offer_required(offer_id=offerId)
    if offer.get("businessId") != user.id:
        raise Forbidden("Only the offering business can cancel", code="not_offer_party")
    updated = offers_repo.cancel_offer(offer=offer, business_id=user.id)
    notify(
        user_id=offer.get("athleteId"),
        type="offer_canceled",
        title="Offer canceled",
        content="A business has withdrawn its partnership offer.",
        reference_type="offer",
        reference_id=offerId,
    )
    log.info("offer_canceled", offer_id=offerId, business_id=user.id)
    return {"offer": offers_repo.normalize_offer_for_api(updated)}
