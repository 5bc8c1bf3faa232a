from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import ORJSONResponse
from pydantic import BaseModel, Field
from starlette.concurrency import run_in_threadpool

from ..auth.dependencies import require_user
from ..auth.models import AuthenticatedUser
from ..modules.billing.plans import list_plans
from ..observability.logging import get_logger
from ..repositories import subscription_history_repo
from ..services import billing
from ..services.stripe_webhooks import handle_event, parse_event

router = APIRouter(tags=["subscription"])
log = get_logger("subscription")


class CheckoutRequest(BaseModel):
    priceId: str | None = None
    successUrl: str | None = None
    cancelUrl: str | None = None


class ChangePlanRequest(BaseModel):
    priceId: str = Field(..., min_length=1)


class PortalRequest(BaseModel):
    returnUrl: str | None = None


@router.get("/plans")
def get_plans():
    return {"plans": list_plans()}


@router.get("/status")
def get_status(user: AuthenticatedUser = Depends(require_user)):
    sub = billing.get_status(user=user)
    return {"hasSubscription": sub is not None, "subscription": sub}


@router.get("/history")
def get_history(user: AuthenticatedUser = Depends(require_user)):
    events = subscription_history_repo.list_events(user_id=user.id)
    return {"data": events, "total": len(events)}


@router.post("/checkout")
def create_checkout(body: CheckoutRequest, user: AuthenticatedUser = Depends(require_user)):
    return billing.create_checkout(
        user=user,
        price_id=body.priceId,
        success_url=body.successUrl,
        cancel_url=body.cancelUrl,
    )


@router.post("/cancel")
def cancel_subscription(user: AuthenticatedUser = Depends(require_user)):
    return {"success": True, "subscription": billing.cancel(user=user)}


@router.post("/reactivate")
def reactivate_subscription(user: AuthenticatedUser = Depends(require_user)):
    return {"success": True, "subscription": billing.reactivate(user=user)}


@router.post("/change-plan")
def change_plan(body: ChangePlanRequest, user: AuthenticatedUser = Depends(require_user)):
    return {"success": True, "subscription": billing.change_plan(user=user, price_id=body.priceId)}


@router.post("/portal")
def create_portal(body: PortalRequest | None = None, user: AuthenticatedUser = Depends(require_user)):
    return billing.create_portal(user=user, return_url=body.returnUrl if body else None)


@router.post("/webhook")
async def stripe_webhook(request: Request):
    payload = await request.body()
    event = await run_in_threadpool(
        parse_event, payload=payload, signature=request.headers.get("stripe-signature")
    )
    try:
        return await run_in_threadpool(handle_event, event)
    except Exception as e:
        # Non-2xx makes Stripe redeliver; the claim was released by handle_event.
        log.exception("stripe_webhook_failed", error_type=type(e).__name__)
        return ORJSONResponse(status_code=500, content={"received": False, "error": "Webhook handler failed"})
