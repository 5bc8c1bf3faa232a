from __future__ import annotations

import time
from typing import Any, Callable

import orjson
import stripe

from ..errors import BadRequest, ServiceNotConfigured
from ..infrastructure import stripe_gateway
from ..infrastructure.stripe_gateway import field
from ..modules.billing.plans import plan_for_price
from ..observability.logging import get_logger
from ..repositories import subscription_history_repo, users_repo
from ..settings import settings
from .billing import iso_from_epoch

log = get_logger("stripe_webhooks")

# Stripe retries for up to three days; keep claims a little longer.
EVENT_CLAIM_TTL_SECONDS = 7 * 24 * 3600


def parse_event(*, payload: bytes, signature: str | None) -> dict[str, Any] | Any:
    """
    Verify and parse a webhook body.

    Without a webhook secret, unsigned events are accepted outside production
    only. Raises BadRequest for an unreadable body or a bad signature.
    """
    if not str(settings.stripe_webhook_secret or "").strip():
        if settings.is_production:
            raise ServiceNotConfigured("Stripe webhook secret is not configured", code="stripe_not_configured")
        log.warning("stripe_webhook_unverified")
        try:
            event = orjson.loads(payload or b"")
        except orjson.JSONDecodeError as e:
            raise BadRequest("Invalid webhook payload", code="invalid_payload") from e
        if not isinstance(event, dict):
            raise BadRequest("Invalid webhook payload", code="invalid_payload")
        return event

    try:
        return stripe_gateway.construct_event(payload=payload, signature=signature)
    except ValueError as e:
        raise BadRequest("Invalid webhook payload", code="invalid_payload") from e
    except stripe.SignatureVerificationError as e:
        raise BadRequest("Invalid webhook signature", code="invalid_signature") from e


def _user_for_subscription(subscription_id: str | None, customer_id: str | None = None) -> str | None:
    return users_repo.find_user_id_by_stripe_subscription(
        subscription_id=subscription_id
    ) or users_repo.find_user_id_by_stripe_customer(customer_id=customer_id)


def _checkout_completed(obj: Any) -> str:
    if field(obj, "mode") != "subscription":
        return "ignored"

    metadata = field(obj, "metadata") or {}
    customer_id = field(obj, "customer")
    user_id = (
        field(obj, "client_reference_id")
        or field(metadata, "user_id")
        or users_repo.find_user_id_by_stripe_customer(customer_id=customer_id)
    )
    subscription_id = field(obj, "subscription")
    if not user_id or not subscription_id:
        log.warning("stripe_checkout_unmatched", customer_id=customer_id)
        return "unmatched"

    sub = stripe_gateway.retrieve_subscription(str(subscription_id))
    price_id = stripe_gateway.subscription_price_id(sub)
    plan_id = plan_for_price(price_id)
    period_end = iso_from_epoch(stripe_gateway.current_period_end(sub))
    users_repo.update_subscription_fields(
        user_id=str(user_id),
        fields={
            "stripeCustomerId": customer_id,
            "stripeSubscriptionId": str(subscription_id),
            "subscriptionStatus": field(sub, "status"),
            "subscriptionPlan": plan_id,
            "subscriptionPriceId": price_id,
            "currentPeriodEnd": period_end,
            "cancelAtPeriodEnd": bool(field(sub, "cancel_at_period_end", False)),
        },
    )
    item = stripe_gateway.first_subscription_item(sub)
    subscription_history_repo.record_event(
        user_id=str(user_id),
        event_type="created",
        subscription_id=str(subscription_id),
        plan=plan_id,
        status=field(sub, "status"),
        details={
            "priceId": price_id,
            "amount": field(field(item, "price"), "unit_amount", 0),
            "currency": field(sub, "currency"),
            "currentPeriodEnd": period_end,
        },
    )
    return "processed"


def _subscription_updated(obj: Any) -> str:
    sid = field(obj, "id")
    user_id = _user_for_subscription(sid, field(obj, "customer"))
    if not user_id:
        log.warning("stripe_subscription_unmatched", subscription_id=sid)
        return "unmatched"

    account = users_repo.get_user(user_id=user_id) or {}
    previous = account.get("subscriptionPlan")
    price_id = stripe_gateway.subscription_price_id(obj)
    plan_id = plan_for_price(price_id)
    period_end = iso_from_epoch(stripe_gateway.current_period_end(obj))
    users_repo.update_subscription_fields(
        user_id=user_id,
        fields={
            "stripeSubscriptionId": sid,
            "subscriptionStatus": field(obj, "status"),
            "subscriptionPlan": plan_id,
            "subscriptionPriceId": price_id,
            "currentPeriodEnd": period_end,
            "cancelAtPeriodEnd": bool(field(obj, "cancel_at_period_end", False)),
        },
    )
    subscription_history_repo.record_event(
        user_id=user_id,
        event_type="plan_changed" if plan_id != previous else "updated",
        subscription_id=sid,
        plan=plan_id,
        status=field(obj, "status"),
        details={
            "priceId": price_id,
            "previousPlan": previous,
            "cancelAtPeriodEnd": bool(field(obj, "cancel_at_period_end", False)),
            "currentPeriodEnd": period_end,
        },
    )
    return "processed"


def _subscription_deleted(obj: Any) -> str:
    sid = field(obj, "id")
    user_id = _user_for_subscription(sid, field(obj, "customer"))
    if not user_id:
        log.warning("stripe_subscription_unmatched", subscription_id=sid)
        return "unmatched"

    period_end = iso_from_epoch(stripe_gateway.current_period_end(obj))
    users_repo.update_subscription_fields(
        user_id=user_id,
        fields={
            "subscriptionStatus": "canceled",
            "cancelAtPeriodEnd": False,
            "currentPeriodEnd": period_end,
        },
    )
    subscription_history_repo.record_event(
        user_id=user_id,
        event_type="canceled",
        subscription_id=sid,
        status="canceled",
        details={"canceledAt": iso_from_epoch(field(obj, "canceled_at")), "currentPeriodEnd": period_end},
    )
    return "processed"


def _invoice_event(obj: Any, *, succeeded: bool) -> str:
    sid = field(obj, "subscription")
    if not sid:
        return "ignored"
    user_id = _user_for_subscription(sid, field(obj, "customer"))
    if not user_id:
        log.warning("stripe_invoice_unmatched", subscription_id=sid, invoice_id=field(obj, "id"))
        return "unmatched"

    sub = stripe_gateway.retrieve_subscription(str(sid))
    fields: dict[str, Any] = {"subscriptionStatus": field(sub, "status")}
    if succeeded:
        fields["currentPeriodEnd"] = iso_from_epoch(stripe_gateway.current_period_end(sub))
        details = {
            "invoiceId": field(obj, "id"),
            "amountPaid": field(obj, "amount_paid"),
            "currency": field(obj, "currency"),
            "currentPeriodEnd": fields["currentPeriodEnd"],
        }
    else:
        details = {
            "invoiceId": field(obj, "id"),
            "attemptCount": field(obj, "attempt_count"),
            "nextPaymentAttempt": iso_from_epoch(field(obj, "next_payment_attempt")),
        }
    users_repo.update_subscription_fields(user_id=user_id, fields=fields)
    subscription_history_repo.record_event(
        user_id=user_id,
        event_type="payment_succeeded" if succeeded else "payment_failed",
        subscription_id=str(sid),
        status=field(sub, "status"),
        details=details,
    )
    return "processed"


HANDLERS: dict[str, Callable[[Any], str]] = {
    "checkout.session.completed": _checkout_completed,
    "customer.subscription.updated": _subscription_updated,
    "customer.subscription.deleted": _subscription_deleted,
    "invoice.payment_succeeded": lambda obj: _invoice_event(obj, succeeded=True),
    "invoice.payment_failed": lambda obj: _invoice_event(obj, succeeded=False),
}


def handle_event(event: Any) -> dict[str, Any]:
    """
    Apply one verified event. Redelivered event ids are acknowledged without
    re-applying; a handler exception releases the claim and propagates.
    """
    event_id = str(field(event, "id") or "")
    event_type = str(field(event, "type") or "")
    handler = HANDLERS.get(event_type)
    if handler is None:
        log.info("stripe_webhook_ignored", event_id=event_id, event_type=event_type)
        return {"received": True, "status": "ignored"}

    if event_id and not subscription_history_repo.claim_webhook_event(
        event_id=event_id,
        event_type=event_type,
        ttl_epoch=int(time.time()) + EVENT_CLAIM_TTL_SECONDS,
    ):
        log.info("stripe_webhook_duplicate", event_id=event_id, event_type=event_type)
        return {"received": True, "status": "duplicate"}

    obj = field(field(event, "data"), "object")
    try:
        outcome = handler(obj)
    except Exception:
        if event_id:
            subscription_history_repo.release_webhook_event(event_id=event_id)
        raise
    log.info("stripe_webhook_handled", event_id=event_id, event_type=event_type, outcome=outcome)
    return {"received": True, "status": outcome}
