from __future__ import annotations

from typing import Any

import stripe

from ..errors import ServiceNotConfigured, UpstreamError
from ..observability.logging import get_logger
from ..settings import settings

log = get_logger("stripe")


def field(obj: Any, name: str, default: Any = None) -> Any:
    """Read a field from a StripeObject or a plain dict (webhook payloads)."""
    if obj is None:
        return default
    if isinstance(obj, dict):
        value = obj.get(name)
    else:
        # Item access first: `items` is also a method name on StripeObject.
        try:
            value = obj[name]
        except (KeyError, TypeError):
            value = getattr(obj, name, None)
    return default if value is None else value


def _configure() -> None:
    secret = str(settings.stripe_secret_key or "").strip()
    if not secret:
        raise ServiceNotConfigured("Stripe is not configured", code="stripe_not_configured")
    stripe.api_key = secret


def _call(operation: str, fn, *args: Any, **kwargs: Any) -> Any:
    _configure()
    try:
        return fn(*args, **kwargs)
    except stripe.StripeError as e:
        log.warning(
            "stripe_call_failed",
            operation=operation,
            error_type=type(e).__name__,
            stripe_code=getattr(e, "code", None),
            http_status=getattr(e, "http_status", None),
        )
        raise UpstreamError(
            "Payment provider request failed",
            code="stripe_error",
            extensions={"operation": operation},
        ) from e


def create_customer(*, email: str | None, name: str | None, user_id: str) -> Any:
    return _call(
        "customer.create",
        stripe.Customer.create,
        email=email,
        name=name,
        metadata={"user_id": user_id},
    )


def create_checkout_session(
    *,
    customer_id: str,
    price_id: str,
    user_id: str,
    success_url: str,
    cancel_url: str,
) -> Any:
    return _call(
        "checkout.session.create",
        stripe.checkout.Session.create,
        customer=customer_id,
        mode="subscription",
        payment_method_types=["card"],
        line_items=[{"price": price_id, "quantity": 1}],
        success_url=success_url,
        cancel_url=cancel_url,
        client_reference_id=user_id,
        metadata={"user_id": user_id},
        subscription_data={"metadata": {"user_id": user_id}},
    )


def retrieve_subscription(subscription_id: str) -> Any:
    return _call("subscription.retrieve", stripe.Subscription.retrieve, subscription_id)


def modify_subscription(subscription_id: str, **params: Any) -> Any:
    return _call("subscription.modify", stripe.Subscription.modify, subscription_id, **params)


def create_portal_session(*, customer_id: str, return_url: str) -> Any:
    return _call(
        "billing_portal.session.create",
        stripe.billing_portal.Session.create,
        customer=customer_id,
        return_url=return_url,
    )


def construct_event(*, payload: bytes, signature: str | None) -> Any:
    """
    Verify a webhook signature and parse the event.

    Raises ValueError for a bad payload and stripe.SignatureVerificationError
    for a bad signature.
    """
    secret = str(settings.stripe_webhook_secret or "").strip()
    if not secret:
        raise ServiceNotConfigured("Stripe webhook secret is not configured", code="stripe_not_configured")
    return stripe.Webhook.construct_event(payload, signature or "", secret)


def first_subscription_item(subscription: Any) -> Any:
    items = field(field(subscription, "items"), "data") or []
    return items[0] if items else None


def subscription_price_id(subscription: Any) -> str | None:
    item = first_subscription_item(subscription)
    price = field(item, "price")
    pid = field(price, "id")
    return str(pid) if pid else None


def current_period_end(subscription: Any) -> int | None:
    # Newer API versions moved current_period_end onto the subscription item.
    value = field(subscription, "current_period_end")
    if value is None:
        value = field(first_subscription_item(subscription), "current_period_end")
    return int(value) if value is not None else None
