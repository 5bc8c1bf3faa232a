from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from ..auth.models import AuthenticatedUser
from ..errors import BadRequest, NotFound, ServiceNotConfigured, UpstreamError
from ..infrastructure import stripe_gateway
from ..infrastructure.stripe_gateway import field
from ..modules.billing.plans import PLANS, default_price_id, is_known_price, plan_for_price
from ..observability.logging import get_logger
from ..repositories import subscription_history_repo, users_repo
from ..settings import settings

log = get_logger("billing")


def iso_from_epoch(value: Any) -> str | None:
    if value is None:
        return None
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc).isoformat().replace("+00:00", "Z")
    except (TypeError, ValueError, OverflowError):
        return None


def _account_or_404(user: AuthenticatedUser) -> dict[str, Any]:
    if user.source == "supabase":
        # Supabase users get a password-less account to carry billing state.
        return users_repo.ensure_user(user_id=user.id, email=user.email, role=user.role)
    account = users_repo.get_user(user_id=user.id)
    if not account:
        raise NotFound("User not found", code="user_not_found")
    return account


def _subscription_id_or_404(account: dict[str, Any]) -> str:
    sid = str(account.get("stripeSubscriptionId") or "").strip()
    if not sid:
        raise NotFound("No active subscription", code="subscription_not_found")
    return sid


def format_subscription(subscription: Any) -> dict[str, Any]:
    price_id = stripe_gateway.subscription_price_id(subscription)
    plan_id = plan_for_price(price_id)
    plan = PLANS.get(plan_id)
    item = stripe_gateway.first_subscription_item(subscription)
    amount = field(field(item, "price"), "unit_amount")
    return {
        "id": field(subscription, "id"),
        "status": field(subscription, "status"),
        "planType": plan_id,
        "planName": plan.name if plan else "Custom Plan",
        "startDate": iso_from_epoch(field(subscription, "start_date")),
        "currentPeriodEnd": iso_from_epoch(stripe_gateway.current_period_end(subscription)),
        "cancelAtPeriodEnd": bool(field(subscription, "cancel_at_period_end", False)),
        "priceId": price_id,
        "amount": int(amount) if amount is not None else (plan.price if plan else 0),
    }


def _stored_subscription(account: dict[str, Any]) -> dict[str, Any]:
    plan_id = str(account.get("subscriptionPlan") or "")
    plan = PLANS.get(plan_id)
    return {
        "id": account.get("stripeSubscriptionId"),
        "status": account.get("subscriptionStatus"),
        "planType": plan_id or None,
        "planName": plan.name if plan else ("Custom Plan" if plan_id else None),
        "startDate": None,
        "currentPeriodEnd": account.get("currentPeriodEnd"),
        "cancelAtPeriodEnd": bool(account.get("cancelAtPeriodEnd") or False),
        "priceId": account.get("subscriptionPriceId"),
        "amount": plan.price if plan else None,
        "stale": True,
    }


def get_status(*, user: AuthenticatedUser) -> dict[str, Any] | None:
    """
    Current subscription for the user, read live from Stripe. If Stripe is
    unreachable the last state mirrored by webhooks is returned (`stale`).
    """
    account = _account_or_404(user)
    sid = str(account.get("stripeSubscriptionId") or "").strip()
    if not sid:
        return None
    try:
        sub = stripe_gateway.retrieve_subscription(sid)
    except (UpstreamError, ServiceNotConfigured) as e:
        log.warning("subscription_status_fallback", user_id=user.id, subscription_id=sid, reason=e.code)
        return _stored_subscription(account)
    return format_subscription(sub)


def _ensure_customer(user: AuthenticatedUser, account: dict[str, Any]) -> str:
    existing = str(account.get("stripeCustomerId") or "").strip()
    if existing:
        return existing
    name = " ".join(
        x for x in (account.get("firstName"), account.get("lastName")) if x
    ) or None
    customer = stripe_gateway.create_customer(
        email=account.get("email") or user.email,
        name=name,
        user_id=user.id,
    )
    customer_id = str(field(customer, "id") or "")
    users_repo.update_subscription_fields(user_id=user.id, fields={"stripeCustomerId": customer_id})
    log.info("stripe_customer_created", user_id=user.id, customer_id=customer_id)
    return customer_id


def create_checkout(
    *,
    user: AuthenticatedUser,
    price_id: str | None = None,
    success_url: str | None = None,
    cancel_url: str | None = None,
) -> dict[str, Any]:
    pid = str(price_id or "").strip() or default_price_id()
    if not is_known_price(pid):
        raise BadRequest("Invalid price ID", code="invalid_price")

    account = _account_or_404(user)
    customer_id = _ensure_customer(user, account)

    base = str(settings.frontend_base_url).rstrip("/")
    session = stripe_gateway.create_checkout_session(
        customer_id=customer_id,
        price_id=pid,
        user_id=user.id,
        success_url=success_url or f"{base}/subscription/success?session_id={{CHECKOUT_SESSION_ID}}",
        cancel_url=cancel_url or f"{base}/subscription/canceled",
    )
    log.info("checkout_session_created", user_id=user.id, price_id=pid)
    return {"sessionId": field(session, "id"), "url": field(session, "url")}


def cancel(*, user: AuthenticatedUser) -> dict[str, Any]:
    account = _account_or_404(user)
    sid = _subscription_id_or_404(account)
    sub = stripe_gateway.modify_subscription(sid, cancel_at_period_end=True)
    users_repo.update_subscription_fields(
        user_id=user.id,
        fields={"cancelAtPeriodEnd": True, "subscriptionStatus": field(sub, "status")},
    )
    subscription_history_repo.record_event(
        user_id=user.id,
        event_type="canceled_scheduled",
        subscription_id=sid,
        plan=account.get("subscriptionPlan"),
        status=field(sub, "status"),
        details={"currentPeriodEnd": iso_from_epoch(stripe_gateway.current_period_end(sub))},
    )
    return format_subscription(sub)


def reactivate(*, user: AuthenticatedUser) -> dict[str, Any]:
    account = _account_or_404(user)
    sid = _subscription_id_or_404(account)
    sub = stripe_gateway.modify_subscription(sid, cancel_at_period_end=False)
    users_repo.update_subscription_fields(
        user_id=user.id,
        fields={"cancelAtPeriodEnd": False, "subscriptionStatus": field(sub, "status")},
    )
    subscription_history_repo.record_event(
        user_id=user.id,
        event_type="reactivated",
        subscription_id=sid,
        plan=account.get("subscriptionPlan"),
        status=field(sub, "status"),
    )
    return format_subscription(sub)


def change_plan(*, user: AuthenticatedUser, price_id: str) -> dict[str, Any]:
    pid = str(price_id or "").strip()
    if not is_known_price(pid):
        raise BadRequest("Invalid price ID", code="invalid_price")

    account = _account_or_404(user)
    sid = _subscription_id_or_404(account)
    current = stripe_gateway.retrieve_subscription(sid)
    item = stripe_gateway.first_subscription_item(current)
    item_id = field(item, "id")
    if not item_id:
        raise UpstreamError("Subscription has no items", code="subscription_items_missing")

    sub = stripe_gateway.modify_subscription(
        sid,
        items=[{"id": item_id, "price": pid}],
        proration_behavior="create_prorations",
    )
    new_plan = plan_for_price(pid)
    previous = account.get("subscriptionPlan")
    users_repo.update_subscription_fields(
        user_id=user.id,
        fields={
            "subscriptionPlan": new_plan,
            "subscriptionPriceId": pid,
            "subscriptionStatus": field(sub, "status"),
        },
    )
    subscription_history_repo.record_event(
        user_id=user.id,
        event_type="plan_changed",
        subscription_id=sid,
        plan=new_plan,
        status=field(sub, "status"),
        details={"previousPlan": previous, "priceId": pid},
    )
    log.info("subscription_plan_changed", user_id=user.id, previous=previous, plan=new_plan)
    return format_subscription(sub)


def create_portal(*, user: AuthenticatedUser, return_url: str | None = None) -> dict[str, Any]:
    account = _account_or_404(user)
    customer_id = str(account.get("stripeCustomerId") or "").strip()
    if not customer_id:
        raise NotFound("No billing account found", code="customer_not_found")
    base = str(settings.frontend_base_url).rstrip("/")
    session = stripe_gateway.create_portal_session(
        customer_id=customer_id,
        return_url=return_url or f"{base}/subscription",
    )
    return {"url": field(session, "url")}
