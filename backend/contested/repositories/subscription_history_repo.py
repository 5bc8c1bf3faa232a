from __future__ import annotations

from typing import Any

from boto3.dynamodb.conditions import Key

from ..db.dynamodb.errors import DdbConflict
from ..db.dynamodb.table import get_main_table
from .common import now_iso, sortable_id, strip_internal


def stripe_event_key(*, event_id: str) -> dict[str, str]:
    return {"pk": f"STRIPE_EVENT#{event_id}", "sk": "v1"}


def record_event(
    *,
    user_id: str,
    event_type: str,
    subscription_id: str | None = None,
    plan: str | None = None,
    status: str | None = None,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    eid = sortable_id("sev")
    item: dict[str, Any] = {
        "pk": f"USER#{user_id}",
        "sk": f"SUBSCRIPTION_EVENT#{eid}",
        "entityType": "SubscriptionEvent",
        "id": eid,
        "userId": user_id,
        "eventType": event_type,
        "subscriptionId": subscription_id,
        "plan": plan,
        "status": status,
        "details": details or {},
        "createdAt": now_iso(),
    }
    item = {k: v for k, v in item.items() if v is not None}
    get_main_table().put_item(item=item)
    return item


def list_events(*, user_id: str, limit: int = 50) -> list[dict[str, Any]]:
    pg = get_main_table().query_page(
        key_condition_expression=Key("pk").eq(f"USER#{user_id}")
        & Key("sk").begins_with("SUBSCRIPTION_EVENT#"),
        scan_index_forward=False,
        limit=limit,
    )
    return [strip_internal(it) or {} for it in pg.items]


def claim_webhook_event(*, event_id: str, event_type: str, ttl_epoch: int) -> bool:
    """
    Mark a Stripe event id as processed. False when it was already claimed,
    so redelivered webhooks are acknowledged without re-applying.
    """
    try:
        get_main_table().put_item(
            item={
                **stripe_event_key(event_id=event_id),
                "entityType": "StripeWebhookEvent",
                "eventType": event_type,
                "receivedAt": now_iso(),
                "expiresAt": int(ttl_epoch),
            },
            condition_expression="attribute_not_exists(pk)",
        )
    except DdbConflict:
        return False
    return True


def release_webhook_event(*, event_id: str) -> None:
    """Undo a claim after a failed handler so Stripe's retry is processed."""
    get_main_table().delete_item(key=stripe_event_key(event_id=event_id))
