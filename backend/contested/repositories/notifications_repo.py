from __future__ import annotations

from typing import Any

from boto3.dynamodb.conditions import Key

from ..db.dynamodb.errors import DdbConflict
from ..db.dynamodb.table import get_main_table
from ..errors import NotFound
from .common import now_iso, sortable_id, strip_internal


def notification_key(*, user_id: str, notification_id: str) -> dict[str, str]:
    uid = str(user_id or "").strip()
    nid = str(notification_id or "").strip()
    if not uid or not nid:
        raise ValueError("user_id and notification_id are required")
    return {"pk": f"USER#{uid}", "sk": f"NOTIFICATION#{nid}"}


def create_notification(
    *,
    user_id: str,
    type: str,
    title: str,
    content: str,
    reference_type: str | None = None,
    reference_id: str | None = None,
) -> dict[str, Any]:
    nid = sortable_id("ntf")
    item: dict[str, Any] = {
        **notification_key(user_id=user_id, notification_id=nid),
        "entityType": "Notification",
        "id": nid,
        "userId": user_id,
        "type": type,
        "title": title,
        "content": content,
        "referenceType": reference_type,
        "referenceId": reference_id,
        "isRead": False,
        "createdAt": now_iso(),
    }
    item = {k: v for k, v in item.items() if v is not None}
    get_main_table().put_item(item=item)
    return item


def list_notifications(
    *,
    user_id: str,
    unread_only: bool = False,
    limit: int = 50,
    next_token: str | None = None,
) -> tuple[list[dict[str, Any]], str | None]:
    pg = get_main_table().query_page(
        key_condition_expression=Key("pk").eq(f"USER#{user_id}")
        & Key("sk").begins_with("NOTIFICATION#"),
        scan_index_forward=False,
        limit=limit,
        next_token=next_token,
    )
    items = [strip_internal(it) or {} for it in pg.items]
    if unread_only:
        items = [it for it in items if not it.get("isRead")]
    return items, pg.next_token


def mark_read(*, user_id: str, notification_id: str) -> dict[str, Any]:
    try:
        out = get_main_table().update_fields(
            key=notification_key(user_id=user_id, notification_id=notification_id),
            fields={"isRead": True, "readAt": now_iso()},
            condition_expression="attribute_exists(pk)",
        )
    except DdbConflict as e:
        raise NotFound("Notification not found", code="notification_not_found") from e
    return strip_internal(out) or {}
