from __future__ import annotations

from typing import Any

from ..db.dynamodb.table import get_main_table
from .common import now_iso, strip_internal


def wizard_draft_key(*, user_id: str) -> dict[str, str]:
    uid = str(user_id or "").strip()
    if not uid:
        raise ValueError("user_id is required")
    return {"pk": f"USER#{uid}", "sk": "WIZARD_DRAFT"}


def get_wizard_draft(*, user_id: str) -> dict[str, Any] | None:
    return strip_internal(get_main_table().get_item(key=wizard_draft_key(user_id=user_id)))


def put_wizard_draft(*, user_id: str, draft: dict[str, Any]) -> dict[str, Any]:
    item: dict[str, Any] = {
        **draft,
        **wizard_draft_key(user_id=user_id),
        "entityType": "WizardDraft",
        "userId": user_id,
        "updatedAt": now_iso(),
    }
    get_main_table().put_item(item=item)
    return strip_internal(item) or {}


def delete_wizard_draft(*, user_id: str) -> None:
    get_main_table().delete_item(key=wizard_draft_key(user_id=user_id))
