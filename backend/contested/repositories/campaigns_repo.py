from __future__ import annotations

from typing import Any

from boto3.dynamodb.conditions import Key

from ..db.dynamodb.errors import DdbConflict
from ..db.dynamodb.table import get_main_table
from ..errors import Conflict, NotFound
from .common import new_id, now_iso, strip_internal

STATUS_DRAFT = "draft"
STATUS_ACTIVE = "active"
STATUS_COMPLETED = "completed"
STATUS_CANCELED = "canceled"

CAMPAIGN_FIELDS = (
    "title",
    "description",
    "objective",
    "channels",
    "startDate",
    "endDate",
    "targetAudience",
    "targetSports",
    "budget",
    "deliverables",
    "hashtagRequirements",
)

DEFAULT_TARGET_AUDIENCE: dict[str, Any] = {
    "ageRange": [18, 34],
    "gender": "all",
    "interests": [],
    "location": "",
}


def campaign_key(*, campaign_id: str) -> dict[str, str]:
    cid = str(campaign_id or "").strip()
    if not cid:
        raise ValueError("campaign_id is required")
    return {"pk": f"CAMPAIGN#{cid}", "sk": "META"}


def _business_index(business_id: str, created_at: str, campaign_id: str) -> dict[str, str]:
    return {
        "gsi1pk": f"BUSINESS#{business_id}#CAMPAIGNS",
        "gsi1sk": f"{created_at}#{campaign_id}",
    }


def normalize_campaign_for_api(item: dict[str, Any] | None) -> dict[str, Any] | None:
    out = strip_internal(item)
    if out is None:
        return None
    out["_id"] = out.get("id")
    return out


def create_campaign(*, business_id: str, data: dict[str, Any]) -> dict[str, Any]:
    cid = new_id("cmp")
    now = now_iso()
    audience = {**DEFAULT_TARGET_AUDIENCE, **(data.get("targetAudience") or {})}
    item: dict[str, Any] = {
        **{k: data[k] for k in CAMPAIGN_FIELDS if data.get(k) is not None},
        **campaign_key(campaign_id=cid),
        "entityType": "Campaign",
        "id": cid,
        "businessId": business_id,
        "targetAudience": audience,
        "status": STATUS_DRAFT,
        "createdAt": now,
        "updatedAt": now,
        **_business_index(business_id, now, cid),
    }
    get_main_table().put_item(item=item, condition_expression="attribute_not_exists(pk)")
    return item


def get_campaign(*, campaign_id: str) -> dict[str, Any] | None:
    return get_main_table().get_item(key=campaign_key(campaign_id=campaign_id))


def get_campaign_required(*, campaign_id: str) -> dict[str, Any]:
    it = get_campaign(campaign_id=campaign_id)
    if not it:
        raise NotFound("Campaign not found", code="campaign_not_found")
    return it


def list_campaigns_for_business(
    *,
    business_id: str,
    status: str | None = None,
    limit: int = 200,
) -> list[dict[str, Any]]:
    items = get_main_table().query_all(
        index_name="GSI1",
        key_condition_expression=Key("gsi1pk").eq(f"BUSINESS#{business_id}#CAMPAIGNS"),
        scan_index_forward=False,
        max_items=max(1, min(1000, int(limit or 200))),
    )
    if status:
        items = [it for it in items if it.get("status") == status]
    return items


def update_campaign(
    *,
    campaign_id: str,
    updates: dict[str, Any],
    require_status: str | None = None,
) -> dict[str, Any]:
    fields = {k: updates[k] for k in CAMPAIGN_FIELDS if k in updates}
    fields["updatedAt"] = now_iso()
    cond = "attribute_exists(pk)"
    values: dict[str, Any] | None = None
    names: dict[str, str] | None = None
    if require_status:
        cond += " AND #st = :required_status"
        names = {"#st": "status"}
        values = {":required_status": require_status}
    try:
        out = get_main_table().update_fields(
            key=campaign_key(campaign_id=campaign_id),
            fields=fields,
            condition_expression=cond,
            expression_attribute_names=names,
            expression_attribute_values=values,
        )
    except DdbConflict as e:
        if not get_campaign(campaign_id=campaign_id):
            raise NotFound("Campaign not found", code="campaign_not_found") from e
        raise Conflict(
            f"Campaign can only be edited while {require_status}",
            code="campaign_state",
        ) from e
    return out or {}


def delete_draft_campaign(*, campaign_id: str) -> None:
    try:
        get_main_table().delete_item(
            key=campaign_key(campaign_id=campaign_id),
            condition_expression="attribute_exists(pk) AND #st = :draft",
            expression_attribute_names={"#st": "status"},
            expression_attribute_values={":draft": STATUS_DRAFT},
        )
    except DdbConflict as e:
        if not get_campaign(campaign_id=campaign_id):
            raise NotFound("Campaign not found", code="campaign_not_found") from e
        raise Conflict("Only draft campaigns can be deleted", code="campaign_state") from e


def mark_launched(*, campaign_id: str) -> dict[str, Any]:
    now = now_iso()
    try:
        out = get_main_table().update_fields(
            key=campaign_key(campaign_id=campaign_id),
            fields={
                "status": STATUS_ACTIVE,
                "launchedAt": now,
                "termsAcceptedAt": now,
                "updatedAt": now,
            },
            condition_expression="attribute_exists(pk) AND #st = :draft",
            expression_attribute_names={"#st": "status"},
            expression_attribute_values={":draft": STATUS_DRAFT},
        )
    except DdbConflict as e:
        raise Conflict("Campaign is already launched", code="campaign_already_launched") from e
    return out or {}


def _transition(*, campaign_id: str, from_status: str, fields: dict[str, Any]) -> dict[str, Any] | None:
    try:
        out = get_main_table().update_fields(
            key=campaign_key(campaign_id=campaign_id),
            fields={**fields, "updatedAt": now_iso()},
            condition_expression="attribute_exists(pk) AND #st = :from",
            expression_attribute_names={"#st": "status"},
            expression_attribute_values={":from": from_status},
        )
        return out or {}
    except DdbConflict:
        return None


def mark_completed(*, campaign_id: str) -> dict[str, Any]:
    out = _transition(
        campaign_id=campaign_id,
        from_status=STATUS_ACTIVE,
        fields={"status": STATUS_COMPLETED, "completedAt": now_iso()},
    )
    if out is None:
        raise Conflict("Only active campaigns can be completed", code="campaign_not_active")
    return out


def mark_canceled(*, campaign_id: str) -> dict[str, Any]:
    out = _transition(
        campaign_id=campaign_id,
        from_status=STATUS_DRAFT,
        fields={"status": STATUS_CANCELED, "canceledAt": now_iso()},
    )
    if out is None:
        raise Conflict("Only draft campaigns can be canceled", code="campaign_not_draft")
    return out


def set_match_candidates(*, campaign_id: str, athlete_ids: list[str]) -> None:
    now = now_iso()
    get_main_table().update_fields(
        key=campaign_key(campaign_id=campaign_id),
        fields={"matchCandidates": list(athlete_ids), "matchedAt": now, "updatedAt": now},
        condition_expression="attribute_exists(pk)",
    )
