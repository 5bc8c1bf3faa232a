from __future__ import annotations

import hashlib
from typing import Any

from boto3.dynamodb.conditions import Key

from ..db.dynamodb.errors import DdbConflict
from ..db.dynamodb.table import get_main_table
from ..errors import Conflict, NotFound
from .common import now_iso, strip_internal

MATCH_PENDING = "pending"
MATCH_ACCEPTED = "accepted"
MATCH_DECLINED = "declined"
MATCH_STATUSES = (MATCH_PENDING, MATCH_ACCEPTED, MATCH_DECLINED)

COMPLIANCE_PENDING = "pending"
COMPLIANCE_APPROVED = "approved"
COMPLIANCE_REJECTED = "rejected"
COMPLIANCE_STATUSES = (COMPLIANCE_PENDING, COMPLIANCE_APPROVED, COMPLIANCE_REJECTED)


def match_id_for(*, campaign_id: str, athlete_id: str) -> str:
    """One match per (campaign, athlete); the id is derived so re-scoring upserts."""
    digest = hashlib.sha256(f"{campaign_id}:{athlete_id}".encode("utf-8")).hexdigest()
    return f"mt_{digest[:24]}"


def match_key(*, match_id: str) -> dict[str, str]:
    mid = str(match_id or "").strip()
    if not mid:
        raise ValueError("match_id is required")
    return {"pk": f"MATCH#{mid}", "sk": "META"}


def normalize_match_for_api(item: dict[str, Any] | None) -> dict[str, Any] | None:
    return strip_internal(item)


def save_match_score(
    *,
    campaign_id: str,
    athlete_id: str,
    business_id: str,
    score: float,
    reason: str | None = None,
) -> dict[str, Any]:
    mid = match_id_for(campaign_id=campaign_id, athlete_id=athlete_id)
    now = now_iso()
    t = get_main_table()
    item: dict[str, Any] = {
        **match_key(match_id=mid),
        "entityType": "Match",
        "id": mid,
        "campaignId": campaign_id,
        "athleteId": athlete_id,
        "businessId": business_id,
        "score": float(score),
        "status": MATCH_PENDING,
        "complianceStatus": COMPLIANCE_PENDING,
        "createdAt": now,
        "updatedAt": now,
        "gsi1pk": f"ATHLETE#{athlete_id}#MATCHES",
        "gsi1sk": f"{now}#{mid}",
        "gsi2pk": f"BUSINESS#{business_id}#MATCHES",
        "gsi2sk": f"CAMPAIGN#{campaign_id}#{athlete_id}",
        "gsi3pk": "MATCHES",
        "gsi3sk": f"{now}#{mid}",
    }
    if reason:
        item["reason"] = reason
    try:
        t.put_item(item=item, condition_expression="attribute_not_exists(pk)")
        return item
    except DdbConflict:
        pass
    fields: dict[str, Any] = {"score": float(score), "updatedAt": now}
    if reason:
        fields["reason"] = reason
    return t.update_fields(key=match_key(match_id=mid), fields=fields) or item


def get_match(*, match_id: str) -> dict[str, Any] | None:
    return get_main_table().get_item(key=match_key(match_id=match_id))


def get_match_required(*, match_id: str) -> dict[str, Any]:
    it = get_match(match_id=match_id)
    if not it:
        raise NotFound("Match not found", code="match_not_found")
    return it


def list_matches_for_athlete(*, athlete_id: str, limit: int = 200) -> list[dict[str, Any]]:
    return get_main_table().query_all(
        index_name="GSI1",
        key_condition_expression=Key("gsi1pk").eq(f"ATHLETE#{athlete_id}#MATCHES"),
        scan_index_forward=False,
        max_items=limit,
    )


def list_matches_for_business(
    *,
    business_id: str,
    campaign_id: str | None = None,
    limit: int = 200,
) -> list[dict[str, Any]]:
    cond = Key("gsi2pk").eq(f"BUSINESS#{business_id}#MATCHES")
    if campaign_id:
        cond = cond & Key("gsi2sk").begins_with(f"CAMPAIGN#{campaign_id}#")
    return get_main_table().query_all(
        index_name="GSI2",
        key_condition_expression=cond,
        scan_index_forward=True,
        max_items=limit,
    )


def list_all_matches(*, limit: int = 500) -> list[dict[str, Any]]:
    return get_main_table().query_all(
        index_name="GSI3",
        key_condition_expression=Key("gsi3pk").eq("MATCHES"),
        scan_index_forward=False,
        max_items=limit,
    )


def respond_to_match(*, match_id: str, athlete_id: str, response: str) -> dict[str, Any]:
    """Athlete accepts/declines; only valid from `pending`."""
    now = now_iso()
    try:
        out = get_main_table().update_fields(
            key=match_key(match_id=match_id),
            fields={"status": response, "respondedAt": now, "updatedAt": now},
            condition_expression="attribute_exists(pk) AND #st = :pending AND athleteId = :aid",
            expression_attribute_names={"#st": "status"},
            expression_attribute_values={":pending": MATCH_PENDING, ":aid": athlete_id},
        )
    except DdbConflict as e:
        raise Conflict("Match has already been responded to", code="match_state") from e
    return out or {}


def set_compliance_status(
    *,
    match_id: str,
    status: str,
    reviewer_id: str,
    notes: str | None = None,
) -> dict[str, Any]:
    now = now_iso()
    fields: dict[str, Any] = {
        "complianceStatus": status,
        "complianceReviewerId": reviewer_id,
        "complianceNotes": notes,
        "reviewedAt": now,
        "updatedAt": now,
    }
    if status == COMPLIANCE_APPROVED:
        fields["approvedAt"] = now
    try:
        out = get_main_table().update_fields(
            key=match_key(match_id=match_id),
            fields=fields,
            condition_expression="attribute_exists(pk)",
        )
    except DdbConflict as e:
        raise NotFound("Match not found", code="match_not_found") from e
    return out or {}
