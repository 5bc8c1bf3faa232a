from __future__ import annotations

from typing import Any

from boto3.dynamodb.conditions import Key

from ..db.dynamodb.errors import DdbConflict
from ..db.dynamodb.table import get_main_table
from ..modules.access.route_policy import is_profile_complete
from ..modules.identity.roles import ATHLETE, BUSINESS
from .common import now_iso, strip_internal

ATHLETE_FIELDS = (
    "name",
    "sport",
    "division",
    "school",
    "socialHandles",
    "followerCount",
    "engagementRate",
    "age",
    "gender",
    "contentStyle",
    "compensationGoals",
    "preferences",
    "bio",
    "profileImage",
)

BUSINESS_FIELDS = (
    "name",
    "businessName",
    "productType",
    "industry",
    "audienceGoals",
    "campaignVibe",
    "values",
    "targetSchoolsSports",
    "budget",
    "website",
    "profileImage",
)


def sport_slug(sport: Any) -> str:
    return "-".join(str(sport or "").strip().lower().split())


def athlete_profile_key(*, user_id: str) -> dict[str, str]:
    uid = str(user_id or "").strip()
    if not uid:
        raise ValueError("user_id is required")
    return {"pk": f"ATHLETE#{uid}", "sk": "PROFILE"}


def business_profile_key(*, user_id: str) -> dict[str, str]:
    uid = str(user_id or "").strip()
    if not uid:
        raise ValueError("user_id is required")
    return {"pk": f"BUSINESS#{uid}", "sk": "PROFILE"}


def _athlete_index(user_id: str, sport: Any) -> dict[str, str]:
    return {
        "gsi1pk": "ATHLETES",
        "gsi1sk": f"SPORT#{sport_slug(sport) or 'unknown'}#{user_id}",
    }


def normalize_profile_for_api(item: dict[str, Any] | None, *, role: str) -> dict[str, Any] | None:
    out = strip_internal(item)
    if out is None:
        return None
    out["profileComplete"] = is_profile_complete(role, out)
    return out


def get_athlete_profile(*, user_id: str) -> dict[str, Any] | None:
    return get_main_table().get_item(key=athlete_profile_key(user_id=user_id))


def get_business_profile(*, user_id: str) -> dict[str, Any] | None:
    return get_main_table().get_item(key=business_profile_key(user_id=user_id))


def get_profile_for_role(*, user_id: str, role: str) -> dict[str, Any] | None:
    if role == ATHLETE:
        return get_athlete_profile(user_id=user_id)
    if role == BUSINESS:
        return get_business_profile(user_id=user_id)
    return None


def upsert_athlete_profile(*, user_id: str, updates: dict[str, Any]) -> dict[str, Any]:
    existing = get_athlete_profile(user_id=user_id) or {}
    now = now_iso()
    item: dict[str, Any] = {
        **existing,
        **{k: v for k, v in updates.items() if k in ATHLETE_FIELDS},
        **athlete_profile_key(user_id=user_id),
        "entityType": "AthleteProfile",
        "userId": user_id,
        "createdAt": existing.get("createdAt") or now,
        "updatedAt": now,
    }
    item.update(_athlete_index(user_id, item.get("sport")))
    item = {k: v for k, v in item.items() if v is not None}
    get_main_table().put_item(item=item)
    return item


def upsert_business_profile(*, user_id: str, updates: dict[str, Any]) -> dict[str, Any]:
    existing = get_business_profile(user_id=user_id) or {}
    now = now_iso()
    item: dict[str, Any] = {
        **existing,
        **{k: v for k, v in updates.items() if k in BUSINESS_FIELDS},
        **business_profile_key(user_id=user_id),
        "entityType": "BusinessProfile",
        "userId": user_id,
        "createdAt": existing.get("createdAt") or now,
        "updatedAt": now,
    }
    item = {k: v for k, v in item.items() if v is not None}
    get_main_table().put_item(item=item)
    return item


def ensure_business_profile(*, user_id: str, name: str | None = None) -> tuple[dict[str, Any], bool]:
    """
    Create a minimal business profile if none exists.

    Returns (profile, created). Safe to call concurrently: the put is
    conditional and the loser re-reads.
    """
    existing = get_business_profile(user_id=user_id)
    if existing:
        return existing, False
    now = now_iso()
    item: dict[str, Any] = {
        **business_profile_key(user_id=user_id),
        "entityType": "BusinessProfile",
        "userId": user_id,
        "name": (name or "").strip() or "My Business",
        "productType": "Default product",
        "values": "Default values",
        "targetSchoolsSports": "All",
        "createdAt": now,
        "updatedAt": now,
        "autoCreated": True,
    }
    try:
        get_main_table().put_item(item=item, condition_expression="attribute_not_exists(pk)")
    except DdbConflict:
        return get_business_profile(user_id=user_id) or item, False
    return item, True


def list_athletes(*, sport: str | None = None, limit: int = 200) -> list[dict[str, Any]]:
    cond = Key("gsi1pk").eq("ATHLETES")
    slug = sport_slug(sport)
    if slug:
        cond = cond & Key("gsi1sk").begins_with(f"SPORT#{slug}#")
    return get_main_table().query_all(
        index_name="GSI1",
        key_condition_expression=cond,
        scan_index_forward=True,
        max_items=max(1, min(1000, int(limit or 200))),
    )
