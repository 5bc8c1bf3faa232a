from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

from boto3.dynamodb.conditions import Key

from ..db.dynamodb.errors import DdbConflict
from ..db.dynamodb.table import get_main_table
from ..errors import Conflict, NotFound
from .common import new_id, now_iso, strip_internal

OFFER_PENDING = "pending"
OFFER_ACCEPTED = "accepted"
OFFER_DECLINED = "declined"
OFFER_COUNTERED = "countered"
OFFER_CANCELED = "canceled"

OFFER_RESPONSES = (OFFER_ACCEPTED, OFFER_DECLINED, OFFER_COUNTERED)

DEFAULT_EXPIRY_DAYS = 7


def offer_key(*, offer_id: str) -> dict[str, str]:
    oid = str(offer_id or "").strip()
    if not oid:
        raise ValueError("offer_id is required")
    return {"pk": f"OFFER#{oid}", "sk": "META"}


def match_offer_pointer_key(*, match_id: str) -> dict[str, str]:
    return {"pk": f"MATCH#{match_id}", "sk": "OFFER"}


def normalize_offer_for_api(item: dict[str, Any] | None) -> dict[str, Any] | None:
    return strip_internal(item)


def default_expires_at(days: int = DEFAULT_EXPIRY_DAYS) -> str:
    dt = datetime.now(timezone.utc) + timedelta(days=days)
    return dt.isoformat().replace("+00:00", "Z")


def create_offer(*, match: dict[str, Any], data: dict[str, Any]) -> dict[str, Any]:
    """
    Create the offer and its match pointer atomically; the pointer's
    attribute_not_exists condition enforces one offer per match.
    """
    oid = new_id("ofr")
    now = now_iso()
    mid = str(match.get("id"))
    athlete_id = str(match.get("athleteId"))
    business_id = str(match.get("businessId"))

    item: dict[str, Any] = {
        **offer_key(offer_id=oid),
        "entityType": "PartnershipOffer",
        "id": oid,
        "matchId": mid,
        "campaignId": match.get("campaignId"),
        "athleteId": athlete_id,
        "businessId": business_id,
        "compensationType": data.get("compensationType"),
        "offerAmount": data.get("offerAmount"),
        "term": data.get("term"),
        "usageRights": data.get("usageRights"),
        "deliverables": data.get("deliverables") or [],
        "message": data.get("message"),
        "status": OFFER_PENDING,
        "expiresAt": data.get("expiresAt") or default_expires_at(),
        "createdAt": now,
        "updatedAt": now,
        "gsi1pk": f"ATHLETE#{athlete_id}#OFFERS",
        "gsi1sk": f"{now}#{oid}",
        "gsi2pk": f"BUSINESS#{business_id}#OFFERS",
        "gsi2sk": f"{now}#{oid}",
        "gsi3pk": "OFFERS",
        "gsi3sk": f"{now}#{oid}",
    }
    item = {k: v for k, v in item.items() if v is not None}
    pointer = {
        **match_offer_pointer_key(match_id=mid),
        "entityType": "MatchOfferPointer",
        "offerId": oid,
        "createdAt": now,
    }

    t = get_main_table()
    try:
        t.transact_write(
            puts=[
                t.tx_put(item=pointer, condition_expression="attribute_not_exists(pk)"),
                t.tx_put(item=item, condition_expression="attribute_not_exists(pk)"),
            ]
        )
    except DdbConflict as e:
        raise Conflict("An offer already exists for this match", code="offer_exists") from e
    return item


def get_offer(*, offer_id: str) -> dict[str, Any] | None:
    return get_main_table().get_item(key=offer_key(offer_id=offer_id))


def get_offer_required(*, offer_id: str) -> dict[str, Any]:
    it = get_offer(offer_id=offer_id)
    if not it:
        raise NotFound("Offer not found", code="offer_not_found")
    return it


def get_offer_for_match(*, match_id: str) -> dict[str, Any] | None:
    ptr = get_main_table().get_item(key=match_offer_pointer_key(match_id=match_id))
    oid = str((ptr or {}).get("offerId") or "").strip()
    return get_offer(offer_id=oid) if oid else None


def _list(index: str, pk_attr: str, pk: str, limit: int) -> list[dict[str, Any]]:
    return get_main_table().query_all(
        index_name=index,
        key_condition_expression=Key(pk_attr).eq(pk),
        scan_index_forward=False,
        max_items=limit,
    )


def list_offers_for_athlete(*, athlete_id: str, limit: int = 200) -> list[dict[str, Any]]:
    return _list("GSI1", "gsi1pk", f"ATHLETE#{athlete_id}#OFFERS", limit)


def list_offers_for_business(*, business_id: str, limit: int = 200) -> list[dict[str, Any]]:
    return _list("GSI2", "gsi2pk", f"BUSINESS#{business_id}#OFFERS", limit)


def list_all_offers(*, limit: int = 500) -> list[dict[str, Any]]:
    return _list("GSI3", "gsi3pk", "OFFERS", limit)


def respond_to_offer(
    *,
    offer_id: str,
    athlete_id: str,
    response: str,
    counter_terms: dict[str, Any] | None = None,
) -> dict[str, Any]:
    now = now_iso()
    fields: dict[str, Any] = {"status": response, "respondedAt": now, "updatedAt": now}
    if counter_terms:
        fields["counterTerms"] = counter_terms
    try:
        out = get_main_table().update_fields(
            key=offer_key(offer_id=offer_id),
            fields=fields,
            condition_expression="attribute_exists(pk) AND #st = :pending AND athleteId = :aid",
            expression_attribute_names={"#st": "status"},
            expression_attribute_values={":pending": OFFER_PENDING, ":aid": athlete_id},
        )
    except DdbConflict as e:
        raise Conflict("Offer is no longer pending", code="offer_state") from e
    return out or {}


def cancel_offer(*, offer: dict[str, Any], business_id: str) -> dict[str, Any]:
    status = str(offer.get("status") or "")
    if status not in (OFFER_PENDING, OFFER_COUNTERED):
        raise Conflict(f"Offer cannot be canceled while {status}", code="offer_state")
    now = now_iso()
    try:
        out = get_main_table().update_fields(
            key=offer_key(offer_id=str(offer.get("id"))),
            fields={"status": OFFER_CANCELED, "canceledAt": now, "updatedAt": now},
            condition_expression="#st = :seen AND businessId = :bid",
            expression_attribute_names={"#st": "status"},
            expression_attribute_values={":seen": status, ":bid": business_id},
        )
    except DdbConflict as e:
        raise Conflict("Offer changed while canceling; reload and retry", code="offer_state") from e
    return out or {}
