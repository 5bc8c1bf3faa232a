from __future__ import annotations

from typing import Any

from boto3.dynamodb.conditions import Key

from ..db.dynamodb.errors import DdbConflict
from ..db.dynamodb.table import get_main_table
from ..errors import Conflict, NotFound
from .campaigns_repo import campaign_key, get_campaign
from .common import new_id, now_iso, strip_internal

MEMBER_PENDING = "pending"


def bundle_key(*, bundle_id: str) -> dict[str, str]:
    bid = str(bundle_id or "").strip()
    if not bid:
        raise ValueError("bundle_id is required")
    return {"pk": f"BUNDLE#{bid}", "sk": "META"}


def bundle_member_key(*, bundle_id: str, athlete_id: str) -> dict[str, str]:
    return {"pk": f"BUNDLE#{bundle_id}", "sk": f"MEMBER#{athlete_id}"}


def idempotency_key_item_key(*, business_id: str, campaign_id: str, key: str) -> dict[str, str]:
    # Scoped per business and campaign; a key never resolves across tenants.
    return {"pk": f"IDEMPOTENCY#bundle#{business_id}#{campaign_id}#{key}", "sk": "v1"}


def normalize_bundle_for_api(
    item: dict[str, Any] | None,
    members: list[dict[str, Any]] | None = None,
) -> dict[str, Any] | None:
    out = strip_internal(item)
    if out is None:
        return None
    if members is not None:
        out["members"] = [strip_internal(m) for m in members]
        out["athlete_count"] = len(members)
    else:
        out["athlete_count"] = len(out.get("athleteIds") or [])
    return out


def get_bundle_with_members(*, bundle_id: str) -> tuple[dict[str, Any] | None, list[dict[str, Any]]]:
    items = get_main_table().query_all(
        key_condition_expression=Key("pk").eq(f"BUNDLE#{bundle_id}"),
        scan_index_forward=True,
    )
    meta = next((it for it in items if it.get("sk") == "META"), None)
    members = [it for it in items if str(it.get("sk") or "").startswith("MEMBER#")]
    return meta, members


def _bundle_for_idempotency_key(*, business_id: str, campaign_id: str, key: str) -> dict[str, Any] | None:
    marker = get_main_table().get_item(
        key=idempotency_key_item_key(business_id=business_id, campaign_id=campaign_id, key=key),
        consistent=True,
    )
    bid = str((marker or {}).get("bundleId") or "").strip()
    if not bid:
        return None
    bundle = get_main_table().get_item(key=bundle_key(bundle_id=bid), consistent=True)
    if bundle and (bundle.get("businessId") != business_id or bundle.get("campaignId") != campaign_id):
        raise Conflict(
            "Idempotency key was already used for a different bundle request",
            code="idempotency_key_reused",
        )
    return bundle


def create_bundle(
    *,
    campaign_id: str,
    business_id: str,
    bundle_type: str,
    name: str,
    details: dict[str, Any],
    athlete_ids: list[str],
    idempotency_key: str,
) -> tuple[dict[str, Any], bool]:
    """
    Write the bundle, one member per athlete, the campaign back-reference and
    the idempotency marker in a single transaction.

    Returns (bundle, created). A replay with the same idempotency key returns
    the bundle from the first call with created=False.
    """
    existing = _bundle_for_idempotency_key(
        business_id=business_id, campaign_id=campaign_id, key=idempotency_key
    )
    if existing:
        return existing, False

    bid = new_id("bdl")
    now = now_iso()
    bundle: dict[str, Any] = {
        **bundle_key(bundle_id=bid),
        "entityType": "Bundle",
        "id": bid,
        "campaignId": campaign_id,
        "businessId": business_id,
        "name": name,
        "type": bundle_type,
        "details": details,
        "athleteIds": list(athlete_ids),
        "idempotencyKey": idempotency_key,
        "createdAt": now,
        "updatedAt": now,
        "gsi1pk": f"CAMPAIGN#{campaign_id}#BUNDLES",
        "gsi1sk": f"{now}#{bid}",
    }
    members = [
        {
            **bundle_member_key(bundle_id=bid, athlete_id=aid),
            "entityType": "BundleMember",
            "bundleId": bid,
            "athleteId": aid,
            "status": MEMBER_PENDING,
            "createdAt": now,
            "gsi1pk": f"ATHLETE#{aid}#BUNDLES",
            "gsi1sk": f"{now}#{bid}",
        }
        for aid in athlete_ids
    ]
    marker = {
        **idempotency_key_item_key(business_id=business_id, campaign_id=campaign_id, key=idempotency_key),
        "entityType": "IdempotencyKey",
        "bundleId": bid,
        "createdAt": now,
    }

    t = get_main_table()
    try:
        t.transact_write(
            puts=[
                t.tx_put(item=marker, condition_expression="attribute_not_exists(pk)"),
                t.tx_put(item=bundle, condition_expression="attribute_not_exists(pk)"),
                *[t.tx_put(item=m, condition_expression="attribute_not_exists(pk)") for m in members],
            ],
            updates=[
                t.tx_update_fields(
                    key=campaign_key(campaign_id=campaign_id),
                    fields={
                        "bundleId": bid,
                        "bundleType": bundle_type,
                        "bundleCreatedAt": now,
                        "updatedAt": now,
                    },
                    condition_expression="attribute_exists(pk)",
                )
            ],
            # Per-attempt token: SDK retries of this write are deduplicated.
            client_request_token=bid,
        )
    except DdbConflict as e:
        # Either a concurrent replay won the marker, or the campaign vanished.
        replay = _bundle_for_idempotency_key(
            business_id=business_id, campaign_id=campaign_id, key=idempotency_key
        )
        if replay:
            return replay, False
        if not get_campaign(campaign_id=campaign_id):
            raise NotFound("Campaign not found", code="campaign_not_found") from e
        raise Conflict("Bundle could not be created; retry the request", code="bundle_conflict") from e

    return bundle, True


def delete_bundle(*, bundle: dict[str, Any], members: list[dict[str, Any]]) -> None:
    """Remove bundle, members and marker; clear the campaign reference if it still points here."""
    bid = str(bundle.get("id"))
    t = get_main_table()
    deletes = [t.tx_delete(key=bundle_key(bundle_id=bid))]
    deletes.extend(
        t.tx_delete(key=bundle_member_key(bundle_id=bid, athlete_id=str(m.get("athleteId"))))
        for m in members
    )
    if bundle.get("idempotencyKey"):
        deletes.append(
            t.tx_delete(
                key=idempotency_key_item_key(
                    business_id=str(bundle.get("businessId")),
                    campaign_id=str(bundle.get("campaignId")),
                    key=str(bundle["idempotencyKey"]),
                )
            )
        )

    updates: list[dict[str, Any]] = []
    campaign = get_campaign(campaign_id=str(bundle.get("campaignId") or ""))
    if campaign and campaign.get("bundleId") == bid:
        updates.append(
            t.tx_update_fields(
                key=campaign_key(campaign_id=str(campaign["id"])),
                fields={"bundleId": None, "bundleType": None, "bundleCreatedAt": None, "updatedAt": now_iso()},
                condition_expression="bundleId = :bid",
                expression_attribute_values={":bid": bid},
            )
        )

    t.transact_write(deletes=deletes, updates=updates)
