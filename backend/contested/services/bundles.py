from __future__ import annotations

from typing import Any

from ..errors import BadRequest, Forbidden
from ..modules.bundles.presets import (
    MAX_BUNDLE_ATHLETES,
    bundle_display_name,
    default_idempotency_key,
    normalize_bundle_type,
    resolve_bundle_details,
)
from ..observability.logging import get_logger
from ..repositories import bundles_repo, campaigns_repo
from .notifications import notify

log = get_logger("bundles")


def validate_athlete_ids(athlete_ids: list[Any] | None) -> list[str]:
    ids = [str(a or "").strip() for a in (athlete_ids or [])]
    if not ids or any(not a for a in ids):
        raise BadRequest("At least one athlete is required", code="athletes_required")
    if len(set(ids)) != len(ids):
        raise BadRequest("Athlete ids must be unique", code="athletes_duplicate")
    if len(ids) > MAX_BUNDLE_ATHLETES:
        raise BadRequest(
            f"A bundle may include at most {MAX_BUNDLE_ATHLETES} athletes",
            code="athletes_limit",
        )
    return ids


def create_bundle(
    *,
    business_id: str,
    campaign_id: str,
    bundle_type: str | None,
    custom_details: dict[str, Any] | None,
    athlete_ids: list[Any] | None,
    idempotency_key: str | None = None,
) -> tuple[dict[str, Any], bool]:
    """
    Create a bundle for a campaign owned by `business_id`.

    Returns (bundle, created); created is False when the idempotency key was
    seen before and the first bundle is returned instead.
    """
    ids = validate_athlete_ids(athlete_ids)
    btype = normalize_bundle_type(bundle_type)
    try:
        details = resolve_bundle_details(btype, custom_details)
    except ValueError as e:
        raise BadRequest(str(e), code="custom_details_required") from e

    campaign = campaigns_repo.get_campaign_required(campaign_id=campaign_id)
    if campaign.get("businessId") != business_id:
        raise Forbidden("You do not own this campaign", code="not_campaign_owner")

    key = str(idempotency_key or "").strip()[:128] or default_idempotency_key(
        campaign_id=campaign_id,
        bundle_type=btype,
        athlete_ids=ids,
    )
    bundle, created = bundles_repo.create_bundle(
        campaign_id=campaign_id,
        business_id=business_id,
        bundle_type=btype,
        name=bundle_display_name(btype, details),
        details=details,
        athlete_ids=ids,
        idempotency_key=key,
    )
    if created:
        log.info("bundle_created", bundle_id=bundle.get("id"), campaign_id=campaign_id, athletes=len(ids))
        for aid in ids:
            notify(
                user_id=aid,
                type="bundle_invite",
                title="New sponsorship bundle",
                content=f"You were added to the bundle '{bundle.get('name')}' for '{campaign.get('title')}'.",
                reference_type="bundle",
                reference_id=str(bundle.get("id")),
            )
    else:
        log.info("bundle_replayed", bundle_id=bundle.get("id"), campaign_id=campaign_id)
    return bundle, created
