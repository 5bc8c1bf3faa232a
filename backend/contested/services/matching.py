from __future__ import annotations

import time
from typing import Any

from ..db.dynamodb.errors import DdbError
from ..infrastructure import matching_client
from ..infrastructure.matching_client import MatchingServiceError
from ..modules.matching.scoring import DEFAULT_CANDIDATE_LIMIT, rank_candidates
from ..observability.logging import get_logger
from ..repositories import campaigns_repo, profiles_repo

log = get_logger("matching")


def _local_candidates(
    *,
    target_sports: list[str],
    target_audience: dict[str, Any],
) -> list[dict[str, Any]]:
    if target_sports:
        athletes: list[dict[str, Any]] = []
        seen: set[str] = set()
        for sport in target_sports:
            for a in profiles_repo.list_athletes(sport=sport):
                uid = str(a.get("userId") or "")
                if uid and uid not in seen:
                    seen.add(uid)
                    athletes.append(a)
    else:
        athletes = profiles_repo.list_athletes()

    return rank_candidates(
        athletes,
        target_sports=target_sports,
        target_audience=target_audience,
        limit=DEFAULT_CANDIDATE_LIMIT,
    )


def run_matching(
    *,
    campaign: dict[str, Any],
    target_sports: list[str] | None = None,
    target_audience: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """
    Find candidate athletes for a campaign.

    Prefers the external matching service when configured; any failure there
    (transport, status, malformed body) falls back to local scoring. The
    candidate ids are saved on the campaign, which is not fatal if it fails.
    """
    started = time.perf_counter()
    campaign_id = str(campaign.get("id"))
    sports = list(target_sports if target_sports is not None else campaign.get("targetSports") or [])
    audience = dict(target_audience if target_audience is not None else campaign.get("targetAudience") or {})

    candidates: list[dict[str, Any]] | None = None
    source = "local"
    if matching_client.is_configured():
        try:
            candidates = matching_client.request_matches(
                campaign_id=campaign_id,
                target_sports=sports,
                target_audience=audience,
                budget=campaign.get("budget"),
                objective=campaign.get("objective"),
            )
            source = "external"
        except MatchingServiceError as e:
            log.warning("matching_service_failed", campaign_id=campaign_id, error=str(e))

    if candidates is None:
        candidates = _local_candidates(target_sports=sports, target_audience=audience)

    ids = [str(c.get("id")) for c in candidates if c.get("id")]
    try:
        campaigns_repo.set_match_candidates(campaign_id=campaign_id, athlete_ids=ids)
    except DdbError as e:
        log.warning("match_candidates_not_saved", campaign_id=campaign_id, error=str(e))

    elapsed_ms = int((time.perf_counter() - started) * 1000)
    log.info(
        "matching_completed",
        campaign_id=campaign_id,
        source=source,
        candidates=len(candidates),
        duration_ms=elapsed_ms,
    )
    return {
        "candidates": candidates,
        "total": len(candidates),
        "matchingTime": elapsed_ms,
        "source": source,
    }
