from __future__ import annotations

from typing import Any

import httpx

from ..settings import settings


class MatchingServiceError(Exception):
    """The external matching service failed or answered with something unusable."""


def is_configured() -> bool:
    return bool(str(settings.matching_svc_url or "").strip())


def _base_url() -> str:
    u = str(settings.matching_svc_url or "").strip()
    if not u:
        raise MatchingServiceError("MATCHING_SVC_URL is not configured")
    return u.rstrip("/")


def _post(path: str, payload: dict[str, Any]) -> dict[str, Any]:
    url = _base_url() + path
    timeout_s = float(settings.matching_svc_timeout_seconds or 10.0)
    try:
        with httpx.Client(timeout=timeout_s, follow_redirects=True) as c:
            r = c.post(url, json=payload)
    except httpx.HTTPError as e:
        raise MatchingServiceError(f"transport error: {type(e).__name__}") from e

    if r.status_code >= 400:
        raise MatchingServiceError(f"http {r.status_code}")
    try:
        data = r.json()
    except ValueError as e:
        raise MatchingServiceError("invalid json") from e
    if not isinstance(data, dict):
        raise MatchingServiceError("invalid response shape")
    return data


def request_matches(
    *,
    campaign_id: str,
    target_sports: list[str],
    target_audience: dict[str, Any],
    budget: Any,
    objective: Any,
) -> list[dict[str, Any]]:
    """POST {MATCHING_SVC_URL}/match and return its candidate list."""
    data = _post(
        "/match",
        {
            "campaignId": campaign_id,
            "targetSports": target_sports,
            "targetAudience": target_audience,
            "budget": budget,
            "objective": objective,
        },
    )
    candidates = data.get("candidates")
    if not isinstance(candidates, list):
        raise MatchingServiceError("response has no candidates list")
    return [c for c in candidates if isinstance(c, dict)]
