from __future__ import annotations

import math
from typing import Any, Iterable

BASE_SCORE = 50
SPORT_MATCH_BONUS = 20
MAX_FOLLOWER_BONUS = 20.0
MAX_ENGAGEMENT_BONUS = 10.0
MAX_SCORE = 100
DEFAULT_CANDIDATE_LIMIT = 20


def _num(v: Any) -> float:
    try:
        return float(v or 0)
    except (TypeError, ValueError):
        return 0.0


def _follower_count(athlete: dict[str, Any]) -> float:
    direct = athlete.get("followerCount")
    if direct is not None:
        return _num(direct)
    # Older profiles keep per-network counts under socialHandles.
    handles = athlete.get("socialHandles")
    if isinstance(handles, dict):
        total = 0.0
        for v in handles.values():
            if isinstance(v, dict):
                total += _num(v.get("followers"))
        return total
    return 0.0


def score_athlete(athlete: dict[str, Any], target_sports: Iterable[str] | None) -> int:
    """
    Base 50, +20 for a targeted sport, up to +20 for reach (5 per order of
    magnitude of followers) and up to +10 for engagement; capped at 100.
    """
    sports = {str(s).strip().lower() for s in (target_sports or []) if str(s).strip()}
    score = float(BASE_SCORE)

    if sports and str(athlete.get("sport") or "").strip().lower() in sports:
        score += SPORT_MATCH_BONUS

    followers = _follower_count(athlete)
    if followers > 0:
        score += min(math.log10(followers) * 5, MAX_FOLLOWER_BONUS)

    engagement = _num(athlete.get("engagementRate"))
    if engagement > 0:
        score += min(engagement * 10, MAX_ENGAGEMENT_BONUS)

    # Half-up rounding, not banker's.
    return min(MAX_SCORE, int(math.floor(score + 0.5)))


def passes_audience_filters(athlete: dict[str, Any], target_audience: dict[str, Any] | None) -> bool:
    """Age range is inclusive; gender 'all' (or unset) matches everyone.
    With an age range set, athletes without an age are dropped."""
    audience = target_audience or {}

    age_range = audience.get("ageRange")
    age = athlete.get("age")
    if isinstance(age_range, (list, tuple)) and len(age_range) == 2:
        if age is None:
            return False
        lo, hi = _num(age_range[0]), _num(age_range[1])
        if not (lo <= _num(age) <= hi):
            return False

    gender = str(audience.get("gender") or "all").strip().lower()
    if gender != "all":
        if str(athlete.get("gender") or "").strip().lower() != gender:
            return False

    return True


def rank_candidates(
    athletes: Iterable[dict[str, Any]],
    *,
    target_sports: Iterable[str] | None,
    target_audience: dict[str, Any] | None,
    limit: int = DEFAULT_CANDIDATE_LIMIT,
) -> list[dict[str, Any]]:
    sports = list(target_sports or [])
    eligible = [a for a in athletes if passes_audience_filters(a, target_audience)][: max(1, limit)]

    candidates: list[dict[str, Any]] = []
    for a in eligible:
        score = score_athlete(a, sports)
        candidates.append(
            {
                "id": a.get("userId") or a.get("id"),
                "name": a.get("name"),
                "sport": a.get("sport"),
                "school": a.get("school"),
                "division": a.get("division"),
                "followers": int(_follower_count(a)),
                "engagementRate": _num(a.get("engagementRate")),
                "score": score,
                "match_score": f"{score}%",
                "profileImage": a.get("profileImage"),
            }
        )
    candidates.sort(key=lambda c: c["score"], reverse=True)
    return candidates
