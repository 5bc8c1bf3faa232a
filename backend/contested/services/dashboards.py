from __future__ import annotations

from collections import Counter
from typing import Any, Iterable

from ..auth.models import AuthenticatedUser
from ..errors import Forbidden
from ..modules.access.route_policy import is_profile_complete
from ..modules.identity.roles import ADMIN, ATHLETE, BUSINESS, COMPLIANCE, dashboard_path_for
from ..repositories import campaigns_repo, matches_repo, offers_repo, profiles_repo, users_repo
from ..repositories.matches_repo import COMPLIANCE_PENDING, COMPLIANCE_STATUSES, MATCH_STATUSES
from ..repositories.offers_repo import OFFER_PENDING

QUICK_ACTIONS: dict[str, list[dict[str, str]]] = {
    ATHLETE: [
        {"label": "Edit profile", "path": "/athlete/profile"},
        {"label": "Review matches", "path": "/athlete/matches"},
        {"label": "View offers", "path": "/athlete/offers"},
    ],
    BUSINESS: [
        {"label": "Create campaign", "path": "/wizard"},
        {"label": "Find athletes", "path": "/business/matches"},
        {"label": "Manage subscription", "path": "/subscription"},
    ],
    COMPLIANCE: [
        {"label": "Review queue", "path": "/compliance/review"},
        {"label": "All partnerships", "path": "/compliance/partnerships"},
    ],
    ADMIN: [
        {"label": "Partnerships", "path": "/admin/partnerships"},
        {"label": "Compliance queue", "path": "/compliance/review"},
    ],
}

_REVIEW_PREVIEW = 20


def _counts(items: Iterable[dict[str, Any]], attr: str, keys: Iterable[str]) -> dict[str, int]:
    c = Counter(str(it.get(attr) or "") for it in items)
    out = {k: int(c.get(k, 0)) for k in keys}
    out["total"] = sum(c.values())
    return out


def _athlete(user: AuthenticatedUser) -> dict[str, Any]:
    matches = matches_repo.list_matches_for_athlete(athlete_id=user.id)
    offers = offers_repo.list_offers_for_athlete(athlete_id=user.id)
    profile = profiles_repo.get_athlete_profile(user_id=user.id)
    return {
        "matches": _counts(matches, "status", MATCH_STATUSES),
        "pendingOffers": sum(1 for o in offers if o.get("status") == OFFER_PENDING),
        "profileComplete": is_profile_complete(ATHLETE, profile),
    }


def _business(user: AuthenticatedUser) -> dict[str, Any]:
    campaigns = campaigns_repo.list_campaigns_for_business(business_id=user.id)
    matches = matches_repo.list_matches_for_business(business_id=user.id)
    account = users_repo.get_user(user_id=user.id) or {}
    return {
        "campaigns": _counts(
            campaigns,
            "status",
            (
                campaigns_repo.STATUS_DRAFT,
                campaigns_repo.STATUS_ACTIVE,
                campaigns_repo.STATUS_COMPLETED,
                campaigns_repo.STATUS_CANCELED,
            ),
        ),
        "matches": _counts(matches, "status", MATCH_STATUSES),
        # Mirrored by webhooks; no live Stripe call on the dashboard.
        "subscription": {
            "status": account.get("subscriptionStatus"),
            "plan": account.get("subscriptionPlan"),
            "currentPeriodEnd": account.get("currentPeriodEnd"),
            "cancelAtPeriodEnd": bool(account.get("cancelAtPeriodEnd") or False),
        },
    }


def _compliance(_: AuthenticatedUser) -> dict[str, Any]:
    awaiting = [m for m in matches_repo.list_all_matches() if m.get("complianceStatus") == COMPLIANCE_PENDING]
    return {
        "awaitingReview": len(awaiting),
        "queue": [matches_repo.normalize_match_for_api(m) for m in awaiting[:_REVIEW_PREVIEW]],
    }


def _admin(_: AuthenticatedUser) -> dict[str, Any]:
    matches = matches_repo.list_all_matches()
    return {
        "matches": _counts(matches, "status", MATCH_STATUSES),
        "compliance": _counts(matches, "complianceStatus", COMPLIANCE_STATUSES),
    }


_BUILDERS = {
    ATHLETE: _athlete,
    BUSINESS: _business,
    COMPLIANCE: _compliance,
    ADMIN: _admin,
}


def build_dashboard(user: AuthenticatedUser) -> dict[str, Any]:
    builder = _BUILDERS.get(user.role)
    if builder is None:
        raise Forbidden("No dashboard for this role", code="role_mismatch", extensions={"redirectTo": "/"})
    return {
        "role": user.role,
        "dashboardPath": dashboard_path_for(user.role),
        "widgets": builder(user),
        "quickActions": QUICK_ACTIONS[user.role],
    }
