from __future__ import annotations

import hashlib
from typing import Any

BUNDLE_TYPE_CUSTOM = "custom"
DEFAULT_BUNDLE_TYPE = "standard"
MAX_BUNDLE_ATHLETES = 50

_PRESETS: dict[str, dict[str, str]] = {
    "premium": {
        "name": "Premium Package",
        "description": "Enhanced partnership package with premium content deliverables",
        "deliverables": "5 social media posts, 4 stories, 2 video content pieces, 1 event appearance",
        "compensation": "$1,500-$3,000 per athlete",
        "timeline": "45 days from acceptance",
    },
    "basic": {
        "name": "Basic Package",
        "description": "Simple partnership package for quick campaigns",
        "deliverables": "2 social media posts, 1 story",
        "compensation": "$200-$500 per athlete",
        "timeline": "15 days from acceptance",
    },
    "standard": {
        "name": "Standard Package",
        "description": "Our standard athlete partnership package with balanced deliverables",
        "deliverables": "3 social media posts, 2 stories, 1 product showcase",
        "compensation": "$500-$1,500 per athlete",
        "timeline": "30 days from acceptance",
    },
}

BUNDLE_TYPES: list[dict[str, Any]] = [
    {
        "id": "standard",
        "name": "Standard Bundle",
        "description": "Basic bundle with standard features",
        "features": ["Up to 5 athletes", "Standard campaign analytics", "Basic reporting"],
        "price": 99,
    },
    {
        "id": "premium",
        "name": "Premium Bundle",
        "description": "Enhanced bundle with premium features",
        "features": ["Up to 15 athletes", "Advanced analytics", "Enhanced reporting", "Priority support"],
        "price": 199,
    },
    {
        "id": "enterprise",
        "name": "Enterprise Bundle",
        "description": "Full-featured bundle for large campaigns",
        "features": ["Unlimited athletes", "Executive dashboard", "Comprehensive analytics", "Dedicated manager"],
        "price": 399,
    },
    {
        "id": "custom",
        "name": "Custom Bundle",
        "description": "Tailored to your specific needs",
        "features": ["Custom athlete count", "Personalized features", "Custom analytics"],
        "price": None,
    },
]


def normalize_bundle_type(value: Any) -> str:
    return str(value or "").strip().lower() or DEFAULT_BUNDLE_TYPE


def preset_details(bundle_type: str) -> dict[str, str]:
    """Unknown types fall back to the standard package."""
    return dict(_PRESETS.get(normalize_bundle_type(bundle_type), _PRESETS[DEFAULT_BUNDLE_TYPE]))


def resolve_bundle_details(bundle_type: str, custom_details: dict[str, Any] | None) -> dict[str, Any]:
    t = normalize_bundle_type(bundle_type)
    if t == BUNDLE_TYPE_CUSTOM:
        if not custom_details:
            raise ValueError("custom_details is required for custom bundles")
        return dict(custom_details)
    return preset_details(t)


def bundle_display_name(bundle_type: str, details: dict[str, Any]) -> str:
    name = str(details.get("name") or "").strip()
    if name:
        return name
    t = normalize_bundle_type(bundle_type)
    return f"{t[:1].upper()}{t[1:]} Bundle"


def default_idempotency_key(*, campaign_id: str, bundle_type: str, athlete_ids: list[str]) -> str:
    """Same campaign, type and athlete set -> same key, regardless of order."""
    raw = "|".join([campaign_id, normalize_bundle_type(bundle_type), *sorted(athlete_ids)])
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()
