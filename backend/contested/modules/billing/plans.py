from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from ...settings import settings

CUSTOM_PLAN = "custom"
DEFAULT_PLAN = "basic"


@dataclass(frozen=True)
class SubscriptionPlan:
    id: str
    name: str
    price: int  # cents, monthly
    description: str
    features: tuple[str, ...] = field(default_factory=tuple)
    recommended: bool = False

    @property
    def stripe_price_id(self) -> str:
        return {
            "basic": settings.stripe_basic_price_id,
            "pro": settings.stripe_pro_price_id,
            "enterprise": settings.stripe_enterprise_price_id,
        }.get(self.id) or f"price_{self.id}"

    def to_api(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "price": self.price,
            "description": self.description,
            "features": list(self.features),
            "stripePriceId": self.stripe_price_id,
        }
        if self.recommended:
            out["recommended"] = True
        return out


PLANS: dict[str, SubscriptionPlan] = {
    "basic": SubscriptionPlan(
        id="basic",
        name="Basic",
        price=9900,
        description="Essential features for growing businesses",
        features=(
            "Up to 5 athlete matches per month",
            "Basic analytics dashboard",
            "Email support",
            "Campaign management tools",
        ),
    ),
    "pro": SubscriptionPlan(
        id="pro",
        name="Professional",
        price=19900,
        description="Advanced features for scaling your athlete partnerships",
        features=(
            "Up to 15 athlete matches per month",
            "Advanced analytics dashboard",
            "Priority email & chat support",
            "Comprehensive campaign management",
            "Performance reports",
        ),
        recommended=True,
    ),
    "enterprise": SubscriptionPlan(
        id="enterprise",
        name="Enterprise",
        price=39900,
        description="Complete solution for large-scale influencer marketing",
        features=(
            "Unlimited athlete matches",
            "Executive analytics dashboard",
            "24/7 dedicated support",
            "Full campaign suite",
            "Custom reporting",
            "API access",
        ),
    ),
}


def list_plans() -> list[dict[str, Any]]:
    return [p.to_api() for p in PLANS.values()]


def plan_for_price(price_id: str | None) -> str:
    """Map a Stripe price id back to a plan id; unknown prices are 'custom'."""
    pid = str(price_id or "").strip()
    for plan in PLANS.values():
        if pid and plan.stripe_price_id == pid:
            return plan.id
    return CUSTOM_PLAN


def is_known_price(price_id: str | None) -> bool:
    return plan_for_price(price_id) != CUSTOM_PLAN


def default_price_id() -> str:
    return PLANS[DEFAULT_PLAN].stripe_price_id
