from __future__ import annotations

import uuid
from typing import Any

from ..db.dynamodb.errors import DdbConflict
from ..db.dynamodb.table import get_main_table
from ..errors import Conflict, Forbidden, NotFound
from ..modules.identity.roles import normalize_role
from .common import now_iso

# Fields a user may change about themselves via PATCH /api/auth/user.
_MUTABLE_ACCOUNT_FIELDS = ("firstName", "lastName")

# Stripe subscription fields mirrored onto the account item.
SUBSCRIPTION_FIELDS = (
    "stripeCustomerId",
    "stripeSubscriptionId",
    "subscriptionStatus",
    "subscriptionPlan",
    "subscriptionPriceId",
    "currentPeriodEnd",
    "cancelAtPeriodEnd",
)


def normalize_email(email: str | None) -> str:
    em = str(email or "").strip().lower()
    if not em or "@" not in em:
        raise ValueError("email is required")
    return em


def account_key(*, user_id: str) -> dict[str, str]:
    uid = str(user_id or "").strip()
    if not uid:
        raise ValueError("user_id is required")
    return {"pk": f"USER#{uid}", "sk": "ACCOUNT"}


def email_index_key(*, email: str) -> dict[str, str]:
    return {"pk": f"USER_EMAIL#{normalize_email(email)}", "sk": "EMAIL"}


def stripe_subscription_index_key(*, subscription_id: str) -> dict[str, str]:
    return {"pk": f"STRIPE_SUBSCRIPTION#{subscription_id}", "sk": "USER"}


def stripe_customer_index_key(*, customer_id: str) -> dict[str, str]:
    return {"pk": f"STRIPE_CUSTOMER#{customer_id}", "sk": "USER"}


def create_user(
    *,
    email: str,
    role: str,
    first_name: str | None = None,
    last_name: str | None = None,
    password_hash: str | None = None,
    user_id: str | None = None,
) -> dict[str, Any]:
    """
    Create an account plus its email index item in one transaction.

    The index item is written with attribute_not_exists, so two registrations
    racing on the same email cannot both succeed.
    """
    em = normalize_email(email)
    uid = str(user_id or "").strip() or str(uuid.uuid4())
    now = now_iso()

    item: dict[str, Any] = {
        **account_key(user_id=uid),
        "entityType": "UserAccount",
        "id": uid,
        "email": em,
        "role": normalize_role(role),
        "firstName": (first_name or "").strip() or None,
        "lastName": (last_name or "").strip() or None,
        "createdAt": now,
        "updatedAt": now,
    }
    if password_hash:
        item["passwordHash"] = password_hash
    item = {k: v for k, v in item.items() if v is not None}

    index_item = {
        **email_index_key(email=em),
        "entityType": "UserEmailIndex",
        "email": em,
        "userId": uid,
        "createdAt": now,
    }

    t = get_main_table()
    try:
        t.transact_write(
            puts=[
                t.tx_put(item=item, condition_expression="attribute_not_exists(pk)"),
                t.tx_put(item=index_item, condition_expression="attribute_not_exists(pk)"),
            ]
        )
    except DdbConflict as e:
        raise Conflict("User with this email already exists", code="email_taken") from e
    return item


def get_user(*, user_id: str) -> dict[str, Any] | None:
    return get_main_table().get_item(key=account_key(user_id=user_id))


def get_user_id_by_email(*, email: str) -> str | None:
    try:
        key = email_index_key(email=email)
    except ValueError:
        return None
    it = get_main_table().get_item(key=key)
    uid = str((it or {}).get("userId") or "").strip()
    return uid or None


def get_user_by_email(*, email: str) -> dict[str, Any] | None:
    uid = get_user_id_by_email(email=email)
    return get_user(user_id=uid) if uid else None


def ensure_user(*, user_id: str, email: str | None, role: str) -> dict[str, Any]:
    """
    Return the account for an externally authenticated (Supabase) user,
    creating a password-less one on first sight.
    """
    existing = get_user(user_id=user_id)
    if existing:
        return existing
    if not email:
        raise NotFound("Account not found and token carries no email")
    try:
        return create_user(email=email, role=role, user_id=user_id)
    except Conflict:
        # Lost a race with a parallel request for the same user.
        again = get_user(user_id=user_id)
        if again:
            return again
        raise


def update_user(*, user_id: str, updates: dict[str, Any]) -> dict[str, Any]:
    if "role" in updates or "userType" in updates:
        raise Forbidden("Role cannot be changed", code="role_immutable")
    fields = {k: updates[k] for k in _MUTABLE_ACCOUNT_FIELDS if k in updates}
    if not fields:
        existing = get_user(user_id=user_id)
        if not existing:
            raise NotFound("User not found")
        return existing
    fields["updatedAt"] = now_iso()
    try:
        out = get_main_table().update_fields(
            key=account_key(user_id=user_id),
            fields=fields,
            condition_expression="attribute_exists(pk)",
        )
    except DdbConflict as e:
        raise NotFound("User not found") from e
    return out or {}


def set_password_hash(*, user_id: str, password_hash: str) -> None:
    get_main_table().update_fields(
        key=account_key(user_id=user_id),
        fields={"passwordHash": password_hash, "passwordChangedAt": now_iso(), "updatedAt": now_iso()},
        condition_expression="attribute_exists(pk)",
    )


def record_login(*, user_id: str) -> None:
    get_main_table().update_fields(
        key=account_key(user_id=user_id),
        fields={"lastLoginAt": now_iso()},
    )


def update_subscription_fields(*, user_id: str, fields: dict[str, Any]) -> dict[str, Any] | None:
    """
    Mirror Stripe state onto the account and keep the Stripe id -> user
    lookup items current (webhooks only carry Stripe ids).
    """
    clean = {k: v for k, v in fields.items() if k in SUBSCRIPTION_FIELDS}
    if not clean:
        return get_user(user_id=user_id)
    clean["subscriptionUpdatedAt"] = now_iso()

    t = get_main_table()
    out = t.update_fields(key=account_key(user_id=user_id), fields=clean)

    sub_id = clean.get("stripeSubscriptionId")
    if sub_id:
        t.put_item(
            item={
                **stripe_subscription_index_key(subscription_id=str(sub_id)),
                "entityType": "StripeSubscriptionIndex",
                "userId": user_id,
            }
        )
    cust_id = clean.get("stripeCustomerId")
    if cust_id:
        t.put_item(
            item={
                **stripe_customer_index_key(customer_id=str(cust_id)),
                "entityType": "StripeCustomerIndex",
                "userId": user_id,
            }
        )
    return out


def find_user_id_by_stripe_subscription(*, subscription_id: str | None) -> str | None:
    sid = str(subscription_id or "").strip()
    if not sid:
        return None
    it = get_main_table().get_item(key=stripe_subscription_index_key(subscription_id=sid))
    return str((it or {}).get("userId") or "").strip() or None


def find_user_id_by_stripe_customer(*, customer_id: str | None) -> str | None:
    cid = str(customer_id or "").strip()
    if not cid:
        return None
    it = get_main_table().get_item(key=stripe_customer_index_key(customer_id=cid))
    return str((it or {}).get("userId") or "").strip() or None
