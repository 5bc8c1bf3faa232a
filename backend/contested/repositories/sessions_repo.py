from __future__ import annotations

import hashlib
import ipaddress
import secrets
import time
from typing import Any

from boto3.dynamodb.conditions import Key

from ..db.dynamodb.table import get_main_table
from ..security.token_crypto import hash_token
from ..settings import settings


def session_key(*, token_hash: str) -> dict[str, str]:
    h = str(token_hash or "").strip()
    if not h:
        raise ValueError("token_hash is required")
    return {"pk": f"SESSION#{h}", "sk": "v1"}


def _ip_prefix(ip: str | None) -> str | None:
    if not ip:
        return None
    try:
        addr = ipaddress.ip_address(str(ip))
    except ValueError:
        return None
    bits = 24 if addr.version == 4 else 64
    net = ipaddress.ip_network(f"{addr}/{bits}", strict=False)
    return f"{net.network_address}/{bits}"


def create_session(
    *,
    user_id: str,
    role: str,
    email: str | None = None,
    user_agent: str | None = None,
    ip: str | None = None,
    ttl_seconds: int | None = None,
) -> tuple[str, dict[str, Any]]:
    """
    Mint an opaque session token and persist only its peppered hash.

    `expiresAt` is epoch seconds and doubles as the DynamoDB TTL attribute.
    Returns (token, item); the raw token is never stored.
    """
    token = secrets.token_urlsafe(32)
    token_hash = hash_token(token)
    now = int(time.time())
    ttl = int(ttl_seconds or settings.session_ttl_seconds or 86400)

    item: dict[str, Any] = {
        **session_key(token_hash=token_hash),
        "entityType": "Session",
        "tokenHash": token_hash,
        "userId": str(user_id),
        "role": str(role),
        "expiresAt": now + max(60, ttl),
        "createdAt": now,
        "updatedAt": now,
        "lastSeenAt": now,
        "gsi1pk": f"USER#{user_id}",
        "gsi1sk": f"SESSION#{now}#{token_hash}",
    }
    if email:
        item["email"] = str(email).strip().lower()
    ua = str(user_agent or "").strip()
    if ua:
        item["userAgentHash"] = hashlib.sha256(ua.encode("utf-8")).hexdigest()
    prefix = _ip_prefix(ip)
    if prefix:
        item["ipPrefix"] = prefix

    get_main_table().put_item(item=item, condition_expression="attribute_not_exists(pk)")
    return token, item


def get_active_session(*, token: str) -> dict[str, Any] | None:
    """Look up a session by raw token; expired records count as absent
    (DynamoDB TTL deletion lags by up to a couple of days)."""
    if not token:
        return None
    it = get_main_table().get_item(key=session_key(token_hash=hash_token(token)))
    if not it:
        return None
    if int(it.get("expiresAt") or 0) <= int(time.time()):
        return None
    return it


def delete_session(*, token_hash: str) -> None:
    get_main_table().delete_item(key=session_key(token_hash=token_hash))


def list_sessions_for_user(*, user_id: str, limit: int = 25) -> list[dict[str, Any]]:
    """Newest-first sessions for a user."""
    uid = str(user_id or "").strip()
    if not uid:
        return []
    pg = get_main_table().query_page(
        index_name="GSI1",
        key_condition_expression=Key("gsi1pk").eq(f"USER#{uid}")
        & Key("gsi1sk").begins_with("SESSION#"),
        scan_index_forward=False,
        limit=max(1, min(100, int(limit or 25))),
    )
    return list(pg.items or [])


def delete_sessions_for_user(*, user_id: str, keep_token_hash: str | None = None) -> int:
    removed = 0
    for s in list_sessions_for_user(user_id=user_id, limit=100):
        h = str(s.get("tokenHash") or "")
        if not h or h == keep_token_hash:
            continue
        delete_session(token_hash=h)
        removed += 1
    return removed


def rotate_session(*, token_hash: str) -> tuple[str, dict[str, Any]] | None:
    """Replace a live session with a fresh token (refresh)."""
    t = get_main_table()
    current = t.get_item(key=session_key(token_hash=token_hash))
    if not current or int(current.get("expiresAt") or 0) <= int(time.time()):
        return None
    token, item = create_session(
        user_id=str(current.get("userId")),
        role=str(current.get("role") or ""),
        email=current.get("email"),
    )
    delete_session(token_hash=token_hash)
    return token, item
