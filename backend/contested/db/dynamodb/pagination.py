from __future__ import annotations

from decimal import Decimal
from typing import Any

import orjson

from ...security.token_crypto import decrypt_string, encrypt_string
from .errors import DdbValidation

# Bump when the cursor shape changes; older cursors are then rejected.
CURSOR_VERSION = 1


def _encode_value(v: Any) -> Any:
    # Key values come back from the resource API as Decimal.
    if isinstance(v, Decimal):
        return int(v) if v == v.to_integral_value() else float(v)
    raise TypeError(f"cannot encode {type(v).__name__} in a cursor")


def encode_next_token(last_evaluated_key: dict[str, Any] | None) -> str | None:
    """
    Seal a LastEvaluatedKey into an opaque cursor.

    Encrypted so clients cannot read key layout (USER#..., CAMPAIGN#...) or
    forge a cursor that starts inside another user's partition.
    """
    if not last_evaluated_key:
        return None
    raw = orjson.dumps({"v": CURSOR_VERSION, "k": last_evaluated_key}, default=_encode_value)
    return encrypt_string(raw.decode("utf-8"))


def decode_next_token(next_token: str | None) -> dict[str, Any] | None:
    if not next_token:
        return None

    invalid = DdbValidation(message="Invalid nextToken", operation="Query")
    raw = decrypt_string(next_token)
    if not raw:
        raise invalid
    try:
        cursor = orjson.loads(raw)
    except orjson.JSONDecodeError as e:
        raise invalid from e

    if not isinstance(cursor, dict) or cursor.get("v") != CURSOR_VERSION:
        raise invalid
    key = cursor.get("k")
    if key is not None and not isinstance(key, dict):
        raise invalid
    return key or None
