from __future__ import annotations

import time
import uuid
from datetime import datetime, timezone
from typing import Any

INTERNAL_KEYS = (
    "pk",
    "sk",
    "gsi1pk",
    "gsi1sk",
    "gsi2pk",
    "gsi2sk",
    "gsi3pk",
    "gsi3sk",
    "entityType",
)


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:20]}"


def sortable_id(prefix: str) -> str:
    """Time-prefixed id so `sk` ordering follows creation order."""
    return f"{prefix}_{int(time.time() * 1000):013d}{uuid.uuid4().hex[:8]}"


def strip_internal(item: dict[str, Any] | None) -> dict[str, Any] | None:
    if not item:
        return None
    out = dict(item)
    for k in INTERNAL_KEYS:
        out.pop(k, None)
    return out
