from __future__ import annotations

from functools import lru_cache
from typing import Any

import boto3
from botocore.config import Config

from ...settings import settings

# Throttling is retried by botocore (adaptive mode). Transaction conflicts
# are retried one level up in ddb_call.
_BOTO_CONFIG = Config(
    retries={"max_attempts": 8, "mode": "adaptive"},
    connect_timeout=2,
    read_timeout=8,
    user_agent_extra="contested-backend",
)


def _connection_kwargs() -> dict[str, Any]:
    kwargs: dict[str, Any] = {"region_name": settings.aws_region, "config": _BOTO_CONFIG}
    endpoint = str(settings.ddb_endpoint_url or "").strip()
    if endpoint:
        kwargs["endpoint_url"] = endpoint
    return kwargs


@lru_cache(maxsize=1)
def dynamodb_resource():
    """Table-level API; items come back with Python types (Decimal for numbers)."""
    return boto3.resource("dynamodb", **_connection_kwargs())


@lru_cache(maxsize=1)
def dynamodb_client():
    """Low-level API; used for TransactWriteItems, which the resource lacks."""
    return boto3.client("dynamodb", **_connection_kwargs())


def table_resource(table_name: str):
    return dynamodb_resource().Table(table_name)
