from __future__ import annotations

import random
import time
from dataclasses import dataclass
from typing import Any, Callable, TypeVar

from botocore.exceptions import BotoCoreError, ClientError

from ...observability.logging import get_logger
from .errors import (
    DdbConflict,
    DdbError,
    DdbInternal,
    DdbThrottled,
    DdbUnavailable,
    DdbValidation,
)

T = TypeVar("T")

log = get_logger("dynamodb")


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    max_attempts: int = 5
    base_delay_s: float = 0.05
    max_delay_s: float = 1.0

    def delay(self, attempt: int) -> float:
        # Full jitter: uniform in [0, min(cap, base * 2^(attempt-1))].
        ceiling = min(self.max_delay_s, self.base_delay_s * (2 ** max(0, attempt - 1)))
        return random.random() * ceiling


# Error code -> (error class, message, retryable)
_CLIENT_ERRORS: dict[str, tuple[type[DdbError], str, bool]] = {
    "ConditionalCheckFailedException": (DdbConflict, "Conditional write rejected", False),
    "ValidationException": (DdbValidation, "Invalid DynamoDB request", False),
    "ResourceNotFoundException": (DdbUnavailable, "DynamoDB table not found", False),
    "AccessDeniedException": (DdbUnavailable, "DynamoDB access denied", False),
    "UnrecognizedClientException": (DdbUnavailable, "DynamoDB access denied", False),
    "ProvisionedThroughputExceededException": (DdbThrottled, "DynamoDB throttled", True),
    "ThrottlingException": (DdbThrottled, "DynamoDB throttled", True),
    "RequestLimitExceeded": (DdbThrottled, "DynamoDB throttled", True),
    "TransactionConflictException": (DdbThrottled, "DynamoDB transaction conflict", True),
    "InternalServerError": (DdbUnavailable, "DynamoDB unavailable", True),
    "ServiceUnavailable": (DdbUnavailable, "DynamoDB unavailable", True),
}

# Per-item reasons inside TransactionCanceledException that clear on retry.
_CONTENDED_REASONS = frozenset(
    {"TransactionConflict", "ThrottlingError", "ProvisionedThroughputExceeded"}
)


def _cancellation_reasons(e: ClientError) -> list[str]:
    reasons = (e.response or {}).get("CancellationReasons") or []
    return [str((r or {}).get("Code") or "None") for r in reasons]


def _from_cancelled_transaction(e: ClientError, common: dict[str, Any]) -> DdbError:
    reasons = _cancellation_reasons(e)
    if _CONTENDED_REASONS.intersection(reasons):
        return DdbThrottled(
            message="Transaction contended with another write",
            retryable=True,
            cancellation_reasons=reasons,
            **common,
        )
    if "ConditionalCheckFailed" in reasons:
        return DdbConflict(
            message="Transaction condition failed",
            cancellation_reasons=reasons,
            **common,
        )
    return DdbValidation(message="Transaction was cancelled", cancellation_reasons=reasons, **common)


def map_error(
    exc: Exception,
    *,
    operation: str,
    table_name: str | None = None,
    key: dict[str, Any] | None = None,
) -> DdbError:
    """Translate a botocore failure into the DdbError hierarchy."""
    if isinstance(exc, DdbError):
        return exc

    common: dict[str, Any] = {"operation": operation, "table_name": table_name, "key": key, "cause": exc}

    if isinstance(exc, ClientError):
        response = exc.response or {}
        code = str((response.get("Error") or {}).get("Code") or "")
        common["aws_request_id"] = (response.get("ResponseMetadata") or {}).get("RequestId")

        if code == "TransactionCanceledException":
            return _from_cancelled_transaction(exc, common)
        known = _CLIENT_ERRORS.get(code)
        if known:
            cls, message, retryable = known
            return cls(message=message, retryable=retryable, **common)
        return DdbInternal(message=f"DynamoDB request failed ({code or 'ClientError'})", **common)

    if isinstance(exc, BotoCoreError):
        # Connection resets, endpoint timeouts and similar transport failures.
        return DdbUnavailable(message="DynamoDB connection failed", retryable=True, **common)

    return DdbInternal(message="Unexpected DynamoDB error", **common)


def ddb_call(
    operation: str,
    fn: Callable[[], T],
    *,
    table_name: str | None = None,
    key: dict[str, Any] | None = None,
    retry_policy: RetryPolicy | None = None,
) -> T:
    """
    Run one DynamoDB operation, retrying throttling and transaction contention.

    Conditional failures and validation errors are raised on the first attempt.
    """
    policy = retry_policy or RetryPolicy()
    attempts = max(1, int(policy.max_attempts))

    attempt = 1
    while True:
        try:
            return fn()
        except Exception as e:  # noqa: BLE001
            mapped = map_error(e, operation=operation, table_name=table_name, key=key)
            if not mapped.retryable or attempt >= attempts:
                if mapped is e:
                    raise
                raise mapped from e
            log.info("ddb_retry", operation=operation, attempt=attempt, error_type=type(mapped).__name__)
            time.sleep(policy.delay(attempt))
            attempt += 1
