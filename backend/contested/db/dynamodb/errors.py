from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(slots=True)
class DdbError(Exception):
    """A DynamoDB failure mapped out of botocore.

    Repositories translate the ones they expect (a conditional put losing a
    race becomes Conflict, for example); anything else reaches the app
    handler and is rendered with the status below.
    """

    message: str
    operation: str | None = None
    table_name: str | None = None
    key: dict[str, Any] | None = None
    aws_request_id: str | None = None
    retryable: bool = False
    cause: Exception | None = None
    # One reason code per transact item ("None" for items that passed).
    cancellation_reasons: list[str] | None = None

    status_code = 500
    title = "Storage Error"

    def __str__(self) -> str:
        return self.message

    def log_fields(self) -> dict[str, Any]:
        out = {
            "error_type": type(self).__name__,
            "operation": self.operation,
            "table": self.table_name,
            "aws_request_id": self.aws_request_id,
            "retryable": self.retryable,
            "cancellation_reasons": self.cancellation_reasons,
        }
        return {k: v for k, v in out.items() if v is not None}


@dataclass(slots=True)
class DdbNotFound(DdbError):
    status_code = 404
    title = "Not Found"


@dataclass(slots=True)
class DdbConflict(DdbError):
    status_code = 409
    title = "Conflict"


@dataclass(slots=True)
class DdbValidation(DdbError):
    # Bad expressions and tampered pagination cursors.
    status_code = 400
    title = "Bad Request"


@dataclass(slots=True)
class DdbThrottled(DdbError):
    status_code = 503
    title = "Service Unavailable"


@dataclass(slots=True)
class DdbUnavailable(DdbError):
    status_code = 503
    title = "Service Unavailable"


@dataclass(slots=True)
class DdbInternal(DdbError):
    pass
