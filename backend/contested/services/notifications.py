from __future__ import annotations

from ..db.dynamodb.errors import DdbError
from ..observability.logging import get_logger
from ..repositories import notifications_repo

log = get_logger("notifications")


def notify(
    *,
    user_id: str | None,
    type: str,
    title: str,
    content: str,
    reference_type: str | None = None,
    reference_id: str | None = None,
) -> None:
    """Store a notification for polling. A storage failure is logged, never raised."""
    uid = str(user_id or "").strip()
    if not uid:
        return
    try:
        notifications_repo.create_notification(
            user_id=uid,
            type=type,
            title=title,
            content=content,
            reference_type=reference_type,
            reference_id=reference_id,
        )
    except DdbError as e:
        log.warning(
            "notification_not_saved",
            user_id=uid,
            notification_type=type,
            error=str(e),
            **e.log_fields(),
        )
