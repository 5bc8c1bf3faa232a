from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from ..auth.dependencies import require_user
from ..auth.models import AuthenticatedUser
from ..repositories import notifications_repo

router = APIRouter(tags=["notifications"])


@router.get("")
@router.get("/")
def list_notifications(
    unreadOnly: bool = Query(default=False),
    limit: int = Query(default=50, ge=1, le=100),
    nextToken: str | None = Query(default=None),
    user: AuthenticatedUser = Depends(require_user),
):
    items, token = notifications_repo.list_notifications(
        user_id=user.id,
        unread_only=unreadOnly,
        limit=limit,
        next_token=nextToken,
    )
    return {"data": items, "nextToken": token}


@router.post("/{notificationId}/read")
def mark_notification_read(notificationId: str, user: AuthenticatedUser = Depends(require_user)):
    return {"notification": notifications_repo.mark_read(user_id=user.id, notification_id=notificationId)}
