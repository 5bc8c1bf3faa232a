from __future__ import annotations

from fastapi import APIRouter, Depends

from ..auth.dependencies import require_user
from ..auth.models import AuthenticatedUser
from ..services.dashboards import build_dashboard

router = APIRouter(tags=["dashboard"])


@router.get("")
def get_dashboard(user: AuthenticatedUser = Depends(require_user)):
    return build_dashboard(user)
