from __future__ import annotations

from fastapi import APIRouter

from ..settings import settings

router = APIRouter()


@router.get("/", tags=["health"])
def health():
    return {
        "message": "Contested NIL Marketplace API",
        "version": "1.0.0",
        "status": "running",
        "environment": settings.normalized_environment,
        "dynamodb": "configured" if settings.ddb_table_name else "missing",
        "stripe": "configured" if settings.stripe_configured else "missing",
        "supabase": "configured" if settings.supabase_configured else "missing",
    }
