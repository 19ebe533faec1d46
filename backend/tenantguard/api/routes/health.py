"""Health check endpoints."""

from fastapi import APIRouter, Request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from tenantguard.config import settings

router = APIRouter()


@router.get("/health")
async def health():
    return {
        "status": "healthy",
        "service": settings.app_name,
        "version": settings.app_version,
    }


@router.get("/ready")
async def ready(request: Request):
    """Readiness probe: database connectivity and loaded rule counts."""
    try:
        async with request.app.state.db_engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        db_ok = True
    except (SQLAlchemyError, OSError):
        db_ok = False

    policies = await request.app.state.admin.list_policies()
    return {
        "ready": db_ok,
        "database": "connected" if db_ok else "unavailable",
        "policies": len(policies),
    }
