"""
Service information endpoints for API v1.
"""

from fastapi import APIRouter

from repair24_api.app.core.config import settings
from repair24_api.app.core.db import get_connection


router = APIRouter()


@router.get("/health")
async def health() -> dict:
    """Liveness probe.  Also checks that the database answers."""
    conn = get_connection()
    try:
        conn.execute("SELECT 1").fetchone()
    finally:
        conn.close()
    return {"status": "ok", "service": settings.project_name, "version": settings.api_version}
