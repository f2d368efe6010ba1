"""
Audit log endpoints for API v1.

Super administrators can review who changed what: quote decisions,
status changes, payment captures and webhook updates.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from repair24_api.app.core.db import ROLE_SUPER_ADMIN
from repair24_api.app.core.security import require_roles
from repair24_api.app.schemas.audit import AuditLogRead
from repair24_api.app.services.audit_service import AuditService


router = APIRouter()


@router.get("/logs", response_model=List[AuditLogRead])
async def list_audit_logs(
    user_id: Optional[int] = Query(None, description="Filter by acting user ID"),
    object_type: Optional[str] = Query(None, description="Filter by object type (service_request, payment, job, ...)"),
    action: Optional[str] = Query(None, description="Filter by action"),
    start_date: Optional[str] = Query(None, description="Start date (ISO format)"),
    end_date: Optional[str] = Query(None, description="End date (ISO format)"),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    current_user: dict = Depends(require_roles(ROLE_SUPER_ADMIN)),
) -> List[AuditLogRead]:
    """Audit records, newest first."""
    return await AuditService.list_logs(
        user_id=user_id,
        object_type=object_type,
        action=action,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
        offset=offset,
    )
