"""
Notification endpoints for API v1.

Users read and acknowledge their own notifications.  Administrators
can list anyone's and create notifications by hand (for example a
``system_update`` announcement).  Clients poll ``GET /notifications/``
for new entries.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, status

from repair24_api.app.core.db import ROLE_ADMIN, ROLE_SUPER_ADMIN
from repair24_api.app.core.errors import SERVICE_ERRORS, as_http_error
from repair24_api.app.core.security import get_current_user, is_admin, require_roles
from repair24_api.app.schemas.notification import (
    NotificationCreate,
    NotificationList,
    NotificationRead,
    NotificationUpdate,
)
from repair24_api.app.services.notification_service import NotificationService


router = APIRouter()


def _scope(current_user: dict) -> Optional[int]:
    """``None`` (no ownership restriction) for admins, else the caller's id."""
    return None if is_admin(current_user) else current_user.get("user_id")


@router.get("/", response_model=NotificationList)
async def list_notifications(
    user_id: Optional[int] = Query(None, description="Administrators only: whose notifications to list"),
    unread_only: bool = Query(False),
    limit: int = Query(20, ge=1, le=100),
    page: int = Query(1, ge=1),
    current_user: dict = Depends(get_current_user),
) -> NotificationList:
    """List notifications, newest first, with the unread count.

    Non‑administrators always get their own notifications whatever
    ``user_id`` says.  Administrators get everyone's unless they name a
    user.
    """
    target = user_id if is_admin(current_user) else current_user.get("user_id")
    return await NotificationService.list_notifications(target, unread_only=unread_only, limit=limit, page=page)


@router.post("/", response_model=NotificationRead, status_code=status.HTTP_201_CREATED)
async def create_notification(
    notification: NotificationCreate,
    current_user: dict = Depends(require_roles(ROLE_SUPER_ADMIN, ROLE_ADMIN)),
) -> NotificationRead:
    """Send a notification by hand.  404 when the recipient does not exist."""
    try:
        return await NotificationService.create(notification)
    except SERVICE_ERRORS as e:
        raise as_http_error(e)


@router.patch("/{notification_id}", response_model=NotificationRead)
async def update_notification(
    update: NotificationUpdate,
    notification_id: str = Path(..., description="Notification ID"),
    current_user: dict = Depends(get_current_user),
) -> NotificationRead:
    try:
        return await NotificationService.mark_read(notification_id, _scope(current_user), read=update.read)
    except SERVICE_ERRORS as e:
        raise as_http_error(e)


@router.post("/mark-all-read")
async def mark_all_read(current_user: dict = Depends(get_current_user)) -> dict:
    return await NotificationService.mark_all_read(current_user.get("user_id"))


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_notification(
    notification_id: str = Path(..., description="Notification ID"),
    current_user: dict = Depends(get_current_user),
) -> None:
    try:
        await NotificationService.delete(notification_id, _scope(current_user))
    except SERVICE_ERRORS as e:
        raise as_http_error(e)
