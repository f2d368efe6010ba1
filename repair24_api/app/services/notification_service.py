"""
Business logic for user notifications.

Notifications are stored in the ``notifications`` table and delivered
in‑app only: the ``in_app`` channel is marked as sent the moment the
row is written, while ``web_push``, ``email`` and ``sms`` stay pending
for an external delivery worker.  Only the newest
``settings.notification_retention`` notifications are kept per user.
"""

import json
import logging
import sqlite3
from typing import Any, Dict, List, Optional

from ..core.config import settings
from ..core.db import generate_id, get_connection, utcnow_iso
from ..core.errors import NotFoundError
from ..schemas.notification import NotificationCreate, NotificationList, NotificationRead


logger = logging.getLogger(__name__)

_COLUMNS = (
    "id, user_id, type, title, message, priority, channels, sent_channels, status, read, data, "
    "service_request_id, amount, action_url, action_label, expires_at, created_at"
)


def _row_to_notification(row: sqlite3.Row) -> NotificationRead:
    return NotificationRead(
        id=row["id"],
        user_id=row["user_id"],
        type=row["type"],
        title=row["title"],
        message=row["message"],
        priority=row["priority"],
        channels=json.loads(row["channels"]),
        sent_channels=json.loads(row["sent_channels"]) if row["sent_channels"] else [],
        status=row["status"],
        read=bool(row["read"]),
        data=json.loads(row["data"]) if row["data"] else None,
        service_request_id=row["service_request_id"],
        amount=row["amount"],
        action_url=row["action_url"],
        action_label=row["action_label"],
        expires_at=row["expires_at"],
        created_at=row["created_at"],
    )


class NotificationService:
    """Create, list and acknowledge notifications."""

    @classmethod
    async def create(cls, data: NotificationCreate) -> NotificationRead:
        """Store a notification and prune the user's oldest ones.

        Parameters
        ----------
        data : NotificationCreate
            Recipient, type, text and optional payload.

        Returns
        -------
        NotificationRead
            The stored notification.  ``status`` is ``sent`` when the
            only requested channel is ``in_app``, otherwise ``pending``.

        Raises
        ------
        NotFoundError
            The recipient does not exist.
        """
        notification_id = generate_id("notif")
        sent_channels = ["in_app"] if "in_app" in data.channels else []
        delivery_status = "sent" if set(data.channels) <= {"in_app"} else "pending"
        conn = get_connection()
        try:
            if not conn.execute("SELECT 1 FROM users WHERE id = ?", (data.user_id,)).fetchone():
                raise NotFoundError(f"User {data.user_id} not found")
            conn.execute(
                f"INSERT INTO notifications ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    notification_id,
                    data.user_id,
                    data.type,
                    data.title,
                    data.message,
                    data.priority,
                    json.dumps(list(data.channels)),
                    json.dumps(sent_channels),
                    delivery_status,
                    0,
                    json.dumps(data.data, default=str) if data.data else None,
                    data.service_request_id,
                    data.amount,
                    data.action_url,
                    data.action_label,
                    data.expires_at.isoformat() if data.expires_at else None,
                    utcnow_iso(),
                ),
            )
            conn.execute(
                """
                DELETE FROM notifications
                WHERE user_id = ? AND id NOT IN (
                    SELECT id FROM notifications WHERE user_id = ?
                    ORDER BY created_at DESC, rowid DESC LIMIT ?
                )
                """,
                (data.user_id, data.user_id, settings.notification_retention),
            )
            conn.commit()
            row = conn.execute(f"SELECT {_COLUMNS} FROM notifications WHERE id = ?", (notification_id,)).fetchone()
        finally:
            conn.close()
        logger.info("Notification %s (%s) created for user %s", notification_id, data.type, data.user_id)
        return _row_to_notification(row)

    @classmethod
    async def notify(
        cls,
        user_id: Optional[int],
        type_: str,
        title: str,
        message: str,
        **extra: Any,
    ) -> Optional[NotificationRead]:
        """Shortcut used by other services.  Does nothing when there is no recipient."""
        if user_id is None:
            return None
        return await cls.create(
            NotificationCreate(user_id=user_id, type=type_, title=title, message=message, **extra)
        )

    @classmethod
    async def list_notifications(
        cls,
        user_id: Optional[int],
        unread_only: bool = False,
        limit: int = 20,
        page: int = 1,
    ) -> NotificationList:
        """Return a page of notifications, newest first.

        ``user_id=None`` lists every user's notifications (administrators).
        ``unread_count`` always counts all unread notifications in scope,
        regardless of the page.
        """
        where: List[str] = []
        params: List[Any] = []
        if user_id is not None:
            where.append("user_id = ?")
            params.append(user_id)
        list_where = list(where)
        if unread_only:
            list_where.append("read = 0")
        list_scope = (" WHERE " + " AND ".join(list_where)) if list_where else ""
        unread_scope = " WHERE " + " AND ".join(where + ["read = 0"])
        conn = get_connection()
        try:
            rows = conn.execute(
                f"SELECT {_COLUMNS} FROM notifications{list_scope} "
                "ORDER BY created_at DESC, rowid DESC LIMIT ? OFFSET ?",
                tuple(params) + (limit, (page - 1) * limit),
            ).fetchall()
            total = conn.execute(f"SELECT COUNT(*) AS c FROM notifications{list_scope}", tuple(params)).fetchone()["c"]
            unread = conn.execute(f"SELECT COUNT(*) AS c FROM notifications{unread_scope}", tuple(params)).fetchone()["c"]
        finally:
            conn.close()
        return NotificationList(
            notifications=[_row_to_notification(r) for r in rows],
            unread_count=unread,
            total=total,
            page=page,
            limit=limit,
        )

    @classmethod
    async def _get_owned(cls, conn: sqlite3.Connection, notification_id: str, user_id: Optional[int]) -> sqlite3.Row:
        row = conn.execute(f"SELECT {_COLUMNS} FROM notifications WHERE id = ?", (notification_id,)).fetchone()
        # Other users' notifications are reported as missing
        if not row or (user_id is not None and row["user_id"] != user_id):
            raise NotFoundError(f"Notification {notification_id} not found")
        return row

    @classmethod
    async def mark_read(cls, notification_id: str, user_id: Optional[int], read: bool = True) -> NotificationRead:
        conn = get_connection()
        try:
            await cls._get_owned(conn, notification_id, user_id)
            conn.execute("UPDATE notifications SET read = ? WHERE id = ?", (1 if read else 0, notification_id))
            conn.commit()
            row = conn.execute(f"SELECT {_COLUMNS} FROM notifications WHERE id = ?", (notification_id,)).fetchone()
        finally:
            conn.close()
        return _row_to_notification(row)

    @classmethod
    async def mark_all_read(cls, user_id: int) -> Dict[str, int]:
        conn = get_connection()
        try:
            cursor = conn.execute("UPDATE notifications SET read = 1 WHERE user_id = ? AND read = 0", (user_id,))
            conn.commit()
            updated = cursor.rowcount
        finally:
            conn.close()
        return {"updated": updated}

    @classmethod
    async def delete(cls, notification_id: str, user_id: Optional[int]) -> None:
        conn = get_connection()
        try:
            await cls._get_owned(conn, notification_id, user_id)
            conn.execute("DELETE FROM notifications WHERE id = ?", (notification_id,))
            conn.commit()
        finally:
            conn.close()
