"""
Audit service for recording and querying system actions.

Every state change that matters to support staff (a quote accepted, a
payment captured, a request cancelled) is written to the ``audit_logs``
table.  Writing an audit record never blocks the business operation:
``record`` logs a warning and carries on when the insert fails.
Only super administrators can read the log.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from typing import Any, Dict, List, Optional

from ..core.db import get_connection


logger = logging.getLogger(__name__)


class AuditService:
    """Service class for writing and retrieving audit logs."""

    @classmethod
    async def log(
        cls,
        user_id: Optional[int],
        action: str,
        object_type: str,
        object_id: Optional[Any] = None,
        details: Optional[dict] = None,
    ) -> None:
        """Insert a new audit record.

        Parameters
        ----------
        user_id : Optional[int]
            ID of the acting user.  ``None`` for system actions such as
            Stripe webhooks.
        action : str
            Short verb, e.g. ``"create"``, ``"accept_quote"``, ``"capture"``.
        object_type : str
            Type of object affected (``service_request``, ``job``, ...).
        object_id : Optional[Any]
            Identifier of the affected object.  Stored as text because
            jobs and notifications use string ids.
        details : Optional[dict]
            Additional structured data, stored as JSON.
        """
        conn = get_connection()
        try:
            details_json = json.dumps(details, default=str) if details else None
            conn.execute(
                """
                INSERT INTO audit_logs (user_id, action, object_type, object_id, details)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    user_id,
                    action,
                    object_type,
                    str(object_id) if object_id is not None else None,
                    details_json,
                ),
            )
            conn.commit()
        finally:
            conn.close()

    @classmethod
    async def record(
        cls,
        user_id: Optional[int],
        action: str,
        object_type: str,
        object_id: Optional[Any] = None,
        details: Optional[dict] = None,
    ) -> None:
        """Like ``log`` but a database failure is logged instead of raised."""
        try:
            await cls.log(user_id, action, object_type, object_id, details)
        except sqlite3.Error as e:
            logger.warning("Failed to write audit record %s %s %s: %s", action, object_type, object_id, e)

    @classmethod
    async def list_logs(
        cls,
        user_id: Optional[int] = None,
        object_type: Optional[str] = None,
        action: Optional[str] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Dict[str, Any]]:
        """Retrieve audit records with optional filters and pagination.

        Date filters accept ISO date strings and apply to the
        ``timestamp`` column.  Newest records come first.
        """
        conn = get_connection()
        try:
            where_clauses: List[str] = []
            params: List[Any] = []
            if user_id is not None:
                where_clauses.append("user_id = ?")
                params.append(user_id)
            if object_type:
                where_clauses.append("object_type = ?")
                params.append(object_type)
            if action:
                where_clauses.append("action = ?")
                params.append(action)
            if start_date:
                where_clauses.append("timestamp >= ?")
                params.append(start_date)
            if end_date:
                where_clauses.append("timestamp <= ?")
                params.append(end_date)
            query = "SELECT id, user_id, action, object_type, object_id, timestamp, details FROM audit_logs"
            if where_clauses:
                query += " WHERE " + " AND ".join(where_clauses)
            query += " ORDER BY timestamp DESC, id DESC LIMIT ? OFFSET ?"
            params.extend([limit, offset])
            rows = conn.execute(query, tuple(params)).fetchall()
            logs = []
            for row in rows:
                details_data = None
                if row["details"]:
                    try:
                        details_data = json.loads(row["details"])
                    except json.JSONDecodeError:
                        details_data = row["details"]
                logs.append(
                    {
                        "id": row["id"],
                        "user_id": row["user_id"],
                        "action": row["action"],
                        "object_type": row["object_type"],
                        "object_id": row["object_id"],
                        "timestamp": row["timestamp"],
                        "details": details_data,
                    }
                )
            return logs
        finally:
            conn.close()
