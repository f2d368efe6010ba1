"""
Business logic for users.

Users are customers (``client``), tradespeople (``contractor``) and
staff.  The first account registered on an empty database becomes the
super administrator so that a fresh installation can be managed
without touching the database by hand.
"""

import json
import logging
import sqlite3
from typing import List, Optional

from ..core.db import ROLE_CLIENT, ROLE_CONTRACTOR, ROLE_SUPER_ADMIN, get_connection
from ..core.errors import ConflictError, NotFoundError
from ..core.security import hash_password, verify_password
from ..schemas.user import UserCreate, UserRead
from .audit_service import AuditService


logger = logging.getLogger(__name__)

_USER_COLUMNS = (
    "u.id, u.email, u.full_name, u.phone, u.role_id, r.name AS role, u.services_offered, "
    "u.address, u.latitude, u.longitude, u.disabled"
)


def _row_to_user(row: sqlite3.Row) -> UserRead:
    return UserRead(
        id=row["id"],
        email=row["email"],
        full_name=row["full_name"],
        phone=row["phone"],
        role_id=row["role_id"],
        role=row["role"],
        services_offered=json.loads(row["services_offered"]) if row["services_offered"] else None,
        address=row["address"],
        latitude=row["latitude"],
        longitude=row["longitude"],
        disabled=bool(row["disabled"]),
    )


class UserService:
    """Service for registering, authenticating and listing users."""

    @classmethod
    async def create_user(cls, data: UserCreate) -> UserRead:
        """Register a new user.

        The password is hashed with PBKDF2 before it is stored.  A
        duplicate e‑mail raises ``ConflictError``.
        """
        logger.info("Registering %s %s", data.role, data.email)
        conn = get_connection()
        try:
            cursor = conn.cursor()
            row = cursor.execute("SELECT COUNT(*) AS count FROM users").fetchone()
            if row["count"] == 0:
                role_id = ROLE_SUPER_ADMIN
            elif data.role == "contractor":
                role_id = ROLE_CONTRACTOR
            else:
                role_id = ROLE_CLIENT
            try:
                cursor.execute(
                    """
                    INSERT INTO users (email, full_name, phone, password, role_id,
                                       services_offered, address, latitude, longitude)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        data.email.strip().lower(),
                        data.full_name,
                        data.phone,
                        hash_password(data.password),
                        role_id,
                        json.dumps(data.services_offered) if data.services_offered else None,
                        data.address,
                        data.latitude,
                        data.longitude,
                    ),
                )
            except sqlite3.IntegrityError:
                raise ConflictError(f"User with email {data.email} already exists")
            user_id = cursor.lastrowid
            conn.commit()
        finally:
            conn.close()
        await AuditService.record(
            user_id=None,
            action="create",
            object_type="user",
            object_id=user_id,
            details={"email": data.email, "role_id": role_id},
        )
        return await cls.get_user(user_id)

    @classmethod
    async def get_user(cls, user_id: int) -> UserRead:
        conn = get_connection()
        try:
            row = conn.execute(
                f"SELECT {_USER_COLUMNS} FROM users u JOIN roles r ON r.id = u.role_id WHERE u.id = ?",
                (user_id,),
            ).fetchone()
        finally:
            conn.close()
        if not row:
            raise NotFoundError(f"User {user_id} not found")
        return _row_to_user(row)

    @classmethod
    async def list_users(cls, role_id: Optional[int] = None) -> List[UserRead]:
        """Return all users, optionally limited to one role."""
        query = f"SELECT {_USER_COLUMNS} FROM users u JOIN roles r ON r.id = u.role_id"
        params: tuple = ()
        if role_id is not None:
            query += " WHERE u.role_id = ?"
            params = (role_id,)
        query += " ORDER BY u.id"
        conn = get_connection()
        try:
            rows = conn.execute(query, params).fetchall()
        finally:
            conn.close()
        return [_row_to_user(row) for row in rows]

    @classmethod
    async def authenticate(cls, email: str, password: str) -> Optional[UserRead]:
        """Check credentials.

        Returns the user when the password matches and the account is
        enabled, otherwise ``None``.
        """
        conn = get_connection()
        try:
            row = conn.execute(
                "SELECT id, password, disabled FROM users WHERE email = ?",
                (email.strip().lower(),),
            ).fetchone()
        finally:
            conn.close()
        if not row or row["disabled"]:
            return None
        if not verify_password(password, row["password"]):
            return None
        return await cls.get_user(row["id"])

    @classmethod
    async def set_role(cls, user_id: int, role_id: int) -> UserRead:
        """Change a user's role.  Used by super administrators to appoint staff."""
        conn = get_connection()
        try:
            cursor = conn.execute(
                "UPDATE users SET role_id = ?, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
                (role_id, user_id),
            )
            if cursor.rowcount == 0:
                raise NotFoundError(f"User {user_id} not found")
            conn.commit()
        finally:
            conn.close()
        logger.info("Assigned role %s to user %s", role_id, user_id)
        return await cls.get_user(user_id)
