"""
Business logic for service requests.

A service request row holds the location and customer details inline;
its quotes live in the ``quotes`` table ordered by ``position``.  Every
write to a request increments its ``version`` column with a
compare‑and‑set ``UPDATE``, so two writers that read the same version
cannot both succeed (see ``advance_version``).
"""

import json
import logging
import sqlite3
from typing import Any, Dict, List, Optional, Tuple

from ..core.db import ADMIN_ROLES, ROLE_CONTRACTOR, get_connection, utcnow_iso
from ..core.errors import ConflictError, NotFoundError
from ..schemas.quote import QuoteRead
from ..schemas.service_request import (
    SERVICE_LABELS,
    TERMINAL_STATUSES,
    Coordinates,
    CustomerInfo,
    Location,
    ServiceRequestCreate,
    ServiceRequestRead,
)
from .audit_service import AuditService
from .contractor_service import ContractorService


logger = logging.getLogger(__name__)


def parse_address(formatted_address: str) -> Tuple[Optional[str], Optional[str], Optional[str]]:
    """Split ``"street, city, ST 12345, country"`` into city, state and zip.

    Addresses with fewer than three comma separated parts yield
    ``(None, None, None)``; a missing zip yields ``None`` for state and zip.
    """
    parts = [p.strip() for p in formatted_address.split(",")]
    if len(parts) < 3:
        return None, None, None
    city = parts[-3] or None
    state_zip = parts[-2].split()
    if len(state_zip) >= 2:
        return city, state_zip[0], state_zip[1]
    return city, None, None


def default_title(service_types: List[str]) -> str:
    return f"{SERVICE_LABELS.get(service_types[0], 'Service')} request"


def load_quotes(conn: sqlite3.Connection, request_id: int) -> List[QuoteRead]:
    rows = conn.execute(
        "SELECT * FROM quotes WHERE request_id = ? ORDER BY position",
        (request_id,),
    ).fetchall()
    return [
        QuoteRead(
            index=row["position"],
            id=row["id"],
            contractor_id=row["contractor_id"],
            amount=row["amount"],
            description=row["description"],
            estimated_duration=row["estimated_duration"],
            warranty=row["warranty"],
            materials=json.loads(row["materials"]) if row["materials"] else None,
            status=row["status"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
        for row in rows
    ]


def load_request(conn: sqlite3.Connection, request_id: int) -> ServiceRequestRead:
    """Read a request with its quotes or raise ``NotFoundError``."""
    row = conn.execute("SELECT * FROM service_requests WHERE id = ?", (request_id,)).fetchone()
    if not row:
        raise NotFoundError(f"Service request {request_id} not found")
    return ServiceRequestRead(
        id=row["id"],
        request_code=row["request_code"],
        title=row["title"],
        service_types=json.loads(row["service_types"]),
        description=row["description"],
        urgency_level=row["urgency_level"],
        status=row["status"],
        location=Location(
            formatted_address=row["formatted_address"],
            coordinates=Coordinates(lat=row["latitude"], lng=row["longitude"]),
            city=row["city"],
            state=row["state"],
            zip_code=row["zip_code"],
        ),
        customer=CustomerInfo(
            full_name=row["customer_name"],
            email=row["customer_email"],
            phone=row["customer_phone"],
            preferred_contact=row["preferred_contact"],
        ),
        customer_id=row["customer_id"],
        preferred_datetime=row["preferred_datetime"],
        quotes=load_quotes(conn, request_id),
        assigned_contractor_id=row["assigned_contractor_id"],
        payment_status=row["payment_status"],
        payment_intent_id=row["payment_intent_id"],
        version=row["version"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def advance_version(conn: sqlite3.Connection, request_id: int, version: int, **fields: Any) -> None:
    """Write ``fields`` to a request if it is still at ``version``.

    The version is incremented in the same statement.  Raises
    ``ConflictError`` when another writer got there first; the caller
    must roll back.
    """
    assignments = "".join(f"{name} = ?, " for name in fields)
    cursor = conn.execute(
        f"UPDATE service_requests SET {assignments}version = version + 1, updated_at = ? "
        "WHERE id = ? AND version = ?",
        tuple(fields.values()) + (utcnow_iso(), request_id, version),
    )
    if cursor.rowcount == 0:
        raise ConflictError(f"Service request {request_id} was modified concurrently; reload and retry")


def can_view(request: ServiceRequestRead, current_user: Optional[Dict[str, Any]]) -> bool:
    """Anonymous submissions are readable by id; others need the right role."""
    if request.customer_id is None:
        return True
    if not current_user:
        return False
    role_id = current_user.get("role_id")
    if role_id in ADMIN_ROLES or role_id == ROLE_CONTRACTOR:
        return True
    return request.customer_id == current_user.get("user_id")


class ServiceRequestService:
    """Create, read and update service requests."""

    @classmethod
    async def create_request(
        cls, data: ServiceRequestCreate, current_user: Optional[Dict[str, Any]] = None
    ) -> ServiceRequestRead:
        """Store a new service request.

        Missing coordinates are geocoded (requires a Google Maps key),
        missing city/state/zip are parsed from the formatted address and
        a missing title is derived from the first service type.  The
        request code ``REQ-nnnnn`` is derived from the row id.
        """
        location = data.location
        if location.coordinates is None:
            lat, lng = ContractorService.geocode(location.formatted_address)
        else:
            lat, lng = location.coordinates.lat, location.coordinates.lng
        city, state, zip_code = parse_address(location.formatted_address)
        customer_id = current_user.get("user_id") if current_user else None
        now = utcnow_iso()
        conn = get_connection()
        try:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO service_requests (
                    request_code, title, service_types, description, urgency_level, status,
                    formatted_address, latitude, longitude, city, state, zip_code,
                    customer_id, customer_name, customer_email, customer_phone, preferred_contact,
                    preferred_datetime, created_at, updated_at
                ) VALUES ('', ?, ?, ?, ?, 'pending', ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    data.title or default_title(data.service_types),
                    json.dumps(list(dict.fromkeys(data.service_types))),
                    data.description,
                    data.urgency_level,
                    location.formatted_address,
                    lat,
                    lng,
                    location.city or city,
                    location.state or state,
                    location.zip_code or zip_code,
                    customer_id,
                    data.customer.full_name,
                    data.customer.email,
                    data.customer.phone,
                    data.customer.preferred_contact,
                    data.preferred_datetime.isoformat() if data.preferred_datetime else None,
                    now,
                    now,
                ),
            )
            request_id = cursor.lastrowid
            request_code = f"REQ-{request_id:05d}"
            cursor.execute("UPDATE service_requests SET request_code = ? WHERE id = ?", (request_code, request_id))
            conn.commit()
            request = load_request(conn, request_id)
        finally:
            conn.close()
        logger.info("Service request %s created (%s)", request_code, ", ".join(data.service_types))
        await AuditService.record(
            user_id=customer_id,
            action="create",
            object_type="service_request",
            object_id=request_id,
            details={"request_code": request_code},
        )
        return request

    @classmethod
    async def get_request(cls, request_id: int) -> ServiceRequestRead:
        conn = get_connection()
        try:
            return load_request(conn, request_id)
        finally:
            conn.close()

    @classmethod
    async def list_requests(
        cls,
        current_user: Dict[str, Any],
        status: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[ServiceRequestRead]:
        """List requests visible to the user, newest first.

        Administrators see everything, contractors see open requests and
        the ones assigned to them, clients see their own.
        """
        where: List[str] = []
        params: List[Any] = []
        role_id = current_user.get("role_id")
        if role_id == ROLE_CONTRACTOR:
            where.append(
                "((assigned_contractor_id IS NULL AND status NOT IN ('completed', 'cancelled')) "
                "OR assigned_contractor_id = ?)"
            )
            params.append(current_user.get("user_id"))
        elif role_id not in ADMIN_ROLES:
            where.append("customer_id = ?")
            params.append(current_user.get("user_id"))
        if status:
            where.append("status = ?")
            params.append(status)
        query = "SELECT id FROM service_requests"
        if where:
            query += " WHERE " + " AND ".join(where)
        query += " ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?"
        params.extend([limit, offset])
        conn = get_connection()
        try:
            ids = [row["id"] for row in conn.execute(query, tuple(params)).fetchall()]
            return [load_request(conn, request_id) for request_id in ids]
        finally:
            conn.close()

    @classmethod
    async def update_status(
        cls,
        request_id: int,
        new_status: str,
        current_user: Dict[str, Any],
    ) -> ServiceRequestRead:
        """Move a request to ``new_status``.

        Administrators may set any status, the assigned contractor may
        move the work along and the customer may only cancel.  Completed
        and cancelled requests are final.
        """
        conn = get_connection()
        try:
            request = load_request(conn, request_id)
            role_id = current_user.get("role_id")
            user_id = current_user.get("user_id")
            if role_id not in ADMIN_ROLES:
                is_contractor = role_id == ROLE_CONTRACTOR and request.assigned_contractor_id == user_id
                is_owner = request.customer_id is not None and request.customer_id == user_id
                if not (is_contractor or (is_owner and new_status == "cancelled")):
                    raise PermissionError("Not allowed to change the status of this request")
            if request.status in TERMINAL_STATUSES:
                raise ValueError(f"Request is already {request.status}")
            try:
                advance_version(conn, request_id, request.version, status=new_status)
                conn.commit()
            except ConflictError:
                conn.rollback()
                raise
            updated = load_request(conn, request_id)
        finally:
            conn.close()
        logger.info("Service request %s: %s -> %s", request_id, request.status, new_status)
        await AuditService.record(
            user_id=current_user.get("user_id"),
            action="update_status",
            object_type="service_request",
            object_id=request_id,
            details={"from": request.status, "to": new_status},
        )
        return updated

    @classmethod
    async def delete_request(cls, request_id: int, current_user: Dict[str, Any]) -> None:
        conn = get_connection()
        try:
            request = load_request(conn, request_id)
            if current_user.get("role_id") not in ADMIN_ROLES and request.customer_id != current_user.get("user_id"):
                raise PermissionError("Only the owner or an administrator can delete a request")
            conn.execute("DELETE FROM service_requests WHERE id = ?", (request_id,))
            conn.commit()
        finally:
            conn.close()
        await AuditService.record(
            user_id=current_user.get("user_id"),
            action="delete",
            object_type="service_request",
            object_id=request_id,
        )
