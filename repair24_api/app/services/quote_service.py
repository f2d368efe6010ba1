"""
Business logic for the quote lifecycle.

Contractors submit at most one quote per request; the customer then
accepts one, which rejects every other quote and assigns the request
to the winning contractor.  Each write happens in one SQLite
transaction that ends with ``advance_version`` on the request row, so
two concurrent acceptances of different quotes cannot both commit:
the loser gets ``ConflictError`` and nothing it wrote survives.
"""

import json
import logging
import sqlite3
from typing import Any, Dict, List, Optional

from ..core.db import ADMIN_ROLES, ROLE_CONTRACTOR, get_connection, utcnow_iso
from ..core.errors import ConflictError, NotFoundError
from ..schemas.job import JobCreate
from ..schemas.quote import QuoteCreate, QuoteRead, QuoteStatusUpdate
from ..schemas.service_request import TERMINAL_STATUSES, ServiceRequestRead
from .audit_service import AuditService
from .job_service import JobService
from .notification_service import NotificationService
from .service_request_service import advance_version, load_quotes, load_request


logger = logging.getLogger(__name__)

QUOTE_STATUSES = ("pending", "accepted", "rejected")


class QuoteService:
    """Submit, accept and reject quotes."""

    @classmethod
    async def submit_quote(cls, data: QuoteCreate, current_user: Dict[str, Any]) -> ServiceRequestRead:
        """Append a pending quote to a service request.

        Parameters
        ----------
        data : QuoteCreate
            Quote details.  ``contractor_id`` defaults to the caller when
            the caller is a contractor.
        current_user : dict
            Context from ``get_current_user``.

        Returns
        -------
        ServiceRequestRead
            The request including the new quote.

        Raises
        ------
        NotFoundError
            The request does not exist.
        ConflictError
            The contractor already quoted this request, or the request
            changed while the quote was being written.
        ValueError
            The request is completed or cancelled.
        """
        contractor_id = cls._resolve_contractor(data.contractor_id, current_user)
        conn = get_connection()
        try:
            request = load_request(conn, data.request_id)
            if request.status in TERMINAL_STATUSES:
                raise ValueError(f"Cannot quote on a {request.status} request")
            contractor = conn.execute(
                "SELECT id, full_name, role_id FROM users WHERE id = ?", (contractor_id,)
            ).fetchone()
            if not contractor or contractor["role_id"] != ROLE_CONTRACTOR:
                raise ValueError(f"User {contractor_id} is not a contractor")
            if any(q.contractor_id == contractor_id for q in request.quotes):
                raise ConflictError("Contractor has already submitted a quote for this request")
            now = utcnow_iso()
            try:
                conn.execute(
                    """
                    INSERT INTO quotes (request_id, position, contractor_id, amount, description,
                                        estimated_duration, warranty, materials, status, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, 'pending', ?, ?)
                    """,
                    (
                        data.request_id,
                        len(request.quotes),
                        contractor_id,
                        data.amount,
                        data.description,
                        data.estimated_duration,
                        data.warranty,
                        json.dumps(data.materials) if data.materials else None,
                        now,
                        now,
                    ),
                )
                # An in-progress request keeps its status
                fields = {"status": "assigned"} if request.status == "pending" else {}
                advance_version(conn, data.request_id, request.version, **fields)
                conn.commit()
            except sqlite3.IntegrityError:
                conn.rollback()
                raise ConflictError("Contractor has already submitted a quote for this request")
            except ConflictError:
                conn.rollback()
                raise
            updated = load_request(conn, data.request_id)
        finally:
            conn.close()
        logger.info(
            "Contractor %s quoted %.2f on request %s", contractor_id, data.amount, request.request_code
        )
        await NotificationService.notify(
            request.customer_id,
            "quote_received",
            "New quote received",
            f"{contractor['full_name'] or 'A contractor'} quoted ${data.amount:.2f} for {request.title}.",
            service_request_id=request.id,
            amount=data.amount,
            data={"contractor_id": contractor_id, "quote_index": len(request.quotes)},
            action_url=f"/request-service/quotes/{request.id}",
            action_label="View quotes",
        )
        await AuditService.record(
            current_user.get("user_id"), "submit_quote", "service_request", request.id,
            {"contractor_id": contractor_id, "amount": data.amount},
        )
        return updated

    @classmethod
    def _resolve_contractor(cls, contractor_id: Optional[int], current_user: Dict[str, Any]) -> int:
        role_id = current_user.get("role_id")
        if role_id == ROLE_CONTRACTOR:
            if contractor_id is not None and contractor_id != current_user.get("user_id"):
                raise PermissionError("Contractors can only quote for themselves")
            return current_user["user_id"]
        if role_id in ADMIN_ROLES:
            if contractor_id is None:
                raise ValueError("contractor_id is required")
            return contractor_id
        raise PermissionError("Only contractors can submit quotes")

    @classmethod
    async def update_quote_status(cls, data: QuoteStatusUpdate, current_user: Dict[str, Any]) -> ServiceRequestRead:
        """Accept, reject or reset the quote at ``data.quote_index``.

        Accepting marks the quote accepted, rejects all the others,
        assigns the request to the quote's contractor and opens a job
        for them.  Any job another contractor still holds on the request
        is cancelled.  The winner receives ``quote_accepted`` and
        ``job_assigned``; every other contractor whose quote changed
        receives ``quote_rejected``.  Rejecting or resetting touches
        only the one quote.

        Only the request's customer or an administrator may decide.
        ``data.expected_version``, when given, must match the request's
        current version.
        """
        if data.status not in QUOTE_STATUSES:
            raise ValueError("Status must be pending, accepted, or rejected")
        conn = get_connection()
        try:
            request = load_request(conn, data.request_id)
            if current_user.get("role_id") not in ADMIN_ROLES and (
                request.customer_id is None or request.customer_id != current_user.get("user_id")
            ):
                raise PermissionError("Only the customer can decide on quotes")
            if data.expected_version is not None and data.expected_version != request.version:
                raise ConflictError(
                    f"Service request {request.id} is at version {request.version}, not {data.expected_version}"
                )
            if not 0 <= data.quote_index < len(request.quotes):
                raise NotFoundError(f"Quote {data.quote_index} not found on request {request.id}")
            if request.status in TERMINAL_STATUSES:
                raise ValueError(f"Cannot change quotes on a {request.status} request")
            target = request.quotes[data.quote_index]
            now = utcnow_iso()
            changed: List[QuoteRead] = []
            job_id = None
            cancelled_jobs = 0
            try:
                if data.status == "accepted":
                    for quote in request.quotes:
                        new_status = "accepted" if quote.index == data.quote_index else "rejected"
                        if quote.status != new_status:
                            conn.execute(
                                "UPDATE quotes SET status = ?, updated_at = ? WHERE id = ?",
                                (new_status, now, quote.id),
                            )
                            changed.append(quote)
                    advance_version(
                        conn, request.id, request.version,
                        assigned_contractor_id=target.contractor_id, status="assigned",
                    )
                    # Only the assigned contractor keeps a live job on the request
                    cancelled_jobs = conn.execute(
                        """
                        UPDATE contractor_jobs SET status = 'cancelled'
                        WHERE service_request_id = ? AND contractor_id != ? AND status != 'cancelled'
                        """,
                        (request.id, target.contractor_id),
                    ).rowcount
                    if target.status != "accepted":
                        job_id = JobService.insert_job(
                            conn,
                            target.contractor_id,
                            JobCreate(
                                client_name=request.customer.full_name,
                                client_phone=request.customer.phone,
                                client_email=request.customer.email,
                                service=request.service_types[0],
                                description=request.description,
                                address=request.location.formatted_address,
                                amount=target.amount,
                                scheduled_at=request.preferred_datetime,
                                service_request_id=request.id,
                            ),
                        )
                else:
                    if target.status != data.status:
                        conn.execute(
                            "UPDATE quotes SET status = ?, updated_at = ? WHERE id = ?",
                            (data.status, now, target.id),
                        )
                        changed.append(target)
                    advance_version(conn, request.id, request.version)
                conn.commit()
            except ConflictError:
                conn.rollback()
                raise
            updated = load_request(conn, request.id)
            job = JobService.fetch_job(conn, target.contractor_id, job_id) if job_id else None
        finally:
            conn.close()

        logger.info(
            "Quote %s on request %s set to %s by user %s",
            data.quote_index, request.request_code, data.status, current_user.get("user_id"),
        )
        if cancelled_jobs:
            logger.info("Cancelled %d job(s) of the previous contractor on request %s", cancelled_jobs, request.request_code)
        for quote in changed:
            if quote.index == data.quote_index and data.status == "accepted":
                await NotificationService.notify(
                    quote.contractor_id,
                    "quote_accepted",
                    "Your quote was accepted",
                    f"Your quote of ${quote.amount:.2f} for {request.title} was accepted.",
                    priority="high",
                    service_request_id=request.id,
                    amount=quote.amount,
                    data={"quote_index": quote.index},
                )
            elif data.status in ("accepted", "rejected"):
                await NotificationService.notify(
                    quote.contractor_id,
                    "quote_rejected",
                    "Your quote was not selected",
                    f"The customer chose another offer for {request.title}.",
                    service_request_id=request.id,
                    amount=quote.amount,
                    data={"quote_index": quote.index},
                )
        if job is not None:
            await JobService.notify_assigned(job)
        await AuditService.record(
            current_user.get("user_id"), f"quote_{data.status}", "service_request", request.id,
            {"quote_index": data.quote_index, "contractor_id": target.contractor_id},
        )
        return updated

    @classmethod
    async def list_quotes(cls, request_id: int) -> List[QuoteRead]:
        conn = get_connection()
        try:
            if not conn.execute("SELECT 1 FROM service_requests WHERE id = ?", (request_id,)).fetchone():
                raise NotFoundError(f"Service request {request_id} not found")
            return load_quotes(conn, request_id)
        finally:
            conn.close()
