"""
Business logic for contractor jobs.

Jobs are the contractor's side of an accepted quote (or of a direct
assignment by staff).  Job status and payout status move together:

* ``completed`` stamps ``completed_at`` and puts the payout on ``held``;
* ``release_payment`` moves a ``held`` payout to ``released``.

When the customer confirms completion and the Stripe hold is captured,
the payment service releases the payout of the request's job directly
through ``release_for_request``.
"""

import logging
import sqlite3
from datetime import datetime
from typing import Any, Dict, Optional

from ..core.db import generate_id, get_connection, utcnow_iso
from ..core.errors import ConflictError, NotFoundError
from ..schemas.job import ContractorStats, JobCreate, JobList, JobRead, JobUpdate
from .audit_service import AuditService
from .notification_service import NotificationService


logger = logging.getLogger(__name__)

JOB_STATUSES = ("assigned", "accepted", "in_progress", "completed", "cancelled")

# Timestamp column stamped when a job enters each status
_STATUS_TIMESTAMPS = {
    "accepted": "accepted_at",
    "in_progress": "started_at",
    "completed": "completed_at",
}


def _row_to_job(row: sqlite3.Row) -> JobRead:
    return JobRead(**{key: row[key] for key in row.keys()})


class JobService:
    """Service for tracking contractor jobs and payouts."""

    @classmethod
    def insert_job(cls, conn: sqlite3.Connection, contractor_id: int, data: JobCreate) -> str:
        """Insert a job on an open connection without committing.

        Lets callers create the job in the same transaction as the
        change that caused it.
        """
        job_id = generate_id("job")
        conn.execute(
            """
            INSERT INTO contractor_jobs (
                id, contractor_id, service_request_id, client_name, client_phone, client_email,
                service, description, address, amount, status, payment_status, created_at, scheduled_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 'assigned', 'pending', ?, ?)
            """,
            (
                job_id,
                contractor_id,
                data.service_request_id,
                data.client_name,
                data.client_phone,
                data.client_email,
                data.service,
                data.description,
                data.address,
                data.amount,
                utcnow_iso(),
                data.scheduled_at.isoformat() if data.scheduled_at else None,
            ),
        )
        return job_id

    @classmethod
    async def create_job(cls, contractor_id: int, data: JobCreate, actor_id: Optional[int] = None) -> JobRead:
        """Assign a new job to a contractor and notify them."""
        conn = get_connection()
        try:
            contractor = conn.execute("SELECT id FROM users WHERE id = ?", (contractor_id,)).fetchone()
            if not contractor:
                raise NotFoundError(f"Contractor {contractor_id} not found")
            job_id = cls.insert_job(conn, contractor_id, data)
            conn.commit()
            job = cls.fetch_job(conn, contractor_id, job_id)
        finally:
            conn.close()
        logger.info("Job %s assigned to contractor %s (%.2f)", job_id, contractor_id, data.amount)
        await cls.notify_assigned(job)
        await AuditService.record(actor_id, "create", "job", job_id, {"contractor_id": contractor_id})
        return job

    @classmethod
    async def notify_assigned(cls, job: JobRead) -> None:
        await NotificationService.notify(
            job.contractor_id,
            "job_assigned",
            "New job assigned",
            f"You have been assigned a {job.service} job for {job.client_name} (${job.amount:.2f}).",
            priority="high",
            service_request_id=job.service_request_id,
            amount=job.amount,
            data={"job_id": job.id},
            action_url=f"/contractor/jobs/{job.id}",
            action_label="View job",
        )

    @classmethod
    def fetch_job(cls, conn: sqlite3.Connection, contractor_id: int, job_id: str) -> JobRead:
        row = conn.execute(
            "SELECT * FROM contractor_jobs WHERE id = ? AND contractor_id = ?",
            (job_id, contractor_id),
        ).fetchone()
        if not row:
            raise NotFoundError(f"Job {job_id} not found")
        return _row_to_job(row)

    @classmethod
    async def get_job(cls, contractor_id: int, job_id: str) -> JobRead:
        conn = get_connection()
        try:
            return cls.fetch_job(conn, contractor_id, job_id)
        finally:
            conn.close()

    @classmethod
    async def list_jobs(cls, contractor_id: int, status: Optional[str] = None) -> JobList:
        """Return the contractor's jobs newest first.

        ``stats`` counts all jobs per status regardless of ``status``.
        """
        conn = get_connection()
        try:
            query = "SELECT * FROM contractor_jobs WHERE contractor_id = ?"
            params: tuple = (contractor_id,)
            if status:
                query += " AND status = ?"
                params += (status,)
            query += " ORDER BY created_at DESC, rowid DESC"
            rows = conn.execute(query, params).fetchall()
            counts = conn.execute(
                "SELECT status, COUNT(*) AS c FROM contractor_jobs WHERE contractor_id = ? GROUP BY status",
                (contractor_id,),
            ).fetchall()
        finally:
            conn.close()
        stats: Dict[str, int] = {s: 0 for s in JOB_STATUSES}
        for row in counts:
            stats[row["status"]] = row["c"]
        stats["total"] = sum(stats[s] for s in JOB_STATUSES)
        return JobList(jobs=[_row_to_job(r) for r in rows], total=len(rows), stats=stats)

    @classmethod
    async def update_job(cls, contractor_id: int, job_id: str, data: JobUpdate) -> JobRead:
        """Change a job's status and/or notes.

        Entering ``accepted``, ``in_progress`` or ``completed`` stamps the
        matching timestamp.  Completing a job holds the payout and tells
        the customer of the linked request.  Completed and cancelled
        jobs cannot change status any more.
        """
        conn = get_connection()
        try:
            job = cls.fetch_job(conn, contractor_id, job_id)
            fields: Dict[str, Any] = {}
            if data.status and data.status != job.status:
                if job.status in ("completed", "cancelled"):
                    raise ValueError(f"Job is already {job.status}")
                fields["status"] = data.status
                stamp = _STATUS_TIMESTAMPS.get(data.status)
                if stamp:
                    fields[stamp] = utcnow_iso()
                if data.status == "completed":
                    fields["payment_status"] = "held"
            if data.notes:
                fields["notes"] = data.notes
            if fields:
                assignments = ", ".join(f"{name} = ?" for name in fields)
                conn.execute(
                    f"UPDATE contractor_jobs SET {assignments} WHERE id = ?",
                    tuple(fields.values()) + (job_id,),
                )
                conn.commit()
            updated = cls.fetch_job(conn, contractor_id, job_id)
            customer_id = None
            if fields.get("status") == "completed" and updated.service_request_id is not None:
                row = conn.execute(
                    "SELECT customer_id FROM service_requests WHERE id = ?",
                    (updated.service_request_id,),
                ).fetchone()
                customer_id = row["customer_id"] if row else None
        finally:
            conn.close()
        if "status" in fields:
            logger.info("Job %s: %s -> %s", job_id, job.status, fields["status"])
        if fields.get("status") == "completed":
            logger.info("Payout held for job %s: %.2f", job_id, updated.amount)
            await NotificationService.notify(
                customer_id,
                "job_completed",
                "Your job has been completed",
                f"The contractor marked your {updated.service} job as completed. "
                "Please confirm so the payment can be released.",
                priority="high",
                service_request_id=updated.service_request_id,
                amount=updated.amount,
                action_url=f"/request-service/dashboard/{updated.service_request_id}",
                action_label="Confirm completion",
            )
        return updated

    @classmethod
    async def release_payment(cls, contractor_id: int, job_id: str) -> JobRead:
        """Release a held payout.

        Raises ``NotFoundError`` for an unknown job and ``ConflictError``
        when the payout is not ``held`` or the job was cancelled.
        """
        conn = get_connection()
        try:
            job = cls.fetch_job(conn, contractor_id, job_id)
            if job.status == "cancelled":
                raise ConflictError(f"Job {job_id} was cancelled")
            if job.payment_status != "held":
                raise ConflictError(f"Payment for job {job_id} is not held (status: {job.payment_status})")
            cursor = conn.execute(
                """
                UPDATE contractor_jobs SET payment_status = 'released'
                WHERE id = ? AND payment_status = 'held' AND status != 'cancelled'
                """,
                (job_id,),
            )
            if cursor.rowcount == 0:
                raise ConflictError(f"Payment for job {job_id} was released concurrently")
            conn.commit()
            released = cls.fetch_job(conn, contractor_id, job_id)
        finally:
            conn.close()
        logger.info("Payout released for contractor %s, job %s: %.2f", contractor_id, job_id, released.amount)
        await NotificationService.notify(
            contractor_id,
            "payment_released",
            "Payment released",
            f"${released.amount:.2f} for job {job_id} has been released to you.",
            service_request_id=released.service_request_id,
            amount=released.amount,
            data={"job_id": job_id},
        )
        return released

    @classmethod
    def release_for_request(cls, conn: sqlite3.Connection, service_request_id: int, contractor_id: int) -> Optional[str]:
        """Complete and release the request's job on an open connection.

        Used when the customer's payment is captured: the customer has
        confirmed the work, so the job is marked completed if the
        contractor has not done so.  Returns the job id, or ``None`` when
        the request has no job.
        """
        row = conn.execute(
            """
            SELECT id, completed_at FROM contractor_jobs
            WHERE service_request_id = ? AND contractor_id = ? AND status != 'cancelled'
            ORDER BY created_at DESC LIMIT 1
            """,
            (service_request_id, contractor_id),
        ).fetchone()
        if not row:
            return None
        conn.execute(
            """
            UPDATE contractor_jobs
            SET status = 'completed', payment_status = 'released', completed_at = COALESCE(completed_at, ?)
            WHERE id = ?
            """,
            (utcnow_iso(), row["id"]),
        )
        return row["id"]

    @classmethod
    async def contractor_stats(cls, contractor_id: int) -> ContractorStats:
        """Summarise a contractor's jobs and earnings.

        ``total_earnings`` counts released payouts, ``held_payments``
        those awaiting customer confirmation and ``this_month_earnings``
        released payouts for jobs completed since the first of the
        current month (UTC).
        """
        conn = get_connection()
        try:
            rows = conn.execute(
                "SELECT status, payment_status, amount, completed_at FROM contractor_jobs WHERE contractor_id = ?",
                (contractor_id,),
            ).fetchall()
        finally:
            conn.close()
        month_start = datetime.utcnow().replace(day=1, hour=0, minute=0, second=0, microsecond=0).isoformat()
        released = [r for r in rows if r["payment_status"] == "released"]
        return ContractorStats(
            total_jobs=len(rows),
            completed_jobs=sum(1 for r in rows if r["status"] == "completed"),
            total_earnings=sum(r["amount"] for r in released),
            held_payments=sum(r["amount"] for r in rows if r["payment_status"] == "held"),
            this_month_earnings=sum(
                r["amount"] for r in released if r["completed_at"] and r["completed_at"] >= month_start
            ),
        )
