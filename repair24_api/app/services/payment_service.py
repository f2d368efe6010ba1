"""
Business logic for the hold‑and‑capture payment workflow.

When the customer accepts a quote a Stripe PaymentIntent is created
with ``capture_method="manual"``: the card is authorised and the funds
are held, but nothing moves until the customer confirms the work is
done and the intent is captured.  The request's ``payment_status``
mirrors the intent:

=====================  ==============================================
``pending``            intent created, card not yet authorised
``authorized``         funds held (``requires_capture``)
``captured``           funds taken (``succeeded``)
``cancelled``          hold released without capture
``failed``             authorisation or capture failed
=====================  ==============================================

Stripe is reached only through the ``_``‑prefixed classmethods so the
rest of the module deals in plain values.
"""

import logging
from typing import Any, Dict, Optional, Tuple

import stripe

from ..core.config import settings
from ..core.db import get_connection, utcnow_iso
from ..core.errors import ConflictError, PaymentProviderError
from ..schemas.payment import (
    PaymentCapture,
    PaymentCaptureResult,
    PaymentIntentCreate,
    PaymentIntentRead,
    PaymentSyncResult,
)
from .audit_service import AuditService
from .job_service import JobService
from .notification_service import NotificationService
from .service_request_service import load_request


logger = logging.getLogger(__name__)

# Webhook event type -> local payment status
WEBHOOK_STATUS_MAP = {
    "payment_intent.amount_capturable_updated": "authorized",
    "payment_intent.succeeded": "captured",
    "payment_intent.payment_failed": "failed",
    "payment_intent.canceled": "cancelled",
}

# Webhooks may arrive out of order; a request never leaves these
FINAL_PAYMENT_STATUSES = ("captured", "cancelled")

# PaymentIntent.status -> local payment status
INTENT_STATUS_MAP = {
    "requires_payment_method": "failed",
    "requires_confirmation": "pending",
    "requires_action": "pending",
    "processing": "pending",
    "requires_capture": "authorized",
    "succeeded": "captured",
    "canceled": "cancelled",
}


def to_minor_units(amount: float) -> int:
    """Convert dollars to cents."""
    return int(round(amount * 100))


def provider_field(obj: Any, name: str, default: Any = None) -> Any:
    """Read a key from a Stripe object or a plain mapping."""
    if name in obj and obj[name] is not None:
        return obj[name]
    return default


def _set_payment_fields(request_id: int, unless: Tuple[str, ...] = (), **fields: Any) -> bool:
    """Write provider‑reported payment fields to a request.

    The write is skipped when the request's current ``payment_status``
    is one of ``unless``.  It bumps ``version`` so that any client
    holding the old version sees the change.  Returns whether a row
    was written.
    """
    assignments = "".join(f"{name} = ?, " for name in fields)
    guard = ""
    if unless:
        guard = " AND payment_status NOT IN (" + ", ".join("?" for _ in unless) + ")"
    conn = get_connection()
    try:
        cursor = conn.execute(
            f"UPDATE service_requests SET {assignments}version = version + 1, updated_at = ? WHERE id = ?{guard}",
            tuple(fields.values()) + (utcnow_iso(), request_id) + tuple(unless),
        )
        conn.commit()
        written = cursor.rowcount > 0
    finally:
        conn.close()
    return written


class PaymentService:
    """Create, capture and reconcile Stripe payment holds."""

    # ------------------------------------------------------------------
    # Stripe calls
    # ------------------------------------------------------------------

    @classmethod
    def _configure(cls) -> None:
        if not settings.stripe_secret_key:
            raise PaymentProviderError("Stripe is not configured")
        stripe.api_key = settings.stripe_secret_key

    @classmethod
    def _create_intent(cls, amount_cents: int, metadata: Dict[str, str], description: Optional[str]) -> Any:
        cls._configure()
        return stripe.PaymentIntent.create(
            amount=amount_cents,
            currency=settings.payment_currency,
            capture_method="manual",
            description=description,
            metadata=metadata,
        )

    @classmethod
    def _capture_intent(cls, payment_intent_id: str) -> Any:
        cls._configure()
        return stripe.PaymentIntent.capture(payment_intent_id)

    @classmethod
    def _retrieve_intent(cls, payment_intent_id: str) -> Any:
        cls._configure()
        return stripe.PaymentIntent.retrieve(payment_intent_id)

    @classmethod
    def _construct_event(cls, payload: bytes, signature: Optional[str]) -> Any:
        return stripe.Webhook.construct_event(payload, signature, settings.stripe_webhook_secret)

    @staticmethod
    def _provider_message(error: stripe.StripeError) -> str:
        return error.user_message or str(error)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    @classmethod
    async def create_payment_intent(cls, data: PaymentIntentCreate, current_user: Dict[str, Any]) -> PaymentIntentRead:
        """Place a hold for ``data.amount`` against a service request.

        Raises
        ------
        ValueError
            Amount outside the configured bounds, or the request is
            cancelled.
        NotFoundError
            Unknown service request.
        ConflictError
            The request's payment was already captured.
        PaymentProviderError
            Stripe refused to create the intent.
        """
        if not settings.payment_min_amount <= data.amount <= settings.payment_max_amount:
            raise ValueError(
                f"Amount must be between {settings.payment_min_amount:.2f} and {settings.payment_max_amount:.2f}"
            )
        conn = get_connection()
        try:
            request = load_request(conn, data.service_request_id)
        finally:
            conn.close()
        if request.status == "cancelled":
            raise ValueError("Cannot take payment for a cancelled request")
        if request.payment_status == "captured":
            raise ConflictError("Payment for this request was already captured")

        contractor_id = data.contractor_id or request.assigned_contractor_id
        customer_id = data.customer_id or request.customer_id or current_user.get("user_id")
        metadata = {
            "service_request_id": str(request.id),
            "request_code": request.request_code,
            "contractor_id": str(contractor_id or ""),
            "customer_id": str(customer_id or ""),
        }
        try:
            intent = cls._create_intent(
                to_minor_units(data.amount),
                metadata,
                data.description or f"{request.title} ({request.request_code})",
            )
        except stripe.StripeError as e:
            message = cls._provider_message(e)
            logger.error("Creating payment intent for request %s failed: %s", request.id, message)
            raise PaymentProviderError(message) from e

        _set_payment_fields(request.id, payment_intent_id=intent["id"], payment_status="pending")
        logger.info("Payment intent %s created for request %s (%.2f)", intent["id"], request.request_code, data.amount)
        await AuditService.record(
            current_user.get("user_id"), "create_intent", "payment", intent["id"],
            {"service_request_id": request.id, "amount": data.amount},
        )
        return PaymentIntentRead(
            client_secret=intent["client_secret"],
            payment_intent_id=intent["id"],
            amount=data.amount,
            currency=settings.payment_currency,
        )

    @classmethod
    async def capture_payment(cls, data: PaymentCapture, current_user: Optional[Dict[str, Any]] = None) -> PaymentCaptureResult:
        """Capture the held funds once the customer confirms completion.

        On success the request becomes ``completed`` with payment
        ``captured``, the contractor's job payout is released and the
        contractor receives ``payment_released``.  When Stripe refuses,
        the request's payment status becomes ``failed`` and
        ``PaymentProviderError`` carries Stripe's message.
        """
        conn = get_connection()
        try:
            request = load_request(conn, data.service_request_id)
        finally:
            conn.close()
        if request.payment_status == "captured":
            raise ConflictError("Payment already captured")
        if request.status == "cancelled":
            raise ValueError("Cannot capture payment for a cancelled request")
        if request.payment_intent_id and request.payment_intent_id != data.payment_intent_id:
            raise ValueError("Payment intent does not belong to this request")

        try:
            intent = cls._capture_intent(data.payment_intent_id)
        except stripe.StripeError as e:
            message = cls._provider_message(e)
            logger.error("Capturing %s for request %s failed: %s", data.payment_intent_id, request.id, message)
            # A concurrent capture that won keeps its status
            _set_payment_fields(
                request.id, unless=("captured",),
                payment_intent_id=data.payment_intent_id, payment_status="failed",
            )
            await AuditService.record(
                current_user.get("user_id") if current_user else None,
                "capture_failed", "payment", data.payment_intent_id, {"error": message},
            )
            raise PaymentProviderError(message) from e

        amount = (provider_field(intent, "amount_received") or provider_field(intent, "amount") or 0) / 100
        conn = get_connection()
        try:
            conn.execute(
                """
                UPDATE service_requests
                SET status = 'completed', payment_status = 'captured', payment_intent_id = ?,
                    version = version + 1, updated_at = ?
                WHERE id = ?
                """,
                (data.payment_intent_id, utcnow_iso(), request.id),
            )
            job_id = None
            if request.assigned_contractor_id is not None:
                job_id = JobService.release_for_request(conn, request.id, request.assigned_contractor_id)
            conn.commit()
            updated = load_request(conn, request.id)
        finally:
            conn.close()

        if not amount:
            accepted = [q for q in request.quotes if q.status == "accepted"]
            amount = accepted[0].amount if accepted else 0.0
        logger.info("Captured %s for request %s (%.2f)", data.payment_intent_id, request.request_code, amount)
        await NotificationService.notify(
            request.assigned_contractor_id,
            "payment_released",
            "Payment released",
            f"The customer confirmed {request.title}; ${amount:.2f} has been released to you.",
            priority="high",
            service_request_id=request.id,
            amount=amount,
            data={"payment_intent_id": data.payment_intent_id, "job_id": job_id},
        )
        await AuditService.record(
            current_user.get("user_id") if current_user else None,
            "capture", "payment", data.payment_intent_id,
            {"service_request_id": request.id, "amount": amount},
        )
        return PaymentCaptureResult(success=True, status=intent["status"], service_request=updated)

    @classmethod
    async def handle_webhook(cls, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """Apply a Stripe webhook event to the matching request.

        The signature is verified against ``settings.stripe_webhook_secret``;
        an invalid signature or payload raises ``ValueError``.  Events
        that are not payment intent status changes, or whose intent has
        no ``service_request_id`` metadata, are acknowledged and ignored.
        Stripe does not order its events, so a request whose payment is
        already ``captured`` or ``cancelled`` keeps that status.
        """
        if not settings.stripe_webhook_secret:
            raise PaymentProviderError("Stripe webhook secret is not configured")
        if not signature:
            raise ValueError("Invalid signature")
        try:
            event = cls._construct_event(payload, signature)
        except stripe.SignatureVerificationError as e:
            logger.warning("Rejected webhook with invalid signature: %s", e)
            raise ValueError("Invalid signature") from e
        except ValueError as e:
            raise ValueError("Invalid payload") from e

        event_type = event["type"]
        payment_status = WEBHOOK_STATUS_MAP.get(event_type)
        if payment_status is None:
            logger.info("Ignoring webhook event %s", event_type)
            return {"received": True, "type": event_type}
        intent = event["data"]["object"]
        request_id = provider_field(provider_field(intent, "metadata", {}), "service_request_id")
        if not request_id:
            logger.warning("Webhook %s for %s carries no service request", event_type, provider_field(intent, "id"))
            return {"received": True, "type": event_type}

        conn = get_connection()
        try:
            row = conn.execute(
                "SELECT payment_status FROM service_requests WHERE id = ?", (int(request_id),)
            ).fetchone()
        finally:
            conn.close()
        if not row:
            logger.warning("Webhook %s refers to unknown service request %s", event_type, request_id)
            return {"received": True, "type": event_type}

        written = row["payment_status"] not in FINAL_PAYMENT_STATUSES and _set_payment_fields(
            int(request_id), unless=FINAL_PAYMENT_STATUSES,
            payment_intent_id=intent["id"], payment_status=payment_status,
        )
        if not written:
            current = await cls._current_payment_status(int(request_id))
            logger.info(
                "Webhook %s ignored: request %s payment is already %s", event_type, request_id, current,
            )
            return {"received": True, "type": event_type, "payment_status": current}
        logger.info("Webhook %s: request %s payment -> %s", event_type, request_id, payment_status)
        await AuditService.record(
            None, "webhook", "payment", intent["id"],
            {"event": event_type, "service_request_id": int(request_id), "payment_status": payment_status},
        )
        return {"received": True, "type": event_type, "payment_status": payment_status}

    @classmethod
    async def _current_payment_status(cls, request_id: int) -> Optional[str]:
        conn = get_connection()
        try:
            row = conn.execute("SELECT payment_status FROM service_requests WHERE id = ?", (request_id,)).fetchone()
        finally:
            conn.close()
        return row["payment_status"] if row else None

    @classmethod
    async def sync_payment_status(cls, request_id: int) -> PaymentSyncResult:
        """Overwrite the local payment status with Stripe's view of the intent."""
        conn = get_connection()
        try:
            request = load_request(conn, request_id)
        finally:
            conn.close()
        if not request.payment_intent_id:
            raise ValueError("Service request has no payment intent")
        try:
            intent = cls._retrieve_intent(request.payment_intent_id)
        except stripe.StripeError as e:
            message = cls._provider_message(e)
            logger.error("Retrieving %s failed: %s", request.payment_intent_id, message)
            raise PaymentProviderError(message) from e
        provider_status = intent["status"]
        payment_status = INTENT_STATUS_MAP.get(provider_status, request.payment_status)
        if payment_status != request.payment_status:
            _set_payment_fields(request_id, payment_status=payment_status)
            logger.info(
                "Request %s payment status reconciled: %s -> %s",
                request_id, request.payment_status, payment_status,
            )
        return PaymentSyncResult(
            service_request_id=request_id,
            payment_intent_id=request.payment_intent_id,
            provider_status=provider_status,
            payment_status=payment_status,
        )
