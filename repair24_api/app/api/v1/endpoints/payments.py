"""
Payment endpoints for API v1.

``/create-intent`` places a Stripe hold, ``/capture`` takes the money
once the customer confirms the work, ``/webhook`` receives Stripe's
status events and ``/{request_id}/sync`` reconciles a request with
Stripe by hand.
"""

from fastapi import APIRouter, Depends, Header, HTTPException, Path, Request, status

from repair24_api.app.core.db import ROLE_ADMIN, ROLE_CONTRACTOR, ROLE_SUPER_ADMIN
from repair24_api.app.core.errors import SERVICE_ERRORS, as_http_error
from repair24_api.app.core.security import get_current_user, is_admin, require_roles
from repair24_api.app.schemas.payment import (
    PaymentCapture,
    PaymentCaptureResult,
    PaymentIntentCreate,
    PaymentIntentRead,
    PaymentSyncResult,
)
from repair24_api.app.services.payment_service import PaymentService
from repair24_api.app.services.service_request_service import ServiceRequestService


router = APIRouter()


async def _check_customer(request_id: int, current_user: dict) -> None:
    """Only the request's customer (or staff) may pay for it.

    Requests submitted without an account have no customer to confirm
    completion, so only staff can take their payment.
    """
    if is_admin(current_user):
        return
    if current_user.get("role_id") == ROLE_CONTRACTOR:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Contractors cannot take payments")
    try:
        request = await ServiceRequestService.get_request(request_id)
    except SERVICE_ERRORS as e:
        raise as_http_error(e)
    if request.customer_id is None or request.customer_id != current_user.get("user_id"):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")


@router.post("/create-intent", response_model=PaymentIntentRead, status_code=status.HTTP_201_CREATED)
async def create_payment_intent(
    data: PaymentIntentCreate,
    current_user: dict = Depends(get_current_user),
) -> PaymentIntentRead:
    """Create a manual‑capture PaymentIntent for a service request.

    The returned ``client_secret`` is used by the browser to confirm
    the card.  The amount must lie within the configured bounds.
    """
    await _check_customer(data.service_request_id, current_user)
    try:
        return await PaymentService.create_payment_intent(data, current_user)
    except SERVICE_ERRORS as e:
        raise as_http_error(e)


@router.post("/capture", response_model=PaymentCaptureResult)
async def capture_payment(
    data: PaymentCapture,
    current_user: dict = Depends(get_current_user),
) -> PaymentCaptureResult:
    """Capture the held funds after the customer confirms completion.

    409 if already captured, 400 for a cancelled request or a foreign
    intent, 502 with Stripe's message when the capture is refused.
    """
    await _check_customer(data.service_request_id, current_user)
    try:
        return await PaymentService.capture_payment(data, current_user)
    except SERVICE_ERRORS as e:
        raise as_http_error(e)


@router.post("/webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: str = Header(None, alias="Stripe-Signature"),
) -> dict:
    """Receive Stripe events.  Authenticated by the webhook signature."""
    payload = await request.body()
    try:
        return await PaymentService.handle_webhook(payload, stripe_signature)
    except SERVICE_ERRORS as e:
        raise as_http_error(e)


@router.post("/{request_id}/sync", response_model=PaymentSyncResult)
async def sync_payment_status(
    request_id: int = Path(..., description="Service request ID"),
    current_user: dict = Depends(require_roles(ROLE_SUPER_ADMIN, ROLE_ADMIN)),
) -> PaymentSyncResult:
    try:
        return await PaymentService.sync_payment_status(request_id)
    except SERVICE_ERRORS as e:
        raise as_http_error(e)
