"""
Pydantic models for the hold-and-capture payment workflow.

Amounts are in major currency units (dollars); conversion to the
smallest unit happens only when talking to Stripe.
"""

from typing import List, Optional

from pydantic import BaseModel, Field

from .service_request import PaymentStatus, ServiceRequestRead


class PaymentIntentCreate(BaseModel):
    amount: float = Field(..., gt=0, examples=[200.0])
    service_request_id: int = Field(..., examples=[1])
    contractor_id: Optional[int] = None
    customer_id: Optional[int] = None
    description: Optional[str] = None


class PaymentIntentRead(BaseModel):
    client_secret: str
    payment_intent_id: str
    amount: float
    currency: str


class PaymentCapture(BaseModel):
    payment_intent_id: str
    service_request_id: int


class PaymentCaptureResult(BaseModel):
    success: bool = True
    status: str
    service_request: ServiceRequestRead


class PaymentSyncResult(BaseModel):
    service_request_id: int
    payment_intent_id: str
    provider_status: str
    payment_status: PaymentStatus


class ConnectAccountLink(BaseModel):
    """Onboarding link for a contractor's Stripe Express account."""

    account_id: str
    account_link_url: str


class ConnectAccountStatus(BaseModel):
    account_id: str
    charges_enabled: bool = False
    payouts_enabled: bool = False
    details_submitted: bool = False
    currently_due: List[str] = []
    eventually_due: List[str] = []
    past_due: List[str] = []
    pending_verification: List[str] = []
    disabled_reason: Optional[str] = None
    country: Optional[str] = None
    default_currency: Optional[str] = None


class ConnectLoginLink(BaseModel):
    url: str
