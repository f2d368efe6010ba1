"""
Pydantic models for service requests.

A service request is a customer's submitted job.  It carries where the
work is, who asked for it, the quotes contractors have sent and the
payment bookkeeping for the hold placed with Stripe.
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from .quote import QuoteRead


ServiceType = Literal[
    "plumbing",
    "electrical",
    "glass",
    "hvac",
    "pests",
    "locksmith",
    "roofing",
    "siding",
    "general",
]
UrgencyLevel = Literal["low", "medium", "high", "emergency"]
RequestStatus = Literal["pending", "assigned", "in-progress", "completed", "cancelled"]
PaymentStatus = Literal["not_initiated", "pending", "authorized", "captured", "cancelled", "failed"]

SERVICE_LABELS = {
    "plumbing": "Plumbing",
    "electrical": "Electrical",
    "glass": "Windows & Glass",
    "hvac": "HVAC",
    "pests": "Pest Control",
    "locksmith": "Locksmith",
    "roofing": "Roofing",
    "siding": "Siding",
    "general": "General Repairs",
}

TERMINAL_STATUSES = {"completed", "cancelled"}


class Coordinates(BaseModel):
    lat: float = Field(..., ge=-90, le=90, examples=[40.7128])
    lng: float = Field(..., ge=-180, le=180, examples=[-74.006])


class Location(BaseModel):
    formatted_address: str = Field(..., min_length=1, examples=["12 Main St, Springfield, IL 62701, USA"])
    # Coordinates may be left out when a maps key is configured; the
    # address is then geocoded on submission.
    coordinates: Optional[Coordinates] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None


class CustomerInfo(BaseModel):
    full_name: str = Field(..., min_length=1, examples=["Jane Doe"])
    email: str = Field(..., examples=["jane@example.com"])
    phone: str = Field(..., examples=["+1 555 0100"])
    preferred_contact: Literal["phone", "email", "sms"] = "phone"


class ServiceRequestCreate(BaseModel):
    title: Optional[str] = Field(None, examples=["Burst pipe in kitchen"])
    service_types: List[ServiceType] = Field(..., min_length=1, examples=[["plumbing"]])
    description: str = Field(..., min_length=1)
    urgency_level: UrgencyLevel = "medium"
    location: Location
    customer: CustomerInfo
    preferred_datetime: Optional[datetime] = None


class ServiceRequestRead(BaseModel):
    id: int
    request_code: str
    title: str
    service_types: List[str]
    description: str
    urgency_level: UrgencyLevel
    status: RequestStatus
    location: Location
    customer: CustomerInfo
    customer_id: Optional[int] = None
    preferred_datetime: Optional[datetime] = None
    quotes: List[QuoteRead] = []
    assigned_contractor_id: Optional[int] = None
    payment_status: PaymentStatus = "not_initiated"
    payment_intent_id: Optional[str] = None
    version: int = 0
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = {
        "from_attributes": True,
    }


class ServiceRequestStatusUpdate(BaseModel):
    status: RequestStatus
