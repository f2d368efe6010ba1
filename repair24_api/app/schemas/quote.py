"""
Pydantic models for contractor quotes.

A quote is a contractor's priced proposal against a service request.
Quotes are addressed by their index in the request's quote list, which
follows submission order.
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


QuoteStatus = Literal["pending", "accepted", "rejected"]


class QuoteCreate(BaseModel):
    """Schema for submitting a quote.

    ``contractor_id`` may be omitted when a contractor submits for
    themselves; administrators must name the contractor.
    """

    request_id: int = Field(..., examples=[1])
    contractor_id: Optional[int] = Field(None, examples=[4])
    amount: float = Field(..., gt=0, examples=[200.0])
    description: str = Field(..., min_length=1, examples=["Replace the leaking valve"])
    estimated_duration: Optional[str] = Field(None, examples=["2 hours"])
    warranty: Optional[str] = Field(None, examples=["90 days"])
    materials: Optional[List[str]] = None


class QuoteStatusUpdate(BaseModel):
    """Schema for accepting or rejecting a quote.

    ``status`` is validated by the service so that an unknown value is
    a plain 400 rather than a schema error.  ``expected_version`` is the
    ``version`` of the service request the client last read; when given
    and stale the update is refused with 409.
    """

    request_id: int
    quote_index: int = Field(..., ge=0)
    status: str = Field(..., examples=["accepted"])
    expected_version: Optional[int] = None


class QuoteRead(BaseModel):
    index: int
    id: int
    contractor_id: int
    amount: float
    description: str
    estimated_duration: Optional[str] = None
    warranty: Optional[str] = None
    materials: Optional[List[str]] = None
    status: QuoteStatus
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = {
        "from_attributes": True,
    }
