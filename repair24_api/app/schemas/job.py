"""
Pydantic models for contractor jobs.

A job is the contractor's view of work they have been given, either
by winning a quote or by being assigned directly.  ``payment_status``
tracks the contractor's payout: ``pending`` until the work is done,
``held`` once the job is completed and ``released`` once paid out.
"""

from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field


JobStatus = Literal["assigned", "accepted", "in_progress", "completed", "cancelled"]
JobPaymentStatus = Literal["pending", "held", "released"]


class JobCreate(BaseModel):
    client_name: str = Field(..., min_length=1, examples=["Jane Doe"])
    client_phone: Optional[str] = None
    client_email: Optional[str] = None
    service: str = Field(..., min_length=1, examples=["plumbing"])
    description: Optional[str] = None
    address: str = Field(..., min_length=1)
    amount: float = Field(..., gt=0, examples=[200.0])
    scheduled_at: Optional[datetime] = None
    service_request_id: Optional[int] = None


class JobUpdate(BaseModel):
    status: Optional[JobStatus] = None
    notes: Optional[str] = None


class JobRead(BaseModel):
    id: str
    contractor_id: int
    service_request_id: Optional[int] = None
    client_name: str
    client_phone: Optional[str] = None
    client_email: Optional[str] = None
    service: str
    description: Optional[str] = None
    address: str
    amount: float
    status: JobStatus
    payment_status: JobPaymentStatus
    notes: Optional[str] = None
    created_at: datetime
    accepted_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    scheduled_at: Optional[datetime] = None

    model_config = {
        "from_attributes": True,
    }


class JobList(BaseModel):
    """Jobs of one contractor with a count per status.

    ``stats`` is computed over all of the contractor's jobs, not only
    the ones matching the status filter.
    """

    jobs: List[JobRead]
    total: int
    stats: Dict[str, int]


class ContractorStats(BaseModel):
    total_jobs: int
    completed_jobs: int
    total_earnings: float
    held_payments: float
    this_month_earnings: float
