"""
Contractor job endpoints for API v1.

Contractors manage their own jobs; administrators can act on anyone's.
Assigning jobs by hand and releasing payouts are staff operations.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, status

from repair24_api.app.core.db import ROLE_ADMIN, ROLE_SUPER_ADMIN
from repair24_api.app.core.errors import SERVICE_ERRORS, as_http_error
from repair24_api.app.core.security import check_owner, get_current_user, require_roles
from repair24_api.app.schemas.job import ContractorStats, JobCreate, JobList, JobRead, JobStatus, JobUpdate
from repair24_api.app.services.job_service import JobService


router = APIRouter()


@router.get("/{contractor_id}/jobs", response_model=JobList)
async def list_jobs(
    contractor_id: int = Path(..., description="Contractor user ID"),
    status_param: Optional[JobStatus] = Query(None, alias="status"),
    current_user: dict = Depends(get_current_user),
) -> JobList:
    check_owner(contractor_id, current_user)
    return await JobService.list_jobs(contractor_id, status=status_param)


@router.post("/{contractor_id}/jobs", response_model=JobRead, status_code=status.HTTP_201_CREATED)
async def create_job(
    job: JobCreate,
    contractor_id: int = Path(..., description="Contractor user ID"),
    current_user: dict = Depends(require_roles(ROLE_SUPER_ADMIN, ROLE_ADMIN)),
) -> JobRead:
    try:
        return await JobService.create_job(contractor_id, job, actor_id=current_user.get("user_id"))
    except SERVICE_ERRORS as e:
        raise as_http_error(e)


@router.get("/{contractor_id}/jobs/{job_id}", response_model=JobRead)
async def get_job(
    contractor_id: int = Path(..., description="Contractor user ID"),
    job_id: str = Path(..., description="Job ID"),
    current_user: dict = Depends(get_current_user),
) -> JobRead:
    check_owner(contractor_id, current_user)
    try:
        return await JobService.get_job(contractor_id, job_id)
    except SERVICE_ERRORS as e:
        raise as_http_error(e)


@router.patch("/{contractor_id}/jobs/{job_id}", response_model=JobRead)
async def update_job(
    update: JobUpdate,
    contractor_id: int = Path(..., description="Contractor user ID"),
    job_id: str = Path(..., description="Job ID"),
    current_user: dict = Depends(get_current_user),
) -> JobRead:
    """Move a job along (accepted → in_progress → completed) or add notes.

    Completing a job puts its payout on hold until the customer
    confirms.
    """
    check_owner(contractor_id, current_user)
    try:
        return await JobService.update_job(contractor_id, job_id, update)
    except SERVICE_ERRORS as e:
        raise as_http_error(e)


@router.post("/{contractor_id}/jobs/{job_id}/release-payment", response_model=JobRead)
async def release_payment(
    contractor_id: int = Path(..., description="Contractor user ID"),
    job_id: str = Path(..., description="Job ID"),
    current_user: dict = Depends(require_roles(ROLE_SUPER_ADMIN, ROLE_ADMIN)),
) -> JobRead:
    """Release a held payout.  409 unless the payout is ``held``."""
    try:
        return await JobService.release_payment(contractor_id, job_id)
    except SERVICE_ERRORS as e:
        raise as_http_error(e)


@router.get("/{contractor_id}/stats", response_model=ContractorStats)
async def contractor_stats(
    contractor_id: int = Path(..., description="Contractor user ID"),
    current_user: dict = Depends(get_current_user),
) -> ContractorStats:
    check_owner(contractor_id, current_user)
    return await JobService.contractor_stats(contractor_id)
