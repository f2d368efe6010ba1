"""
Stripe Connect endpoints for API v1.

A contractor (or an administrator on their behalf) connects a Stripe
Express account to receive payouts, checks its verification state and
opens the Stripe dashboard.
"""

from fastapi import APIRouter, Depends, Path

from repair24_api.app.core.errors import SERVICE_ERRORS, as_http_error
from repair24_api.app.core.security import check_owner, get_current_user
from repair24_api.app.schemas.payment import ConnectAccountLink, ConnectAccountStatus, ConnectLoginLink
from repair24_api.app.services.stripe_connect_service import StripeConnectService


router = APIRouter()


@router.post("/{contractor_id}/stripe/connect", response_model=ConnectAccountLink)
async def connect_account(
    contractor_id: int = Path(..., description="Contractor user ID"),
    current_user: dict = Depends(get_current_user),
) -> ConnectAccountLink:
    """Create the Express account if needed and return an onboarding link."""
    check_owner(contractor_id, current_user)
    try:
        return await StripeConnectService.connect_account(contractor_id)
    except SERVICE_ERRORS as e:
        raise as_http_error(e)


@router.get("/{contractor_id}/stripe/status", response_model=ConnectAccountStatus)
async def account_status(
    contractor_id: int = Path(..., description="Contractor user ID"),
    current_user: dict = Depends(get_current_user),
) -> ConnectAccountStatus:
    check_owner(contractor_id, current_user)
    try:
        return await StripeConnectService.account_status(contractor_id)
    except SERVICE_ERRORS as e:
        raise as_http_error(e)


@router.post("/{contractor_id}/stripe/login-link", response_model=ConnectLoginLink)
async def login_link(
    contractor_id: int = Path(..., description="Contractor user ID"),
    current_user: dict = Depends(get_current_user),
) -> ConnectLoginLink:
    check_owner(contractor_id, current_user)
    try:
        return await StripeConnectService.login_link(contractor_id)
    except SERVICE_ERRORS as e:
        raise as_http_error(e)
