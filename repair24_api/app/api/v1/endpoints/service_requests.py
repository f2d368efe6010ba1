"""
Service request endpoints for API v1.

Customers may submit a request without an account; everything else
requires a bearer token.  Visibility follows the caller's role (see
``ServiceRequestService.list_requests``).
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status

from repair24_api.app.core.errors import SERVICE_ERRORS, as_http_error
from repair24_api.app.core.security import get_current_user, get_optional_user
from repair24_api.app.schemas.quote import QuoteRead
from repair24_api.app.schemas.service_request import (
    RequestStatus,
    ServiceRequestCreate,
    ServiceRequestRead,
    ServiceRequestStatusUpdate,
)
from repair24_api.app.services.quote_service import QuoteService
from repair24_api.app.services.service_request_service import ServiceRequestService, can_view


router = APIRouter()


@router.post("/", response_model=ServiceRequestRead, status_code=status.HTTP_201_CREATED)
async def create_service_request(
    data: ServiceRequestCreate,
    current_user: Optional[dict] = Depends(get_optional_user),
) -> ServiceRequestRead:
    """Submit a new service request.

    When a token is supplied the request is linked to that user.  If
    the location has no coordinates the address is geocoded; without a
    Google Maps key that is a 400.
    """
    try:
        return await ServiceRequestService.create_request(data, current_user)
    except SERVICE_ERRORS as e:
        raise as_http_error(e)


@router.get("/", response_model=List[ServiceRequestRead])
async def list_service_requests(
    status_param: Optional[RequestStatus] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    current_user: dict = Depends(get_current_user),
) -> List[ServiceRequestRead]:
    return await ServiceRequestService.list_requests(current_user, status=status_param, limit=limit, offset=offset)


@router.get("/{request_id}", response_model=ServiceRequestRead)
async def get_service_request(
    request_id: int = Path(..., description="Service request ID"),
    current_user: Optional[dict] = Depends(get_optional_user),
) -> ServiceRequestRead:
    """Fetch one request with its quotes.

    Requests submitted anonymously are readable by anyone who knows the
    id, so the customer can follow progress without an account.
    """
    try:
        request = await ServiceRequestService.get_request(request_id)
    except SERVICE_ERRORS as e:
        raise as_http_error(e)
    if not can_view(request, current_user):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
    return request


@router.patch("/{request_id}/status", response_model=ServiceRequestRead)
async def update_service_request_status(
    update: ServiceRequestStatusUpdate,
    request_id: int = Path(..., description="Service request ID"),
    current_user: dict = Depends(get_current_user),
) -> ServiceRequestRead:
    try:
        return await ServiceRequestService.update_status(request_id, update.status, current_user)
    except SERVICE_ERRORS as e:
        raise as_http_error(e)


@router.delete("/{request_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_service_request(
    request_id: int = Path(..., description="Service request ID"),
    current_user: dict = Depends(get_current_user),
) -> None:
    try:
        await ServiceRequestService.delete_request(request_id, current_user)
    except SERVICE_ERRORS as e:
        raise as_http_error(e)


@router.get("/{request_id}/quotes", response_model=List[QuoteRead])
async def list_request_quotes(
    request_id: int = Path(..., description="Service request ID"),
    current_user: Optional[dict] = Depends(get_optional_user),
) -> List[QuoteRead]:
    """List the quotes of a request in submission order.

    Clients poll this endpoint while waiting for offers.
    """
    try:
        request = await ServiceRequestService.get_request(request_id)
        if not can_view(request, current_user):
            raise PermissionError("Insufficient permissions")
        return await QuoteService.list_quotes(request_id)
    except SERVICE_ERRORS as e:
        raise as_http_error(e)
