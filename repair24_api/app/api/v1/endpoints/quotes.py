"""
Quote endpoints for API v1.

``POST /quotes/`` lets a contractor quote on a request; ``PATCH
/quotes/`` lets the customer accept or reject a quote by its index.
Both return the whole service request so the client can refresh its
view, including the new ``version``.
"""

from fastapi import APIRouter, Depends, status

from repair24_api.app.core.db import ROLE_ADMIN, ROLE_CONTRACTOR, ROLE_SUPER_ADMIN
from repair24_api.app.core.errors import SERVICE_ERRORS, as_http_error
from repair24_api.app.core.security import get_current_user, require_roles
from repair24_api.app.schemas.quote import QuoteCreate, QuoteStatusUpdate
from repair24_api.app.schemas.service_request import ServiceRequestRead
from repair24_api.app.services.quote_service import QuoteService


router = APIRouter()


@router.post("/", response_model=ServiceRequestRead, status_code=status.HTTP_201_CREATED)
async def submit_quote(
    quote: QuoteCreate,
    current_user: dict = Depends(require_roles(ROLE_CONTRACTOR, ROLE_SUPER_ADMIN, ROLE_ADMIN)),
) -> ServiceRequestRead:
    """Submit a quote.

    409 when the contractor already quoted this request, 400 when the
    request is completed or cancelled.
    """
    try:
        return await QuoteService.submit_quote(quote, current_user)
    except SERVICE_ERRORS as e:
        raise as_http_error(e)


@router.patch("/", response_model=ServiceRequestRead)
async def update_quote_status(
    update: QuoteStatusUpdate,
    current_user: dict = Depends(get_current_user),
) -> ServiceRequestRead:
    """Accept or reject a quote.

    Accepting rejects all other quotes on the request.  409 when the
    request changed since ``expected_version`` or while the update was
    being written.
    """
    try:
        return await QuoteService.update_quote_status(update, current_user)
    except SERVICE_ERRORS as e:
        raise as_http_error(e)
