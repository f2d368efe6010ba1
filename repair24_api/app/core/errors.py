"""
Service-level exceptions.

Services raise these instead of HTTP errors so they can be called
outside a request.  ``NotFoundError`` and ``ConflictError`` subclass
``ValueError``: any handler that catches ``ValueError`` for a 400 keeps
working, while endpoints that care map them to 404 and 409.
"""

from fastapi import HTTPException, status


class NotFoundError(ValueError):
    """The referenced record does not exist."""


class ConflictError(ValueError):
    """The operation clashes with the current state of a record."""


class UpstreamServiceError(RuntimeError):
    """A third‑party API (Stripe, Google Maps) rejected or failed a call.

    ``message`` is the provider's own, human readable explanation and
    is passed through to the API caller unchanged.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class PaymentProviderError(UpstreamServiceError):
    """Stripe returned an error."""


SERVICE_ERRORS = (ValueError, PermissionError, UpstreamServiceError)


def as_http_error(exc: Exception) -> HTTPException:
    """Map a service exception to the HTTP error returned to the caller.

    Use as ``except SERVICE_ERRORS as e: raise as_http_error(e)``.
    """
    if isinstance(exc, NotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, ConflictError):
        code = status.HTTP_409_CONFLICT
    elif isinstance(exc, PermissionError):
        code = status.HTTP_403_FORBIDDEN
    elif isinstance(exc, UpstreamServiceError):
        code = status.HTTP_502_BAD_GATEWAY
    else:
        code = status.HTTP_400_BAD_REQUEST
    return HTTPException(status_code=code, detail=str(exc))
