"""Translation of domain errors into HTTP errors."""

from fastapi import HTTPException

from pipevault.services.errors import (
    CapacityExceeded,
    ConcurrentModification,
    InvalidStatusTransition,
    MixedYardAllocation,
    NotFound,
    PipeVaultError,
    UpstreamServiceUnavailable,
    ValidationFailed,
)

STATUS_CODES: dict[type[PipeVaultError], int] = {
    NotFound: 404,
    CapacityExceeded: 409,
    ConcurrentModification: 409,
    InvalidStatusTransition: 409,
    MixedYardAllocation: 422,
    ValidationFailed: 422,
    UpstreamServiceUnavailable: 503,
}


def http_error(error: PipeVaultError) -> HTTPException:
    """Build the HTTPException for a domain error.

    Unmapped domain errors become 400 Bad Request.
    """
    for error_type, status_code in STATUS_CODES.items():
        if isinstance(error, error_type):
            return HTTPException(status_code=status_code, detail=str(error))
    return HTTPException(status_code=400, detail=str(error))
