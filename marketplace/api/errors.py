"""Mapping from workflow refusals to HTTP errors."""

from fastapi import HTTPException, status

from marketplace.api.schemas.common import ErrorResponse
from marketplace.core.workflow import ErrorKind, Rejected

ERROR_STATUS = {
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.INVALID_TRANSITION: status.HTTP_409_CONFLICT,
    ErrorKind.PERMISSION_DENIED: status.HTTP_403_FORBIDDEN,
    ErrorKind.VALIDATION_FAILED: status.HTTP_400_BAD_REQUEST,
    ErrorKind.CONCURRENT_MODIFICATION: status.HTTP_409_CONFLICT,
    ErrorKind.ALREADY_RESOLVED: status.HTTP_409_CONFLICT,
}


def rejection_to_http(rejected: Rejected) -> HTTPException:
    """Build the HTTPException for a refused workflow request."""
    return HTTPException(
        status_code=ERROR_STATUS[rejected.error],
        detail=ErrorResponse(error=rejected.error.value, detail=rejected.message or None).model_dump(),
    )
