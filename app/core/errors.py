"""Translate service results into HTTP responses."""
from typing import Any

from fastapi import HTTPException, status

from app.schemas.results import ErrorKind, OperationResult


ERROR_STATUS_CODES = {
    ErrorKind.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.AUTHORIZATION: status.HTTP_403_FORBIDDEN,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
}


def unwrap(result: OperationResult) -> Any:
    """Return ``result.data`` or raise the matching HTTPException."""
    if result.success:
        return result.data
    raise HTTPException(
        status_code=ERROR_STATUS_CODES.get(result.error, status.HTTP_400_BAD_REQUEST),
        detail=result.message,
    )
