"""Translate domain errors into HTTP responses."""

from fastapi import HTTPException, status

from commission_tracker.services.errors import (
    CommissionTrackerError,
    JobNotFoundError,
    RecordNotFoundError,
)


def to_http_exception(exc: CommissionTrackerError) -> HTTPException:
    """Unknown rows map to 404, every other domain error to 400."""
    if isinstance(exc, (JobNotFoundError, RecordNotFoundError)):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
