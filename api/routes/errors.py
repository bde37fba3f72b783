"""Map order desk errors onto HTTP responses"""

from fastapi import HTTPException
import logging

from orderdesk.exceptions import (
    EntityLockedError,
    NotFoundError,
    OrderDeskError,
    TransitionRejected,
    ValidationError,
)

logger = logging.getLogger(__name__)


def to_http_exception(error: Exception) -> HTTPException:
    if isinstance(error, HTTPException):
        return error
    if isinstance(error, NotFoundError):
        return HTTPException(status_code=404, detail=error.message)
    if isinstance(error, ValidationError):
        return HTTPException(
            status_code=400,
            detail={"message": error.message, "errors": error.details["errors"]},
        )
    if isinstance(error, (TransitionRejected, EntityLockedError)):
        return HTTPException(status_code=400, detail=error.message)
    if isinstance(error, OrderDeskError):
        return HTTPException(status_code=500, detail=error.message)
    logger.error(f"Unhandled error: {error}", exc_info=error)
    return HTTPException(status_code=500, detail=f"Internal server error: {str(error)}")
