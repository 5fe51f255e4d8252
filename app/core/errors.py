"""
Service-level errors.

Services raise these; the handlers registered in app.main turn them into
JSON responses, so nothing below the routers needs to know about HTTP.
"""
import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


class ServiceError(Exception):
    """Base class for precondition failures reported back to the caller."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_code = "ERROR"

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code


class NotFoundError(ServiceError):
    status_code = status.HTTP_404_NOT_FOUND
    default_code = "NOT_FOUND"


class ConflictError(ServiceError):
    """An invariant would be violated (full section, already grouped, ...)."""

    status_code = status.HTTP_409_CONFLICT
    default_code = "CONFLICT"


class ForbiddenError(ServiceError):
    status_code = status.HTTP_403_FORBIDDEN
    default_code = "FORBIDDEN"


class InvalidArgumentError(ServiceError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_code = "INVALID_ARGUMENT"


# Conflict codes
ALREADY_ENROLLED = "ALREADY_ENROLLED"
ALREADY_IN_COURSE = "ALREADY_IN_COURSE"
SECTION_FULL = "SECTION_FULL"
CAPACITY_BELOW_ENROLLMENT = "CAPACITY_BELOW_ENROLLMENT"
ALREADY_GROUPED = "ALREADY_GROUPED"
GROUP_FULL = "GROUP_FULL"
NO_ELIGIBLE_STUDENTS = "NO_ELIGIBLE_STUDENTS"
NO_OP = "NO_OP"

# Forbidden codes
NOT_OWNER = "NOT_OWNER"
NOT_ENROLLED = "NOT_ENROLLED"
CHOICE_DISABLED = "CHOICE_DISABLED"
WINDOW_CLOSED = "WINDOW_CLOSED"

# InvalidArgument codes
NOT_MANUAL = "NOT_MANUAL"


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    logger.info(
        "%s %s rejected: %s (%s)", request.method, request.url.path, exc.code, exc.message
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )


async def storage_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error(
        "storage failure on %s %s", request.method, request.url.path, exc_info=exc
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error", "code": "SERVER_ERROR"},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(SQLAlchemyError, storage_error_handler)
