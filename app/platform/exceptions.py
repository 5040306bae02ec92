import logging

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.features.accessibility.exceptions import (
    AccessibilityScanError,
    CourseResourcesUnavailableError,
    InvalidScanTransitionError,
    IssueNotFoundError,
    ResourceUnavailableError,
    ScanningDisabledError,
)
from app.platform.response import api_response

DOMAIN_ERROR_STATUS = {
    ResourceUnavailableError: status.HTTP_404_NOT_FOUND,
    IssueNotFoundError: status.HTTP_404_NOT_FOUND,
    ScanningDisabledError: status.HTTP_403_FORBIDDEN,
    InvalidScanTransitionError: status.HTTP_409_CONFLICT,
    CourseResourcesUnavailableError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def add_exception_handlers(app):
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return api_response(message=str(exc.detail) or "Error", status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return api_response(
            message="Validation failed",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            data={"errors": exc.errors()},
        )

    @app.exception_handler(AccessibilityScanError)
    async def scan_exception_handler(request: Request, exc: AccessibilityScanError):
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
        for error_type, mapped in DOMAIN_ERROR_STATUS.items():
            if isinstance(exc, error_type):
                status_code = mapped
                break
        if status_code >= 500:
            logging.exception(f"Accessibility scan error: {exc}")
        return api_response(message=str(exc), status_code=status_code)

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logging.exception(f"Unhandled exception: {exc}")
        return api_response(
            message="Internal server error",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
