import logging

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.platform.response import api_response


class AuditEngineError(Exception):
    """Base class for every error raised by the audit engine."""


class InvalidInput(AuditEngineError, ValueError):
    """A caller passed a value outside a documented bound (percentage, count, rank)."""


class InvalidWeightConfiguration(AuditEngineError):
    """A fixed formula's weights do not add up to its documented total."""


class TransientFetchFailure(AuditEngineError):
    """Network-level failure on a single fetch. Retried once, then recorded as failed."""


class UpstreamServiceFailure(AuditEngineError):
    """A third-party enrichment source errored. The signal is treated as unavailable."""

    def __init__(self, provider: str, reason: str):
        super().__init__(f"{provider}: {reason}")
        self.provider = provider
        self.reason = reason


def add_exception_handlers(app):
    @app.exception_handler(InvalidInput)
    async def invalid_input_handler(request: Request, exc: InvalidInput):
        return api_response(
            message=str(exc) or "Invalid input",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        )

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

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logging.exception(f"Unhandled exception: {exc}")
        return api_response(
            message="Internal server error",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
