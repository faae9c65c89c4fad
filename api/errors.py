"""Global exception handlers for FastAPI."""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError as PydanticValidationError
from starlette.responses import JSONResponse

from api.base import error_response, ErrorCodes
from core.exceptions import (
    ConflictError,
    InvalidStatusTransitionError,
    NotFoundError,
    TransientStoreError,
    ValidationError,
)

logger = logging.getLogger(__name__)


def _json_error(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=error_response(code, message).model_dump(mode="json"),
    )


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the app."""

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return _json_error(404, ErrorCodes.NOT_FOUND, str(exc))

    @app.exception_handler(InvalidStatusTransitionError)
    async def status_transition_handler(request: Request, exc: InvalidStatusTransitionError):
        return _json_error(400, ErrorCodes.INVALID_STATUS_TRANSITION, str(exc))

    @app.exception_handler(ValidationError)
    async def domain_validation_handler(request: Request, exc: ValidationError):
        return _json_error(400, ErrorCodes.VALIDATION_ERROR, str(exc))

    @app.exception_handler(ConflictError)
    async def conflict_handler(request: Request, exc: ConflictError):
        return _json_error(409, ErrorCodes.CONFLICT, str(exc))

    @app.exception_handler(TransientStoreError)
    async def transient_handler(request: Request, exc: TransientStoreError):
        logger.warning(f"Datastore unavailable: {exc}")
        return _json_error(503, ErrorCodes.SERVICE_UNAVAILABLE, "Service temporarily unavailable")

    # Payload models are validated inside the action handlers, so their
    # errors arrive as pydantic errors rather than RequestValidationError
    @app.exception_handler(PydanticValidationError)
    async def payload_validation_handler(request: Request, exc: PydanticValidationError):
        return _json_error(400, ErrorCodes.INVALID_REQUEST, str(exc))

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return _json_error(400, ErrorCodes.INVALID_REQUEST, str(exc))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return _json_error(422, ErrorCodes.VALIDATION_ERROR, str(exc.errors()))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception")
        return _json_error(500, ErrorCodes.INTERNAL_ERROR, "An internal error occurred")
