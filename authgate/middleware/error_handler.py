"""Exception handlers mapping the error taxonomy to HTTP responses."""

import logging
from typing import Union

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError

from ..errors import AuthError
from .correlation import get_correlation_id


logger = logging.getLogger(__name__)


async def auth_exception_handler(request: Request, exc: AuthError) -> JSONResponse:
    """
    Render local-flow and configuration errors as a terse status/body pair.

    Args:
        request: FastAPI request
        exc: Error from the authentication taxonomy

    Returns:
        JSON response with the error's status code
    """
    if exc.status_code >= 500:
        logger.error(f"{exc.error} on {request.url.path}: {exc.message}")
    else:
        logger.info(f"{exc.status_code} on {request.url.path}: {exc.message}")

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.error,
            "message": exc.message,
        }
    )


async def validation_exception_handler(
    request: Request,
    exc: Union[RequestValidationError, PydanticValidationError]
) -> JSONResponse:
    """
    Handle malformed request bodies as 400 errors with field details.

    Args:
        request: FastAPI request
        exc: Validation error

    Returns:
        JSON response with validation error details
    """
    errors = []

    for error in exc.errors():
        field_path = ".".join(str(x) for x in error["loc"] if x != "body")
        errors.append({
            "field": field_path,
            "message": error["msg"],
            "type": error["type"],
        })

    logger.warning(f"Validation error on {request.url.path}: {errors}")

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error": "Bad Request",
            "message": "The request data failed validation",
            "details": errors
        }
    )


def generic_exception_handler_factory(debug: bool):
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """
        Handle all other unhandled exceptions.

        Args:
            request: FastAPI request
            exc: Unhandled exception

        Returns:
            JSON response with error message
        """
        logger.error(
            f"Unhandled exception on {request.url.path} [{get_correlation_id(request)}]: {exc}",
            exc_info=True
        )

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "Internal Server Error",
                "message": "An unexpected error occurred",
                "details": str(exc) if debug else "Please contact support if this persists",
                "correlation_id": get_correlation_id(request),
            }
        )

    return generic_exception_handler
