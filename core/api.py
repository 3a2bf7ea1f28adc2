"""API utilities for FastAPI route handling."""

import functools
import logging
from collections.abc import Callable

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse

from core.exceptions import (
    ConflictException,
    DuplicateResourceException,
    ExternalServiceException,
    FreightException,
    InfrastructureException,
    ResourceNotFoundException,
    ValidationException,
)


class ApiError(HTTPException):
    """HTTPException that keeps the domain error code and details."""

    def __init__(self, status_code: int, error: FreightException) -> None:
        super().__init__(status_code=status_code, detail=error.message)
        self.error = error
        self.code = error.code
        self.retryable = error.retryable


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    """Render ``ApiError`` as ``{"detail", "code", "details"}``."""
    headers = {"Retry-After": "1"} if exc.retryable else None
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.error.to_dict(),
        headers=headers,
    )


def api_route(logger: logging.Logger):
    """
    Decorator for FastAPI endpoints that provides standardized error handling.

    Wraps async endpoint functions with try/except to:
    - Re-raise HTTPException instances as-is
    - Map domain exceptions to appropriate HTTP status codes
    - Log and convert other exceptions to 500 HTTPException

    Usage:
        @router.put("/api/trips/{trip_id}/finalize")
        @api_route(logger)
        async def finalize(trip_id: str, body: FinalizeTripInput):
            ...
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except HTTPException:
                raise
            except ValidationException as e:
                logger.warning("Validation error in %s: %s", func.__name__, e.message)
                raise ApiError(status.HTTP_400_BAD_REQUEST, e) from e
            except ResourceNotFoundException as e:
                logger.info("Resource not found in %s: %s", func.__name__, e.message)
                raise ApiError(status.HTTP_404_NOT_FOUND, e) from e
            except (ConflictException, DuplicateResourceException) as e:
                logger.warning("Conflict in %s: %s", func.__name__, e.message)
                raise ApiError(status.HTTP_409_CONFLICT, e) from e
            except ExternalServiceException as e:
                logger.exception(
                    "External service error in %s: %s",
                    func.__name__,
                    e.message,
                )
                raise ApiError(status.HTTP_502_BAD_GATEWAY, e) from e
            except InfrastructureException as e:
                logger.exception(
                    "Infrastructure error in %s: %s",
                    func.__name__,
                    e.message,
                )
                raise ApiError(status.HTTP_503_SERVICE_UNAVAILABLE, e) from e
            except FreightException as e:
                logger.exception(
                    "Application error in %s: %s",
                    func.__name__,
                    e.message,
                )
                raise ApiError(status.HTTP_500_INTERNAL_SERVER_ERROR, e) from e
            except Exception as e:
                logger.exception("Unexpected error in %s", func.__name__)
                raise HTTPException(
                    status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                    detail=str(e),
                ) from e

        return wrapper

    return decorator
