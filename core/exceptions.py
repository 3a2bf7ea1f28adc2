"""
Centralized exception hierarchy for domain-specific errors.

This module provides custom exception classes that represent specific
error conditions in the freight service, enabling the API layer to map
them to status codes and callers to tell validation failures apart from
retryable infrastructure failures.
"""

from __future__ import annotations

from typing import Any


class FreightError(Exception):
    """Base exception for all application-specific errors."""

    code = "FREIGHT_ERROR"
    retryable = False

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "detail": self.message, "details": self.details}


class ValidationError(FreightError):
    """Exception raised when data validation fails."""

    code = "VALIDATION_ERROR"


class ResourceNotFoundError(FreightError):
    """Exception raised when a requested resource is not found."""

    code = "NOT_FOUND"


class DuplicateResourceError(FreightError):
    """Exception raised when attempting to create a duplicate resource."""

    code = "DUPLICATE_RESOURCE"


class ConflictError(FreightError):
    """Exception raised when an operation conflicts with the current state."""

    code = "CONFLICT"


class ExternalServiceError(FreightError):
    """Exception raised when service calls fail."""

    code = "EXTERNAL_SERVICE_ERROR"


class InfrastructureError(FreightError):
    """Storage or coordination failure; the caller may retry the operation."""

    code = "INFRASTRUCTURE_ERROR"
    retryable = True


# --- Trip lifecycle ---


class TruckNotFound(ResourceNotFoundError):
    code = "TRUCK_NOT_FOUND"


class TruckAlreadyOnTrip(ConflictError):
    code = "TRUCK_ALREADY_ON_TRIP"


class InvalidOdometerReading(ValidationError):
    code = "INVALID_ODOMETER_READING"


class TripNotFound(ResourceNotFoundError):
    code = "TRIP_NOT_FOUND"


class TripNotActive(ConflictError):
    code = "TRIP_NOT_ACTIVE"


class InvalidDistance(ValidationError):
    code = "INVALID_DISTANCE"


class InvalidDateRange(ValidationError):
    code = "INVALID_DATE_RANGE"


class IncomeAmountRequired(ValidationError):
    code = "INCOME_AMOUNT_REQUIRED"


# --- Routes ---


class RouteNotFound(ResourceNotFoundError):
    code = "ROUTE_NOT_FOUND"


class RouteInactive(ValidationError):
    code = "ROUTE_INACTIVE"


class RouteValidationError(ValidationError):
    """Route fields failed validation; ``details`` maps field name to message."""

    code = "ROUTE_VALIDATION_ERROR"


class RouteHasTrips(ConflictError):
    """Hard delete of a route with trips.

    Route deletion falls back to deactivation instead of raising this.
    """

    code = "ROUTE_HAS_TRIPS"


# --- Collaborators ---


class LedgerUnavailable(ExternalServiceError):
    code = "LEDGER_UNAVAILABLE"


class RepositoryUnavailable(InfrastructureError):
    code = "REPOSITORY_UNAVAILABLE"


class ConcurrentModificationError(InfrastructureError):
    """A document changed between read and write inside one unit of work."""

    code = "CONCURRENT_MODIFICATION"


FreightException = FreightError
ValidationException = ValidationError
ResourceNotFoundException = ResourceNotFoundError
DuplicateResourceException = DuplicateResourceError
ConflictException = ConflictError
ExternalServiceException = ExternalServiceError
InfrastructureException = InfrastructureError
