"""Pydantic models for route template API and service operations.

Aggregate fields (trip counts, averages, ``is_profitable``) are deliberately
absent from the input models; unknown keys are ignored, so clients cannot
overwrite what the aggregator owns.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, field_validator

from db.models import Route


def _strip_or_none(v: Any) -> Any:
    if isinstance(v, str):
        v = v.strip()
        return v or None
    return v


class RouteInput(BaseModel):
    """Input for creating a route template."""

    origin: str
    destination: str
    name: str | None = None
    distance_km: float | None = None
    estimated_hours: float | None = None
    suggested_price: float | None = None
    notes: str | None = None
    active: bool = True

    model_config = ConfigDict(extra="ignore")

    @field_validator("origin", "destination", mode="before")
    @classmethod
    def strip_places(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v

    @field_validator("name", "notes", mode="before")
    @classmethod
    def blank_to_none(cls, v: Any) -> Any:
        return _strip_or_none(v)


class RouteUpdateInput(BaseModel):
    """Partial update; only fields that were sent are applied."""

    origin: str | None = None
    destination: str | None = None
    name: str | None = None
    distance_km: float | None = None
    estimated_hours: float | None = None
    suggested_price: float | None = None
    notes: str | None = None
    active: bool | None = None

    model_config = ConfigDict(extra="ignore")

    @field_validator("origin", "destination", "name", "notes", mode="before")
    @classmethod
    def strip_text(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v


class RouteValidationWarning(BaseModel):
    """Advisory finding that does not block saving a route."""

    field: str
    code: str
    message: str


class RouteSaveResult(BaseModel):
    route: Route
    warnings: list[RouteValidationWarning] = []

    def to_response(self) -> dict[str, Any]:
        return {
            "route": self.route.model_dump(mode="json"),
            "warnings": [w.model_dump() for w in self.warnings],
        }


class RouteDeletionResult(BaseModel):
    """Outcome of deleting a route: removed, or deactivated to keep history."""

    type: Literal["hard_delete", "soft_delete"]
    message: str
    route_id: str


class RoutesOverview(BaseModel):
    total_routes: int = 0
    active_routes: int = 0
    routes_with_trips: int = 0
    average_distance_km: float | None = None
