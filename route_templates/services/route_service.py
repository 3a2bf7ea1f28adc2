"""Business logic for route templates."""

from __future__ import annotations

import logging
import math
from collections.abc import Callable
from typing import Any

import config
from core.exceptions import RouteNotFound, RouteValidationError, ValidationException
from db.models import Route
from db.unit_of_work import UnitOfWork, unit_of_work_factory
from route_templates.models import (
    RouteDeletionResult,
    RouteInput,
    RoutesOverview,
    RouteSaveResult,
    RouteUpdateInput,
    RouteValidationWarning,
)
from route_templates.services.aggregator import (
    RouteStats,
    compute_route_stats,
    rank_most_profitable,
)

logger = logging.getLogger(__name__)


def default_route_name(origin: str, destination: str) -> str:
    return f"{origin} - {destination}"


def validate_route_fields(
    *,
    origin: str | None,
    destination: str | None,
    distance_km: float | None = None,
    estimated_hours: float | None = None,
    suggested_price: float | None = None,
) -> list[RouteValidationWarning]:
    """
    Validate route fields.

    Returns:
        Advisory warnings (implausible average speed)

    Raises:
        RouteValidationError: With a field -> message map of hard errors
    """
    errors: dict[str, str] = {}

    origin = (origin or "").strip()
    destination = (destination or "").strip()
    if not origin:
        errors["origin"] = "Origin is required"
    if not destination:
        errors["destination"] = "Destination is required"
    if origin and destination and origin.casefold() == destination.casefold():
        errors["destination"] = "Destination must be different from origin"

    if distance_km is not None:
        if not math.isfinite(distance_km) or distance_km <= 0:
            errors["distance_km"] = "Distance must be a positive number"
        elif distance_km > config.ROUTE_MAX_DISTANCE_KM:
            errors["distance_km"] = (
                f"Distance cannot exceed {config.ROUTE_MAX_DISTANCE_KM:,.0f} km"
            )

    if estimated_hours is not None:
        if not math.isfinite(estimated_hours) or estimated_hours <= 0:
            errors["estimated_hours"] = "Estimated time must be a positive number"
        elif estimated_hours > config.ROUTE_MAX_ESTIMATED_HOURS:
            errors["estimated_hours"] = (
                f"Estimated time cannot exceed {config.ROUTE_MAX_ESTIMATED_HOURS:.0f} hours"
            )

    if suggested_price is not None and (
        not math.isfinite(suggested_price) or suggested_price <= 0
    ):
        errors["suggested_price"] = "Suggested price must be a positive number"

    if errors:
        msg = "Invalid route: " + "; ".join(f"{k}: {v}" for k, v in errors.items())
        raise RouteValidationError(msg, errors)

    warnings: list[RouteValidationWarning] = []
    if distance_km and estimated_hours:
        speed = distance_km / estimated_hours
        if speed < config.ROUTE_MIN_SPEED_KMH:
            warnings.append(
                RouteValidationWarning(
                    field="estimated_hours",
                    code="SPEED_TOO_LOW",
                    message=f"Average speed of {speed:.1f} km/h is very low; check distance and time",
                )
            )
        elif speed > config.ROUTE_MAX_SPEED_KMH:
            warnings.append(
                RouteValidationWarning(
                    field="estimated_hours",
                    code="SPEED_TOO_HIGH",
                    message=f"Average speed of {speed:.1f} km/h is very high; check distance and time",
                )
            )
    return warnings


class RouteService:
    """Service class for route template operations."""

    def __init__(self, uow_factory: Callable[[], UnitOfWork] | None = None) -> None:
        self._uow_factory = uow_factory or unit_of_work_factory()

    @staticmethod
    async def _load(uow: UnitOfWork, route_id: str) -> Route:
        route = await uow.routes.get(route_id)
        if route is None:
            msg = f"Route {route_id} not found"
            raise RouteNotFound(msg, {"route_id": route_id})
        return route

    async def create_route(self, data: RouteInput) -> RouteSaveResult:
        warnings = validate_route_fields(
            origin=data.origin,
            destination=data.destination,
            distance_km=data.distance_km,
            estimated_hours=data.estimated_hours,
            suggested_price=data.suggested_price,
        )
        route = Route(
            name=data.name or default_route_name(data.origin, data.destination),
            origin=data.origin,
            destination=data.destination,
            distance_km=data.distance_km,
            estimated_hours=data.estimated_hours,
            suggested_price=data.suggested_price,
            notes=data.notes,
            active=data.active,
        )
        async with self._uow_factory() as uow:
            uow.routes.save(route)
            await uow.commit()

        logger.info("Created route %s (%s)", route.id, route.name)
        if warnings:
            logger.info("Route %s saved with %d warnings", route.id, len(warnings))
        return RouteSaveResult(route=route, warnings=warnings)

    async def update_route(self, route_id: str, data: RouteUpdateInput) -> RouteSaveResult:
        """Apply the fields that were sent and re-validate the merged route."""
        changes: dict[str, Any] = data.model_dump(exclude_unset=True)

        async with self._uow_factory() as uow:
            route = await self._load(uow, route_id)
            had_default_name = route.name == default_route_name(
                route.origin, route.destination
            )

            merged = {
                "origin": changes.get("origin", route.origin),
                "destination": changes.get("destination", route.destination),
                "distance_km": changes.get("distance_km", route.distance_km),
                "estimated_hours": changes.get("estimated_hours", route.estimated_hours),
                "suggested_price": changes.get("suggested_price", route.suggested_price),
            }
            warnings = validate_route_fields(**merged)

            for field, value in merged.items():
                setattr(route, field, value)
            if "notes" in changes:
                route.notes = changes["notes"] or None
            if changes.get("active") is not None:
                route.active = changes["active"]

            new_name = changes.get("name")
            if new_name:
                route.name = new_name
            elif "name" in changes or had_default_name:
                route.name = default_route_name(route.origin, route.destination)

            uow.routes.save(route)
            await uow.commit()

        logger.info("Updated route %s (%s)", route.id, ", ".join(sorted(changes)) or "no changes")
        return RouteSaveResult(route=route, warnings=warnings)

    async def delete_route(self, route_id: str) -> RouteDeletionResult:
        """
        Delete a route, or deactivate it when trips reference it.

        Returns:
            Tagged result: ``hard_delete`` when the route had no trips,
            ``soft_delete`` when it was deactivated to keep trip history.
        """
        async with self._uow_factory() as uow:
            route = await self._load(uow, route_id)
            trips = await uow.trips.list_by_route(route.id)

            if not trips and route.total_trips == 0:
                await uow.routes.delete(route.id)
                await uow.commit()
                logger.info("Route %s deleted", route.id)
                return RouteDeletionResult(
                    type="hard_delete",
                    message="route deleted",
                    route_id=str(route.id),
                )

            route.active = False
            uow.routes.save(route)
            await uow.commit()

        logger.info("Route %s deactivated; %d trips reference it", route.id, len(trips))
        return RouteDeletionResult(
            type="soft_delete",
            message="route deactivated; history preserved",
            route_id=str(route.id),
        )

    async def get_route(self, route_id: str) -> Route:
        async with self._uow_factory() as uow:
            return await self._load(uow, route_id)

    async def list_routes(self, active: bool | None = None) -> list[Route]:
        async with self._uow_factory() as uow:
            return await uow.routes.list(active=active)

    async def get_route_statistics(self, route_id: str) -> RouteStats:
        """Statistics recomputed from the route's trips, never the cached copy."""
        async with self._uow_factory() as uow:
            route = await self._load(uow, route_id)
            trips = await uow.trips.list_by_route(route.id)
        return compute_route_stats(trips)

    async def get_most_profitable_routes(
        self,
        limit: int = config.DEFAULT_PROFITABLE_ROUTES_LIMIT,
    ) -> list[Route]:
        if limit < 1:
            msg = "limit must be a positive integer"
            raise ValidationException(msg, {"limit": limit})
        routes = await self.list_routes()
        return rank_most_profitable(routes, limit)

    async def get_routes_overview(self) -> RoutesOverview:
        routes = await self.list_routes()
        distances = [r.distance_km for r in routes if r.distance_km]
        return RoutesOverview(
            total_routes=len(routes),
            active_routes=sum(1 for r in routes if r.active),
            routes_with_trips=sum(1 for r in routes if r.total_trips > 0),
            average_distance_km=(
                round(sum(distances) / len(distances), 2) if distances else None
            ),
        )
