"""Route and trip repositories bound to a unit of work.

Repositories never write on their own: ``save``/``delete`` stage the change on
the owning ``UnitOfWork`` and the service commits it together with everything
else the operation touched.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from beanie import PydanticObjectId

from date_utils import ensure_utc
from db.models import Route, Trip, TripState

if TYPE_CHECKING:
    from db.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)


def parse_object_id(value: Any) -> PydanticObjectId | None:
    """Return ``value`` as an ObjectId, or None when it cannot be one."""
    if isinstance(value, PydanticObjectId):
        return value
    if value is None:
        return None
    text = str(value).strip()
    if not PydanticObjectId.is_valid(text):
        return None
    return PydanticObjectId(text)


class RouteRepository:
    """Repository for route templates."""

    def __init__(self, uow: UnitOfWork) -> None:
        self._uow = uow

    async def get(self, route_id: Any) -> Route | None:
        oid = parse_object_id(route_id)
        if oid is None:
            return None
        return await self._uow.get(Route, oid)

    async def list(self, active: bool | None = None) -> list[Route]:
        query: dict[str, Any] = {}
        if active is not None:
            query["active"] = active
        routes = await self._uow.find(
            Route,
            query,
            lambda r: active is None or r.active == active,
        )
        return sorted(routes, key=lambda r: r.name.casefold())

    def save(self, route: Route) -> Route:
        if not self._uow.is_tracked(route):
            return self._uow.add(route)
        self._uow.save(route)
        return route

    async def delete(self, route_id: Any) -> None:
        route = await self.get(route_id)
        if route is None:
            return
        self._uow.delete(route)


class TripRepository:
    """Repository for trips."""

    def __init__(self, uow: UnitOfWork) -> None:
        self._uow = uow

    async def get(self, trip_id: Any) -> Trip | None:
        oid = parse_object_id(trip_id)
        if oid is None:
            return None
        return await self._uow.get(Trip, oid)

    async def find_active_by_truck(self, truck_id: str) -> Trip | None:
        active = await self._uow.find(
            Trip,
            {"truck_id": truck_id, "state": TripState.ACTIVE.value},
            lambda t: t.truck_id == truck_id and t.state == TripState.ACTIVE,
        )
        if len(active) > 1:
            logger.error(
                "Truck %s has %d active trips: %s",
                truck_id,
                len(active),
                [str(t.id) for t in active],
            )
        return active[0] if active else None

    async def list_by_route(self, route_id: Any) -> list[Trip]:
        oid = parse_object_id(route_id)
        if oid is None:
            return []
        return await self._uow.find(
            Trip,
            {"route_id": oid},
            lambda t: t.route_id == oid,
        )

    async def list_active(self) -> list[Trip]:
        trips = await self._uow.find(
            Trip,
            {"state": TripState.ACTIVE.value},
            lambda t: t.state == TripState.ACTIVE,
        )
        return sorted(trips, key=lambda t: t.start_date, reverse=True)

    async def list_all(self) -> list[Trip]:
        return await self._uow.find(Trip, {}, lambda _t: True)

    async def list(
        self,
        *,
        truck_id: str | None = None,
        state: TripState | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
    ) -> list[Trip]:
        """Trips matching every given filter, most recent start first.

        Both date bounds are inclusive and apply to ``start_date``.
        """
        query: dict[str, Any] = {}
        if truck_id is not None:
            query["truck_id"] = truck_id
        if state is not None:
            query["state"] = state.value

        def _matches(t: Trip) -> bool:
            start = ensure_utc(t.start_date)
            return (
                (truck_id is None or t.truck_id == truck_id)
                and (state is None or t.state == state)
                and (date_from is None or start >= date_from)
                and (date_to is None or start <= date_to)
            )

        trips = await self._uow.find(Trip, query, _matches)
        return sorted(
            trips, key=lambda t: (ensure_utc(t.start_date), str(t.id)), reverse=True
        )

    def save(self, trip: Trip) -> Trip:
        if not self._uow.is_tracked(trip):
            return self._uow.add(trip)
        self._uow.save(trip)
        return trip
