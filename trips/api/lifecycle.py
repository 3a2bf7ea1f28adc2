"""API routes for the trip lifecycle."""

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Query, status

import config
from core.api import api_route
from trips.models import CancelTripInput, FinalizeTripInput, StartTripInput
from trips.services.trip_lifecycle_service import TripLifecycleService

logger = logging.getLogger(__name__)
router = APIRouter()

service = TripLifecycleService()


@router.post("/api/trips", status_code=status.HTTP_201_CREATED, tags=["Trips"])
@api_route(logger)
async def start_trip(data: StartTripInput) -> dict[str, Any]:
    """Start a trip for a truck."""
    trip = await service.start_trip(data)
    return trip.model_dump(mode="json")


@router.get("/api/trips", tags=["Trips"])
@api_route(logger)
async def list_trips(
    truck_id: str | None = None,
    state: Annotated[
        str | None, Query(description="ACTIVE, COMPLETED or CANCELLED")
    ] = None,
    date_from: Annotated[str | None, Query(description="Earliest start date")] = None,
    date_to: Annotated[str | None, Query(description="Latest start date")] = None,
    month: int | None = None,
    year: int | None = None,
    limit: Annotated[
        int, Query(ge=1, le=config.MAX_TRIP_PAGE_SIZE)
    ] = config.DEFAULT_TRIP_PAGE_SIZE,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> dict[str, Any]:
    """Trip history with optional filters, paginated."""
    page = await service.list_trips(
        truck_id=truck_id,
        state=state,
        date_from=date_from,
        date_to=date_to,
        month=month,
        year=year,
        limit=limit,
        offset=offset,
    )
    return page.to_response()


@router.get("/api/trips/active", tags=["Trips"])
@api_route(logger)
async def list_active_trips() -> list[dict[str, Any]]:
    trips = await service.list_active_trips()
    return [t.model_dump(mode="json") for t in trips]


@router.get("/api/trips/statistics", tags=["Trips"])
@api_route(logger)
async def get_trip_statistics() -> dict[str, Any]:
    stats = await service.get_trip_statistics()
    return stats.model_dump()


@router.get("/api/trips/{trip_id}", tags=["Trips"])
@api_route(logger)
async def get_trip(trip_id: str) -> dict[str, Any]:
    trip = await service.get_trip(trip_id)
    return trip.model_dump(mode="json")


@router.get("/api/trips/{trip_id}/performance", tags=["Trips"])
@api_route(logger)
async def get_trip_performance(trip_id: str) -> dict[str, Any]:
    """Profit, margin and per-km figures for one trip."""
    performance = await service.get_trip_performance(trip_id)
    return performance.model_dump()


@router.put("/api/trips/{trip_id}/finalize", tags=["Trips"])
@api_route(logger)
async def finalize_trip(trip_id: str, data: FinalizeTripInput) -> dict[str, Any]:
    """Complete an active trip, creating its income record when requested."""
    result = await service.finalize_trip(trip_id, data)
    return result.to_response()


@router.put("/api/trips/{trip_id}/cancel", tags=["Trips"])
@api_route(logger)
async def cancel_trip(trip_id: str, data: CancelTripInput) -> dict[str, Any]:
    trip = await service.cancel_trip(trip_id, data.reason)
    return trip.model_dump(mode="json")
