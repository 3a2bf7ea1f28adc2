"""API routes for route templates."""

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Query, status

import config
from core.api import api_route
from route_templates.models import RouteInput, RouteUpdateInput
from route_templates.services.route_service import RouteService

logger = logging.getLogger(__name__)
router = APIRouter()

service = RouteService()


@router.get("/api/routes", tags=["Routes"])
@api_route(logger)
async def list_routes(
    active: Annotated[
        bool | None,
        Query(description="Only active (true) or inactive (false) routes"),
    ] = None,
) -> list[dict[str, Any]]:
    routes = await service.list_routes(active=active)
    return [r.model_dump(mode="json") for r in routes]


@router.post("/api/routes", status_code=status.HTTP_201_CREATED, tags=["Routes"])
@api_route(logger)
async def create_route(data: RouteInput) -> dict[str, Any]:
    """Create a route; implausible speeds come back as warnings."""
    result = await service.create_route(data)
    return result.to_response()


@router.get("/api/routes/profitable", tags=["Routes"])
@api_route(logger)
async def get_most_profitable_routes(
    limit: Annotated[int, Query(ge=1, le=100)] = config.DEFAULT_PROFITABLE_ROUTES_LIMIT,
) -> list[dict[str, Any]]:
    routes = await service.get_most_profitable_routes(limit)
    return [r.model_dump(mode="json") for r in routes]


@router.get("/api/routes/overview", tags=["Routes"])
@api_route(logger)
async def get_routes_overview() -> dict[str, Any]:
    overview = await service.get_routes_overview()
    return overview.model_dump()


@router.get("/api/routes/{route_id}", tags=["Routes"])
@api_route(logger)
async def get_route(route_id: str) -> dict[str, Any]:
    route = await service.get_route(route_id)
    return route.model_dump(mode="json")


@router.put("/api/routes/{route_id}", tags=["Routes"])
@api_route(logger)
async def update_route(route_id: str, data: RouteUpdateInput) -> dict[str, Any]:
    result = await service.update_route(route_id, data)
    return result.to_response()


@router.delete("/api/routes/{route_id}", tags=["Routes"])
@api_route(logger)
async def delete_route(route_id: str) -> dict[str, Any]:
    """Delete a route, or deactivate it when trips reference it."""
    result = await service.delete_route(route_id)
    return result.model_dump()


@router.get("/api/routes/{route_id}/statistics", tags=["Routes"])
@api_route(logger)
async def get_route_statistics(route_id: str) -> dict[str, Any]:
    stats = await service.get_route_statistics(route_id)
    return stats.model_dump()
