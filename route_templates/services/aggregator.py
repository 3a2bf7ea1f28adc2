"""Route aggregate statistics.

Aggregates on a ``Route`` document are a cache of ``compute_route_stats``
over the trips bound to it. ``RouteAggregator.refresh`` recomputes them
inside the same unit of work as the trip transition that made them stale, so
the route and the trip are committed together.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime

from pydantic import BaseModel

import config
from date_utils import days_between, get_current_utc_time
from db.models import Route, Trip, TripState
from db.unit_of_work import UnitOfWork
from trips.services.profitability import round_money, safe_mean, trip_margin

logger = logging.getLogger(__name__)


class RouteStats(BaseModel):
    """Aggregate figures for a route, derived from its trips."""

    total_trips: int = 0
    completed_trips: int = 0
    cancelled_trips: int = 0
    active_trips: int = 0
    average_income: float | None = None
    average_real_km: float | None = None
    average_margin_pct: float | None = None
    average_days: float | None = None
    total_income: float = 0.0
    total_km: int = 0
    is_profitable: bool = False


def compute_route_stats(
    trips: Iterable[Trip],
    threshold_pct: float | None = None,
) -> RouteStats:
    """Recompute route aggregates from scratch.

    Averages are over completed trips only. Trips without an income are left
    out of ``average_income`` rather than counted as zero, and trips without
    expense data are left out of ``average_margin_pct``.
    """
    threshold = (
        config.PROFITABILITY_THRESHOLD_PCT if threshold_pct is None else threshold_pct
    )
    trips = list(trips)
    completed = [t for t in trips if t.state == TripState.COMPLETED]

    average_income = safe_mean(t.income_amount for t in completed)
    average_margin = safe_mean(trip_margin(t) for t in completed)

    return RouteStats(
        total_trips=len(trips),
        completed_trips=len(completed),
        cancelled_trips=sum(1 for t in trips if t.state == TripState.CANCELLED),
        active_trips=sum(1 for t in trips if t.state == TripState.ACTIVE),
        average_income=round_money(average_income),
        average_real_km=round_money(safe_mean(t.km_traveled for t in completed)),
        average_margin_pct=round_money(average_margin),
        average_days=round_money(
            safe_mean(days_between(t.start_date, t.end_date) for t in completed)
        ),
        total_income=round(sum(t.income_amount or 0.0 for t in completed), 2),
        total_km=sum(t.km_traveled or 0 for t in completed),
        is_profitable=(
            average_income is not None
            and average_income > 0
            and average_margin is not None
            and average_margin >= threshold
        ),
    )


def apply_stats(route: Route, stats: RouteStats, now: datetime | None = None) -> None:
    route.total_trips = stats.total_trips
    route.completed_trips = stats.completed_trips
    route.cancelled_trips = stats.cancelled_trips
    route.active_trips = stats.active_trips
    route.average_income = stats.average_income
    route.average_real_km = stats.average_real_km
    route.average_margin_pct = stats.average_margin_pct
    route.average_days = stats.average_days
    route.is_profitable = stats.is_profitable
    route.stats_updated_at = now or get_current_utc_time()


class RouteAggregator:
    """Keeps route aggregates in step with trip transitions."""

    @staticmethod
    async def refresh(uow: UnitOfWork, route_id) -> RouteStats | None:
        """Recompute and stage the aggregates of ``route_id``.

        Trips are read through ``uow`` so a trip staged in this operation is
        counted in its new state.
        """
        if route_id is None:
            return None
        route = await uow.routes.get(route_id)
        if route is None:
            logger.warning("Cannot refresh aggregates: route %s not found", route_id)
            return None

        trips = await uow.trips.list_by_route(route.id)
        stats = compute_route_stats(trips)
        apply_stats(route, stats)
        uow.routes.save(route)
        logger.debug(
            "Refreshed route %s: %d trips (%d completed, %d active)",
            route.id,
            stats.total_trips,
            stats.completed_trips,
            stats.active_trips,
        )
        return stats


def rank_most_profitable(routes: Iterable[Route], limit: int) -> list[Route]:
    """Routes with at least one trip, best average income first.

    Ties on income fall back to more completed trips, then name. Routes with
    no income data sort after every route that has one.
    """
    if limit <= 0:
        return []
    candidates = [r for r in routes if r.total_trips > 0]
    candidates.sort(
        key=lambda r: (
            r.average_income is None,
            -(r.average_income or 0.0),
            -r.completed_trips,
            r.name.casefold(),
        )
    )
    return candidates[:limit]
