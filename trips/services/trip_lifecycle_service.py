"""Trip lifecycle: start, finalize and cancel.

Every transition runs in one unit of work that stages the trip change, the
bound route's refreshed aggregates, the truck availability flag and (on
finalize) the income record, then commits them together. All preconditions
are checked before anything is staged, so a rejected call has no effect.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable
from datetime import date, datetime

from pymongo.errors import PyMongoError

import config
from core.exceptions import (
    DuplicateResourceError,
    FreightError,
    IncomeAmountRequired,
    InvalidDateRange,
    InvalidDistance,
    InvalidOdometerReading,
    LedgerUnavailable,
    RouteInactive,
    RouteNotFound,
    TripNotFound,
    TruckAlreadyOnTrip,
    TruckNotFound,
    ValidationException,
)
from core.locks import KeyedLock
from core.ports import FinancialLedgerBridge, IncomeReceipt, TruckAvailability
from date_utils import (
    end_of_day,
    ensure_utc,
    get_current_utc_time,
    is_calendar_date,
    month_bounds,
    normalize_to_utc_datetime,
)
from db.models import Trip, TripState
from db.unit_of_work import UnitOfWork, unit_of_work_factory
from ledger.services.ledger_bridge import MongoLedgerBridge
from route_templates.services.aggregator import RouteAggregator
from trips.models import (
    FinalizeTripInput,
    FinalizeTripResult,
    StartTripInput,
    TripPage,
    TripStatistics,
)
from trips.services.profitability import TripPerformance, trip_performance
from trips.services.state import assert_transition
from trucks.services.availability_service import MongoTruckAvailability

logger = logging.getLogger(__name__)


def default_income_description(trip: Trip) -> str:
    truck = trip.truck_label or trip.truck_id
    destination = trip.route_name or config.CUSTOM_DESTINATION_LABEL
    return f"Flete - Viaje {truck} ({destination})"


def _date_bound(
    value: str | date | datetime | None, field: str, *, upper: bool = False
) -> datetime | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    parsed = normalize_to_utc_datetime(value)
    if parsed is None:
        msg = f"Invalid date for {field}"
        raise ValidationException(msg, {field: str(value)})
    # A bare calendar date as upper bound covers that whole day
    if upper and is_calendar_date(value):
        return end_of_day(parsed)
    return parsed


class TripLifecycleService:
    """Service class for trip state transitions and trip reads."""

    def __init__(
        self,
        uow_factory: Callable[[], UnitOfWork] | None = None,
        *,
        ledger_factory: Callable[[UnitOfWork], FinancialLedgerBridge] = MongoLedgerBridge,
        trucks_factory: Callable[[UnitOfWork], TruckAvailability] = MongoTruckAvailability,
        locks: KeyedLock | None = None,
    ) -> None:
        self._uow_factory = uow_factory or unit_of_work_factory()
        self._ledger_factory = ledger_factory
        self._trucks_factory = trucks_factory
        self._locks = locks or KeyedLock()

    async def _load_trip(self, uow: UnitOfWork, trip_id: str) -> Trip:
        trip = await uow.trips.get(trip_id)
        if trip is None:
            msg = f"Trip {trip_id} not found"
            raise TripNotFound(msg, {"trip_id": trip_id})
        return trip

    async def _lock_keys(self, trip_id: str) -> list[str]:
        """Keys for the trip, its truck and its route, if any."""
        async with self._uow_factory() as uow:
            trip = await self._load_trip(uow, trip_id)
        keys = [f"trip:{trip_id}", f"truck:{trip.truck_id}"]
        if trip.route_id is not None:
            keys.append(f"route:{trip.route_id}")
        return keys

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def start_trip(self, data: StartTripInput) -> Trip:
        """
        Start a new ACTIVE trip for a truck.

        Raises:
            TruckNotFound: Unknown or inactive truck
            TruckAlreadyOnTrip: The truck already has an ACTIVE trip
            InvalidOdometerReading: Negative odometer
            RouteNotFound / RouteInactive: Bad route binding
        """
        truck_id = data.truck_id.strip()

        keys = [f"truck:{truck_id}"]
        if data.route_id:
            keys.append(f"route:{data.route_id.strip().lower()}")

        async with self._locks.hold(*keys):
            async with self._uow_factory() as uow:
                trucks = self._trucks_factory(uow)
                truck = await trucks.describe(truck_id)
                if truck is None:
                    msg = f"Truck {truck_id} not found"
                    raise TruckNotFound(msg, {"truck_id": truck_id})

                existing = await uow.trips.find_active_by_truck(truck_id)
                if existing is not None:
                    msg = f"Truck {truck.label} is already on trip {existing.id}"
                    raise TruckAlreadyOnTrip(
                        msg,
                        {"truck_id": truck_id, "trip_id": str(existing.id)},
                    )

                if data.odometer_start < 0:
                    msg = "Odometer reading cannot be negative"
                    raise InvalidOdometerReading(
                        msg, {"odometer_start": data.odometer_start}
                    )

                route = None
                if data.route_id:
                    route = await uow.routes.get(data.route_id)
                    if route is None:
                        msg = f"Route {data.route_id} not found"
                        raise RouteNotFound(msg, {"route_id": data.route_id})
                    if not route.active:
                        msg = f"Route {route.name} is inactive"
                        raise RouteInactive(msg, {"route_id": str(route.id)})

                trip = Trip(
                    truck_id=truck_id,
                    route_id=route.id if route else None,
                    state=TripState.ACTIVE,
                    start_date=ensure_utc(data.start_date),
                    odometer_start=data.odometer_start,
                    observations_start=data.observations,
                    truck_label=truck.label,
                    route_name=route.name if route else None,
                )
                uow.trips.save(trip)
                if route is not None:
                    await RouteAggregator.refresh(uow, route.id)
                await trucks.mark_busy(truck_id, str(trip.id))

                try:
                    await uow.commit()
                except DuplicateResourceError as e:
                    # Another process won the race; the unique active-trip index rejected us
                    msg = f"Truck {truck.label} is already on a trip"
                    raise TruckAlreadyOnTrip(msg, {"truck_id": truck_id}) from e

        logger.info(
            "Trip %s started (truck=%s, route=%s, odometer=%d)",
            trip.id,
            truck_id,
            trip.route_id,
            trip.odometer_start,
        )
        return trip

    async def finalize_trip(
        self,
        trip_id: str,
        data: FinalizeTripInput,
    ) -> FinalizeTripResult:
        """
        Complete an ACTIVE trip, optionally creating its income record.

        The trip update, route aggregates, truck availability and income are
        committed as one unit: if the ledger or the commit fails the trip
        stays ACTIVE and no income exists.
        """
        keys = await self._lock_keys(trip_id)

        async with self._locks.hold(*keys):
            async with self._uow_factory() as uow:
                trip = await self._load_trip(uow, trip_id)
                assert_transition(trip.state, TripState.COMPLETED, str(trip.id))

                if data.km_traveled <= 0:
                    msg = "Distance traveled must be greater than zero"
                    raise InvalidDistance(msg, {"km_traveled": data.km_traveled})

                end_date = ensure_utc(data.end_date)
                if end_date < ensure_utc(trip.start_date):
                    msg = "End date cannot be before the start date"
                    raise InvalidDateRange(
                        msg,
                        {
                            "start_date": trip.start_date.isoformat(),
                            "end_date": end_date.isoformat(),
                        },
                    )

                params = data.income_params
                wants_income = params is not None and params.crear_ingreso_automatico
                if wants_income and (
                    params.monto_cobrado is None
                    or not math.isfinite(params.monto_cobrado)
                    or params.monto_cobrado <= 0
                ):
                    amount = params.monto_cobrado
                    msg = "A positive amount is required to create the income"
                    raise IncomeAmountRequired(
                        msg,
                        {
                            "monto_cobrado": (
                                amount
                                if amount is None or math.isfinite(amount)
                                else str(amount)
                            )
                        },
                    )

                ledger = self._ledger_factory(uow)
                trucks = self._trucks_factory(uow)

                expenses = await ledger.get_trip_expenses(str(trip.id))

                receipt: IncomeReceipt | None = None
                if wants_income:
                    description = (
                        params.descripcion_ingreso or ""
                    ).strip() or default_income_description(trip)
                    receipt = await self._create_income(
                        ledger, trip, params.monto_cobrado, description
                    )
                    trip.income_id = receipt.id
                    trip.income_amount = receipt.total
                    trip.income_description = description

                now = get_current_utc_time()
                trip.state = TripState.COMPLETED
                trip.end_date = end_date
                trip.km_traveled = data.km_traveled
                trip.odometer_end = trip.odometer_start + data.km_traveled
                trip.observations_final = data.observations_final
                trip.expenses_total = expenses
                trip.finalized_at = now
                uow.trips.save(trip)

                await RouteAggregator.refresh(uow, trip.route_id)
                await trucks.mark_available(trip.truck_id, odometer_km=trip.odometer_end)
                await uow.commit()

        logger.info(
            "Trip %s finalized (truck=%s, km=%d, income=%s)",
            trip.id,
            trip.truck_id,
            trip.km_traveled,
            receipt.id if receipt else None,
        )
        return FinalizeTripResult(trip=trip, income=receipt)

    @staticmethod
    async def _create_income(
        ledger: FinancialLedgerBridge,
        trip: Trip,
        amount: float,
        description: str,
    ) -> IncomeReceipt:
        try:
            return await ledger.create_income(str(trip.id), amount, description)
        except FreightError:
            raise
        except (PyMongoError, OSError) as e:
            msg = "Income could not be created"
            raise LedgerUnavailable(msg, {"trip_id": str(trip.id), "error": str(e)}) from e

    async def cancel_trip(self, trip_id: str, reason: str) -> Trip:
        """Cancel an ACTIVE trip. No odometer or financial fields are touched."""
        keys = await self._lock_keys(trip_id)

        async with self._locks.hold(*keys):
            async with self._uow_factory() as uow:
                trip = await self._load_trip(uow, trip_id)
                assert_transition(trip.state, TripState.CANCELLED, str(trip.id))

                reason = (reason or "").strip()
                if not reason:
                    msg = "A cancellation reason is required"
                    raise ValidationException(msg, {"reason": "required"})

                trip.state = TripState.CANCELLED
                trip.cancellation_reason = reason
                trip.cancelled_at = get_current_utc_time()
                uow.trips.save(trip)

                await RouteAggregator.refresh(uow, trip.route_id)
                await self._trucks_factory(uow).mark_available(trip.truck_id)
                await uow.commit()

        logger.info("Trip %s cancelled (truck=%s): %s", trip.id, trip.truck_id, reason)
        return trip

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_trip(self, trip_id: str) -> Trip:
        async with self._uow_factory() as uow:
            return await self._load_trip(uow, trip_id)

    async def list_active_trips(self) -> list[Trip]:
        async with self._uow_factory() as uow:
            return await uow.trips.list_active()

    async def list_trips(
        self,
        *,
        truck_id: str | None = None,
        state: str | TripState | None = None,
        date_from: str | date | datetime | None = None,
        date_to: str | date | datetime | None = None,
        month: int | None = None,
        year: int | None = None,
        limit: int = config.DEFAULT_TRIP_PAGE_SIZE,
        offset: int = 0,
    ) -> TripPage:
        """
        Trip history, most recent start first.

        Filters combine: ``month``/``year`` narrow the ``date_from``..``date_to``
        window further. ``total`` counts every match before pagination.

        Raises:
            ValidationException: Bad state, date, month or pagination values
            InvalidDateRange: ``date_to`` before ``date_from``
        """
        if not 1 <= limit <= config.MAX_TRIP_PAGE_SIZE:
            msg = f"limit must be between 1 and {config.MAX_TRIP_PAGE_SIZE}"
            raise ValidationException(msg, {"limit": limit})
        if offset < 0:
            msg = "offset cannot be negative"
            raise ValidationException(msg, {"offset": offset})

        trip_state: TripState | None = None
        if state is not None and str(state).strip():
            try:
                raw = str(getattr(state, "value", state))
                trip_state = TripState(raw.strip().upper())
            except ValueError as e:
                msg = f"Unknown trip state {state!r}"
                raise ValidationException(msg, {"state": str(state)}) from e

        lower = _date_bound(date_from, "date_from")
        upper = _date_bound(date_to, "date_to", upper=True)
        if lower and upper and upper < lower:
            msg = "date_to cannot be before date_from"
            raise InvalidDateRange(
                msg, {"date_from": lower.isoformat(), "date_to": upper.isoformat()}
            )

        if month is not None or year is not None:
            if year is None:
                msg = "month requires a year"
                raise ValidationException(msg, {"month": month})
            if not 1 <= year < 9999:
                msg = "year is out of range"
                raise ValidationException(msg, {"year": year})
            if month is not None and not 1 <= month <= 12:
                msg = "month must be between 1 and 12"
                raise ValidationException(msg, {"month": month})
            period_start, period_end = month_bounds(year, month)
            lower = max(lower, period_start) if lower else period_start
            upper = min(upper, period_end) if upper else period_end

        truck_id = truck_id.strip() if truck_id and truck_id.strip() else None
        async with self._uow_factory() as uow:
            matches = await uow.trips.list(
                truck_id=truck_id, state=trip_state, date_from=lower, date_to=upper
            )

        return TripPage(
            trips=matches[offset : offset + limit],
            total=len(matches),
            limit=limit,
            offset=offset,
        )

    async def get_trip_performance(self, trip_id: str) -> TripPerformance:
        trip = await self.get_trip(trip_id)
        return trip_performance(trip)

    async def get_trip_statistics(self) -> TripStatistics:
        async with self._uow_factory() as uow:
            trips = await uow.trips.list_all()

        completed = [t for t in trips if t.state == TripState.COMPLETED]
        total_km = sum(t.km_traveled or 0 for t in completed)
        return TripStatistics(
            total_trips=len(trips),
            active_trips=sum(1 for t in trips if t.state == TripState.ACTIVE),
            completed_trips=len(completed),
            cancelled_trips=sum(1 for t in trips if t.state == TripState.CANCELLED),
            total_km=total_km,
            total_income=round(sum(t.income_amount or 0.0 for t in completed), 2),
            average_km=round(total_km / len(completed), 2) if completed else None,
        )
