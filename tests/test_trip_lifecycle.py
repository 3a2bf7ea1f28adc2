from __future__ import annotations

import asyncio
from datetime import UTC, datetime

import pytest
from factories import finalize_input, make_route, make_truck, start_input

from core.exceptions import (
    IncomeAmountRequired,
    InvalidDateRange,
    InvalidDistance,
    InvalidOdometerReading,
    LedgerUnavailable,
    RouteInactive,
    RouteNotFound,
    TripNotActive,
    TripNotFound,
    TruckAlreadyOnTrip,
    TruckNotFound,
    ValidationException,
)
from db.models import Expense, Income, Route, Trip, TripState, Truck
from trips.models import FinalizeTripInput, IncomeParams
from trips.services.trip_lifecycle_service import TripLifecycleService


async def _truck(truck_id: str = "7") -> Truck:
    return await Truck.find_one(Truck.truck_id == truck_id)


@pytest.mark.asyncio
async def test_start_trip_creates_active_trip_and_marks_truck_busy(
    beanie_db, trip_service
) -> None:
    await make_truck("7")

    trip = await trip_service.start_trip(start_input("7", odometer_start=10000))

    assert trip.state == TripState.ACTIVE
    assert trip.odometer_start == 10000
    assert trip.truck_label == "Truck 7"

    stored = await Trip.get(trip.id)
    assert stored is not None
    assert stored.state == TripState.ACTIVE
    assert stored.start_date == datetime(2024, 1, 1, tzinfo=UTC)

    truck = await _truck("7")
    assert truck.is_available is False
    assert truck.current_trip_id == str(trip.id)


@pytest.mark.asyncio
async def test_finalize_with_income_completes_trip_and_frees_truck(
    beanie_db, trip_service
) -> None:
    await make_truck("7")
    trip = await trip_service.start_trip(start_input("7", odometer_start=10000))

    result = await trip_service.finalize_trip(
        str(trip.id), finalize_input(km=500, amount=150000)
    )

    assert result.trip.state == TripState.COMPLETED
    assert result.trip.odometer_end == 10500
    assert result.income is not None
    assert result.income.total == pytest.approx(150000)

    incomes = await Income.find(Income.trip_id == str(trip.id)).to_list()
    assert len(incomes) == 1
    assert incomes[0].amount == pytest.approx(150000)
    assert incomes[0].description == "Flete - Viaje Truck 7 (Destino personalizado)"
    assert str(incomes[0].id) == result.income.id

    stored = await Trip.get(trip.id)
    assert stored.state == TripState.COMPLETED
    assert stored.income_id == result.income.id
    assert stored.income_amount == pytest.approx(150000)
    assert stored.end_date == datetime(2024, 1, 3, tzinfo=UTC)

    truck = await _truck("7")
    assert truck.is_available is True
    assert truck.current_trip_id is None
    assert truck.odometer_km == 10500


@pytest.mark.asyncio
async def test_second_start_for_busy_truck_is_rejected(beanie_db, trip_service) -> None:
    await make_truck("7")
    first = await trip_service.start_trip(start_input("7"))

    with pytest.raises(TruckAlreadyOnTrip) as exc_info:
        await trip_service.start_trip(start_input("7", odometer_start=10100))

    assert exc_info.value.details["trip_id"] == str(first.id)
    assert await Trip.find(Trip.truck_id == "7").count() == 1


@pytest.mark.asyncio
async def test_concurrent_starts_for_one_truck_yield_one_active_trip(
    beanie_db, trip_service
) -> None:
    await make_truck("7")

    results = await asyncio.gather(
        trip_service.start_trip(start_input("7")),
        trip_service.start_trip(start_input("7")),
        return_exceptions=True,
    )

    started = [r for r in results if isinstance(r, Trip)]
    rejected = [r for r in results if isinstance(r, TruckAlreadyOnTrip)]
    assert len(started) == 1
    assert len(rejected) == 1
    active = await Trip.find({"truck_id": "7", "state": "ACTIVE"}).to_list()
    assert len(active) == 1


@pytest.mark.asyncio
async def test_truck_can_start_again_after_finalize(beanie_db, trip_service) -> None:
    await make_truck("7")
    trip = await trip_service.start_trip(start_input("7", odometer_start=50000))
    result = await trip_service.finalize_trip(str(trip.id), finalize_input(km=700))
    assert result.trip.odometer_end == 50700
    assert result.income is None

    second = await trip_service.start_trip(
        start_input(
            "7",
            odometer_start=50700,
            start_date=datetime(2024, 1, 4, tzinfo=UTC),
        )
    )
    assert second.state == TripState.ACTIVE


@pytest.mark.asyncio
async def test_finalize_with_zero_km_leaves_trip_active(beanie_db, trip_service) -> None:
    await make_truck("7")
    trip = await trip_service.start_trip(start_input("7"))

    with pytest.raises(InvalidDistance):
        await trip_service.finalize_trip(str(trip.id), finalize_input(km=0, amount=1000))

    stored = await Trip.get(trip.id)
    assert stored.state == TripState.ACTIVE
    assert stored.odometer_end is None
    assert await Income.find_all().count() == 0
    assert (await _truck("7")).is_available is False


@pytest.mark.asyncio
async def test_finalize_rejects_end_before_start(beanie_db, trip_service) -> None:
    await make_truck("7")
    trip = await trip_service.start_trip(
        start_input("7", start_date=datetime(2024, 1, 10, tzinfo=UTC))
    )

    with pytest.raises(InvalidDateRange):
        await trip_service.finalize_trip(
            str(trip.id),
            finalize_input(km=100, end_date=datetime(2024, 1, 9, tzinfo=UTC)),
        )

    assert (await Trip.get(trip.id)).state == TripState.ACTIVE


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [None, 0, -10, float("nan"), float("inf")])
async def test_auto_income_requires_positive_amount(
    beanie_db, trip_service, amount
) -> None:
    await make_truck("7")
    trip = await trip_service.start_trip(start_input("7"))

    data = FinalizeTripInput(
        end_date=datetime(2024, 1, 3, tzinfo=UTC),
        km_traveled=300,
        income_params=IncomeParams(crear_ingreso_automatico=True, monto_cobrado=amount),
    )
    with pytest.raises(IncomeAmountRequired):
        await trip_service.finalize_trip(str(trip.id), data)

    assert (await Trip.get(trip.id)).state == TripState.ACTIVE
    assert await Income.find_all().count() == 0


@pytest.mark.asyncio
async def test_income_description_uses_route_and_custom_text(
    beanie_db, trip_service
) -> None:
    await make_truck("7", label="Scania R450")
    route = await make_route("Rosario - Córdoba")
    trip = await trip_service.start_trip(start_input("7", route_id=str(route.id)))
    other = await make_truck("8")
    second = await trip_service.start_trip(start_input(other.truck_id))

    await trip_service.finalize_trip(str(trip.id), finalize_input(km=400, amount=900))
    await trip_service.finalize_trip(
        str(second.id),
        finalize_input(
            km=100,
            income_params=IncomeParams(
                crear_ingreso_automatico=True,
                monto_cobrado=50,
                descripcion_ingreso="  Flete especial  ",
            ),
        ),
    )

    first_income = await Income.find_one(Income.trip_id == str(trip.id))
    second_income = await Income.find_one(Income.trip_id == str(second.id))
    assert first_income.description == "Flete - Viaje Scania R450 (Rosario - Córdoba)"
    assert second_income.description == "Flete especial"


@pytest.mark.asyncio
async def test_ledger_failure_aborts_finalize(beanie_db, uow_factory) -> None:
    class FailingLedger:
        def __init__(self, uow) -> None:
            self.uow = uow

        async def get_trip_expenses(self, trip_id: str) -> float | None:
            return None

        async def create_income(self, trip_id, amount, description):
            msg = "ledger offline"
            raise LedgerUnavailable(msg)

    service = TripLifecycleService(uow_factory)
    failing = TripLifecycleService(uow_factory, ledger_factory=FailingLedger)

    await make_truck("7")
    route = await make_route()
    trip = await service.start_trip(start_input("7", route_id=str(route.id)))

    with pytest.raises(LedgerUnavailable):
        await failing.finalize_trip(str(trip.id), finalize_input(km=500, amount=1000))

    stored = await Trip.get(trip.id)
    assert stored.state == TripState.ACTIVE
    assert stored.income_id is None
    assert await Income.find_all().count() == 0

    stored_route = await Route.get(route.id)
    assert stored_route.active_trips == 1
    assert stored_route.completed_trips == 0
    assert (await _truck("7")).is_available is False

    # The trip can still be finalized once the ledger is back
    result = await service.finalize_trip(str(trip.id), finalize_input(km=500, amount=1000))
    assert result.trip.state == TripState.COMPLETED


@pytest.mark.asyncio
async def test_finalize_and_cancel_are_not_repeatable(beanie_db, trip_service) -> None:
    await make_truck("7")
    await make_truck("8")
    finished = await trip_service.start_trip(start_input("7"))
    cancelled = await trip_service.start_trip(start_input("8"))

    await trip_service.finalize_trip(str(finished.id), finalize_input(km=10, amount=100))
    await trip_service.cancel_trip(str(cancelled.id), "Client cancelled")

    with pytest.raises(TripNotActive):
        await trip_service.finalize_trip(str(finished.id), finalize_input(km=10, amount=100))
    with pytest.raises(TripNotActive):
        await trip_service.cancel_trip(str(finished.id), "too late")
    with pytest.raises(TripNotActive):
        await trip_service.cancel_trip(str(cancelled.id), "again")

    assert await Income.find_all().count() == 1
    stored = await Trip.get(cancelled.id)
    assert stored.cancellation_reason == "Client cancelled"


@pytest.mark.asyncio
async def test_cancel_trip_keeps_odometer_and_finances_untouched(
    beanie_db, trip_service
) -> None:
    await make_truck("7", odometer_km=9000)
    trip = await trip_service.start_trip(start_input("7"))

    cancelled = await trip_service.cancel_trip(str(trip.id), "  Breakdown ")

    assert cancelled.state == TripState.CANCELLED
    assert cancelled.cancellation_reason == "Breakdown"
    assert cancelled.cancelled_at is not None
    assert cancelled.odometer_end is None
    assert cancelled.km_traveled is None
    assert cancelled.income_id is None

    truck = await _truck("7")
    assert truck.is_available is True
    assert truck.odometer_km == 9000


@pytest.mark.asyncio
async def test_cancel_requires_reason(beanie_db, trip_service) -> None:
    await make_truck("7")
    trip = await trip_service.start_trip(start_input("7"))

    with pytest.raises(ValidationException):
        await trip_service.cancel_trip(str(trip.id), "   ")

    assert (await Trip.get(trip.id)).state == TripState.ACTIVE


@pytest.mark.asyncio
async def test_start_trip_preconditions(beanie_db, trip_service) -> None:
    await make_truck("7")
    await make_truck("9", is_active=False)
    inactive = await make_route("Salta - Jujuy", active=False)

    with pytest.raises(TruckNotFound):
        await trip_service.start_trip(start_input("404"))
    with pytest.raises(TruckNotFound):
        await trip_service.start_trip(start_input("9"))
    with pytest.raises(InvalidOdometerReading):
        await trip_service.start_trip(start_input("7", odometer_start=-1))
    with pytest.raises(RouteNotFound):
        await trip_service.start_trip(start_input("7", route_id="65a000000000000000000000"))
    with pytest.raises(RouteNotFound):
        await trip_service.start_trip(start_input("7", route_id="not-an-id"))
    with pytest.raises(RouteInactive):
        await trip_service.start_trip(start_input("7", route_id=str(inactive.id)))

    assert await Trip.find_all().count() == 0
    assert (await _truck("7")).is_available is True


@pytest.mark.asyncio
async def test_unknown_trip_ids_raise_not_found(beanie_db, trip_service) -> None:
    with pytest.raises(TripNotFound):
        await trip_service.finalize_trip("65a000000000000000000000", finalize_input())
    with pytest.raises(TripNotFound):
        await trip_service.cancel_trip("garbage", "reason")
    with pytest.raises(TripNotFound):
        await trip_service.get_trip("65a000000000000000000000")


@pytest.mark.asyncio
async def test_expenses_are_snapshotted_into_performance(
    beanie_db, trip_service
) -> None:
    await make_truck("7")
    trip = await trip_service.start_trip(start_input("7"))
    await Expense(trip_id=str(trip.id), amount=200.0, description="Fuel").insert()
    await Expense(trip_id=str(trip.id), amount=100.0, description="Tolls").insert()

    await trip_service.finalize_trip(str(trip.id), finalize_input(km=500, amount=1000))
    performance = await trip_service.get_trip_performance(str(trip.id))

    assert performance.expenses == pytest.approx(300.0)
    assert performance.profit == pytest.approx(700.0)
    assert performance.margin_percentage == pytest.approx(70.0)
    assert performance.profit_per_km == pytest.approx(1.4)
    assert performance.income_per_km == pytest.approx(2.0)
    assert performance.duration_days == pytest.approx(2.0)
    assert performance.is_excellent is True


@pytest.mark.asyncio
async def test_trip_statistics_and_active_listing(beanie_db, trip_service) -> None:
    for truck_id in ("1", "2", "3"):
        await make_truck(truck_id)
    done = await trip_service.start_trip(start_input("1"))
    dropped = await trip_service.start_trip(start_input("2"))
    running = await trip_service.start_trip(start_input("3"))
    await trip_service.finalize_trip(str(done.id), finalize_input(km=250, amount=400))
    await trip_service.cancel_trip(str(dropped.id), "No load")

    active = await trip_service.list_active_trips()
    assert [t.id for t in active] == [running.id]

    stats = await trip_service.get_trip_statistics()
    assert stats.total_trips == 3
    assert stats.active_trips == 1
    assert stats.completed_trips == 1
    assert stats.cancelled_trips == 1
    assert stats.total_km == 250
    assert stats.total_income == pytest.approx(400)
    assert stats.average_km == pytest.approx(250)


@pytest.mark.asyncio
async def test_non_finite_income_leaves_route_averages_clean(
    beanie_db, trip_service
) -> None:
    route = await make_route()
    await make_truck("7")
    trip = await trip_service.start_trip(start_input("7", route_id=str(route.id)))

    with pytest.raises(IncomeAmountRequired) as exc_info:
        await trip_service.finalize_trip(
            str(trip.id), finalize_input(km=100, amount=float("nan"))
        )
    assert exc_info.value.details == {"monto_cobrado": "nan"}

    await trip_service.finalize_trip(str(trip.id), finalize_input(km=100, amount=800))

    stored = await Route.get(route.id)
    assert stored.completed_trips == 1
    assert stored.average_income == pytest.approx(800)


@pytest.mark.asyncio
async def test_two_trucks_finalize_on_one_route_concurrently(
    beanie_db, trip_service
) -> None:
    route = await make_route()
    await make_truck("1")
    await make_truck("2")
    first = await trip_service.start_trip(start_input("1", route_id=str(route.id)))
    second = await trip_service.start_trip(start_input("2", route_id=str(route.id)))

    results = await asyncio.gather(
        trip_service.finalize_trip(str(first.id), finalize_input(km=100, amount=100)),
        trip_service.finalize_trip(str(second.id), finalize_input(km=100, amount=300)),
    )

    assert [r.trip.state for r in results] == [TripState.COMPLETED] * 2
    stored = await Route.get(route.id)
    assert stored.total_trips == 2
    assert stored.completed_trips == 2
    assert stored.average_income == pytest.approx(200)


@pytest.mark.asyncio
async def test_two_trucks_start_on_one_route_concurrently(
    beanie_db, trip_service
) -> None:
    route = await make_route()
    await make_truck("1")
    await make_truck("2")

    trips = await asyncio.gather(
        trip_service.start_trip(start_input("1", route_id=str(route.id))),
        trip_service.start_trip(start_input("2", route_id=str(route.id))),
    )

    assert {t.truck_id for t in trips} == {"1", "2"}
    assert (await Route.get(route.id)).total_trips == 2


async def _history_fixture(trip_service) -> dict[str, Trip]:
    for truck_id in ("1", "2"):
        await make_truck(truck_id)
    jan = await trip_service.start_trip(
        start_input("1", start_date=datetime(2024, 1, 10, tzinfo=UTC))
    )
    await trip_service.finalize_trip(
        str(jan.id),
        finalize_input(km=100, end_date=datetime(2024, 1, 12, tzinfo=UTC)),
    )
    feb = await trip_service.start_trip(
        start_input("1", start_date=datetime(2024, 2, 5, 18, tzinfo=UTC))
    )
    await trip_service.cancel_trip(str(feb.id), "Breakdown")
    mar = await trip_service.start_trip(
        start_input("2", start_date=datetime(2024, 3, 1, tzinfo=UTC))
    )
    return {"jan": jan, "feb": feb, "mar": mar}


@pytest.mark.asyncio
async def test_list_trips_filters_and_paginates(beanie_db, trip_service) -> None:
    trips = await _history_fixture(trip_service)

    everything = await trip_service.list_trips()
    assert everything.total == 3
    assert [t.id for t in everything.trips] == [
        trips["mar"].id,
        trips["feb"].id,
        trips["jan"].id,
    ]

    by_truck = await trip_service.list_trips(truck_id="1")
    assert [t.id for t in by_truck.trips] == [trips["feb"].id, trips["jan"].id]

    completed = await trip_service.list_trips(state="completed")
    assert [t.id for t in completed.trips] == [trips["jan"].id]

    # A calendar date as upper bound includes trips later that day
    window = await trip_service.list_trips(date_from="2024-01-15", date_to="2024-02-05")
    assert [t.id for t in window.trips] == [trips["feb"].id]

    february = await trip_service.list_trips(month=2, year=2024)
    assert [t.id for t in february.trips] == [trips["feb"].id]
    assert (await trip_service.list_trips(year=2023)).total == 0

    page = await trip_service.list_trips(limit=1, offset=1)
    assert page.total == 3
    assert page.limit == 1
    assert page.offset == 1
    assert [t.id for t in page.trips] == [trips["feb"].id]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "filters",
    [
        {"state": "PAUSED"},
        {"date_from": "not-a-date"},
        {"month": 2},
        {"month": 13, "year": 2024},
        {"limit": 0},
        {"offset": -1},
    ],
)
async def test_list_trips_rejects_bad_filters(beanie_db, trip_service, filters) -> None:
    with pytest.raises(ValidationException):
        await trip_service.list_trips(**filters)


@pytest.mark.asyncio
async def test_list_trips_rejects_inverted_window(beanie_db, trip_service) -> None:
    with pytest.raises(InvalidDateRange):
        await trip_service.list_trips(date_from="2024-03-01", date_to="2024-02-01")
