"""Document and input builders shared by the tests."""

from __future__ import annotations

from datetime import UTC, datetime

from db.models import Route, Truck
from trips.models import FinalizeTripInput, IncomeParams, StartTripInput


async def make_truck(truck_id: str = "7", **kwargs) -> Truck:
    truck = Truck(
        truck_id=truck_id,
        plate=kwargs.pop("plate", f"AB{truck_id}CD"),
        label=kwargs.pop("label", f"Truck {truck_id}"),
        **kwargs,
    )
    await truck.insert()
    return truck


async def make_route(name: str = "Rosario - Córdoba", **kwargs) -> Route:
    origin, _, destination = name.partition(" - ")
    route = Route(
        name=name,
        origin=kwargs.pop("origin", origin or "Rosario"),
        destination=kwargs.pop("destination", destination or "Córdoba"),
        **kwargs,
    )
    await route.insert()
    return route


def start_input(truck_id: str = "7", **kwargs) -> StartTripInput:
    return StartTripInput(
        truck_id=truck_id,
        start_date=kwargs.pop("start_date", datetime(2024, 1, 1, tzinfo=UTC)),
        odometer_start=kwargs.pop("odometer_start", 10000),
        **kwargs,
    )


def finalize_input(km: int = 500, amount: float | None = None, **kwargs) -> FinalizeTripInput:
    income = None
    if amount is not None:
        income = IncomeParams(crear_ingreso_automatico=True, monto_cobrado=amount)
    return FinalizeTripInput(
        end_date=kwargs.pop("end_date", datetime(2024, 1, 3, tzinfo=UTC)),
        km_traveled=km,
        income_params=kwargs.pop("income_params", income),
        **kwargs,
    )
