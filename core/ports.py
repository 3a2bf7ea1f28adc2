"""
Collaborator interfaces consumed by the trip and route services.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

from db.models import Route, Trip


@dataclass(frozen=True)
class IncomeReceipt:
    """Reference to an income record created by the ledger."""

    id: str
    total: float


@dataclass(frozen=True)
class TruckInfo:
    truck_id: str
    label: str
    odometer_km: int | None = None


class RouteRepository(Protocol):
    """Interface for route persistence."""

    async def get(self, route_id: Any) -> Route | None: ...

    async def list(self, active: bool | None = None) -> list[Route]: ...

    def save(self, route: Route) -> Route: ...

    async def delete(self, route_id: Any) -> None: ...


class TripRepository(Protocol):
    """Interface for trip persistence."""

    async def get(self, trip_id: Any) -> Trip | None: ...

    async def find_active_by_truck(self, truck_id: str) -> Trip | None: ...

    def save(self, trip: Trip) -> Trip: ...

    async def list_by_route(self, route_id: Any) -> list[Trip]: ...

    async def list_active(self) -> list[Trip]: ...


class FinancialLedgerBridge(Protocol):
    """Interface to the income/expense ledger."""

    async def create_income(
        self,
        trip_id: str,
        amount: float,
        description: str,
    ) -> IncomeReceipt:
        """Create an income record linked to ``trip_id``.

        Raises ``LedgerUnavailable`` when the record cannot be created.
        """
        ...

    async def get_trip_expenses(self, trip_id: str) -> float | None:
        """Total expenses booked against the trip, or None when there are none."""
        ...


class TruckAvailability(Protocol):
    """Interface to the fleet inventory's availability flags."""

    async def describe(self, truck_id: str) -> TruckInfo | None: ...

    async def mark_busy(self, truck_id: str, trip_id: str | None = None) -> None: ...

    async def mark_available(
        self,
        truck_id: str,
        odometer_km: int | None = None,
    ) -> None: ...
