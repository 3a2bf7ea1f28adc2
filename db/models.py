"""Beanie ODM document models for MongoDB collections.

This module defines all document models using Beanie ODM, which provides:
- Automatic Pydantic validation
- Built-in async CRUD operations
- Proper ObjectId/datetime serialization
- Index definitions at the model level

Usage:
    from db.models import Route, Trip

    trip = await Trip.get(trip_id)
    route = await Route.find_one(Route.name == "Rosario - Córdoba")

Services never write these documents directly; every write goes through a
``db.unit_of_work.UnitOfWork`` so that one operation commits as one unit.
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any

from beanie import Document, PydanticObjectId
from pydantic import Field, field_validator
from pymongo import ASCENDING, DESCENDING, IndexModel

from date_utils import get_current_utc_time, parse_timestamp


class TripState(StrEnum):
    """Trip lifecycle states. ACTIVE is initial, the other two are terminal."""

    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


def _parse_optional_datetime(v: Any) -> datetime | None:
    if v is None:
        return None
    return parse_timestamp(v)


class Route(Document):
    """Reusable origin -> destination template shared by many trips."""

    name: str
    origin: str
    destination: str
    distance_km: float | None = None
    estimated_hours: float | None = None
    suggested_price: float | None = None
    notes: str | None = None
    active: bool = True

    # Aggregates, written only by route_templates.services.aggregator
    total_trips: int = 0
    completed_trips: int = 0
    cancelled_trips: int = 0
    active_trips: int = 0
    average_income: float | None = None
    average_real_km: float | None = None
    average_margin_pct: float | None = None
    average_days: float | None = None
    is_profitable: bool = False
    stats_updated_at: datetime | None = None

    created_at: datetime = Field(default_factory=get_current_utc_time)
    updated_at: datetime = Field(default_factory=get_current_utc_time)
    version: int = 0

    @field_validator("stats_updated_at", "created_at", "updated_at", mode="before")
    @classmethod
    def parse_datetime_fields(cls, v: Any) -> datetime | None:
        """Parse datetime fields using the centralized date_utils."""
        return _parse_optional_datetime(v)

    class Settings:
        name = "routes"
        indexes = [
            IndexModel([("active", ASCENDING)], name="routes_active_idx"),
            IndexModel(
                [("average_income", DESCENDING), ("completed_trips", DESCENDING)],
                name="routes_profitability_idx",
            ),
        ]


class Trip(Document):
    """One haul of a truck, from start to completion or cancellation."""

    truck_id: str
    route_id: PydanticObjectId | None = None
    state: TripState = TripState.ACTIVE

    start_date: datetime
    end_date: datetime | None = None

    odometer_start: int
    odometer_end: int | None = None
    km_traveled: int | None = None

    observations_start: str | None = None
    observations_final: str | None = None

    # Populated only when an automatic income was created at finalization
    income_id: str | None = None
    income_amount: float | None = None
    income_description: str | None = None
    expenses_total: float | None = None

    cancellation_reason: str | None = None

    # Denormalized labels for history display
    truck_label: str | None = None
    route_name: str | None = None

    created_at: datetime = Field(default_factory=get_current_utc_time)
    updated_at: datetime = Field(default_factory=get_current_utc_time)
    finalized_at: datetime | None = None
    cancelled_at: datetime | None = None
    version: int = 0

    @field_validator(
        "start_date",
        "end_date",
        "created_at",
        "updated_at",
        "finalized_at",
        "cancelled_at",
        mode="before",
    )
    @classmethod
    def parse_datetime_fields(cls, v: Any) -> datetime | None:
        """Parse datetime fields using the centralized date_utils."""
        return _parse_optional_datetime(v)

    @property
    def is_active(self) -> bool:
        return self.state == TripState.ACTIVE

    class Settings:
        name = "freight_trips"
        indexes = [
            IndexModel(
                [("truck_id", ASCENDING), ("state", ASCENDING)],
                name="trips_truck_state_idx",
            ),
            IndexModel([("route_id", ASCENDING)], name="trips_route_idx", sparse=True),
            IndexModel([("start_date", DESCENDING)], name="trips_start_date_idx"),
        ]


class Truck(Document):
    """Truck availability record.

    Inventory data (plate, label, odometer) is owned by the fleet inventory;
    this service only flips availability and records the last odometer.
    """

    truck_id: str
    plate: str | None = None
    label: str | None = None
    is_active: bool = True
    is_available: bool = True
    current_trip_id: str | None = None
    odometer_km: int | None = None
    updated_at: datetime = Field(default_factory=get_current_utc_time)
    version: int = 0

    @field_validator("updated_at", mode="before")
    @classmethod
    def parse_datetime_fields(cls, v: Any) -> datetime | None:
        return _parse_optional_datetime(v)

    class Settings:
        name = "trucks"
        indexes = [
            IndexModel([("truck_id", ASCENDING)], name="trucks_truck_id_idx"),
        ]


class Income(Document):
    """Income record created by the ledger bridge when a trip is finalized."""

    trip_id: str
    amount: float
    description: str
    source: str = "trip_finalization"
    created_at: datetime = Field(default_factory=get_current_utc_time)

    class Settings:
        name = "incomes"
        indexes = [
            IndexModel([("trip_id", ASCENDING)], name="incomes_trip_idx"),
        ]


class Expense(Document):
    """Expense linked to a trip. Owned by the ledger; read-only here."""

    trip_id: str | None = None
    amount: float
    description: str | None = None
    expense_date: datetime | None = None

    @field_validator("expense_date", mode="before")
    @classmethod
    def parse_datetime_fields(cls, v: Any) -> datetime | None:
        return _parse_optional_datetime(v)

    class Settings:
        name = "expenses"
        indexes = [
            IndexModel([("trip_id", ASCENDING)], name="expenses_trip_idx", sparse=True),
        ]


# List of all document models for Beanie initialization
ALL_DOCUMENT_MODELS = [
    Route,
    Trip,
    Truck,
    Income,
    Expense,
]
