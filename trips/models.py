"""Pydantic models for trip lifecycle API and service operations."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator

from core.ports import IncomeReceipt
from date_utils import normalize_to_utc_datetime
from db.models import Trip


def _to_utc(value: Any) -> Any:
    if isinstance(value, str | date):
        normalized = normalize_to_utc_datetime(value)
        return normalized if normalized is not None else value
    return value


class StartTripInput(BaseModel):
    """Input for starting a trip."""

    truck_id: str
    route_id: str | None = None
    start_date: datetime
    odometer_start: int
    observations: str | None = None

    model_config = ConfigDict(extra="ignore")

    @field_validator("start_date", mode="before")
    @classmethod
    def parse_start_date(cls, v: Any) -> Any:
        return _to_utc(v)

    @field_validator("route_id", "observations", mode="before")
    @classmethod
    def blank_to_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v


class IncomeParams(BaseModel):
    """Automatic income options for finalization."""

    crear_ingreso_automatico: bool = False
    monto_cobrado: float | None = None
    descripcion_ingreso: str | None = None

    model_config = ConfigDict(extra="ignore")


class FinalizeTripInput(BaseModel):
    """Input for finalizing an active trip."""

    end_date: datetime
    km_traveled: int
    observations_final: str | None = None
    income_params: IncomeParams | None = None

    model_config = ConfigDict(extra="ignore")

    @field_validator("end_date", mode="before")
    @classmethod
    def parse_end_date(cls, v: Any) -> Any:
        return _to_utc(v)


class CancelTripInput(BaseModel):
    reason: str

    model_config = ConfigDict(extra="ignore")


class FinalizeTripResult(BaseModel):
    """Finalized trip plus the income record created with it, if any."""

    trip: Trip
    income: IncomeReceipt | None = None

    def to_response(self) -> dict[str, Any]:
        return {
            "trip": self.trip.model_dump(mode="json"),
            "income": (
                {"id": self.income.id, "total": self.income.total}
                if self.income
                else None
            ),
        }


class TripStatistics(BaseModel):
    """Fleet-wide trip counters."""

    total_trips: int = 0
    active_trips: int = 0
    completed_trips: int = 0
    cancelled_trips: int = 0
    total_km: int = 0
    total_income: float = 0.0
    average_km: float | None = None


class TripPage(BaseModel):
    """One page of trip history plus the unpaginated match count."""

    trips: list[Trip]
    total: int
    limit: int
    offset: int

    def to_response(self) -> dict[str, Any]:
        return {
            "trips": [t.model_dump(mode="json") for t in self.trips],
            "total": self.total,
            "limit": self.limit,
            "offset": self.offset,
        }
