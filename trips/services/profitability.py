"""Trip profitability math.

Every derived financial figure (profit, margin, per-km rates) is computed
here. Each helper returns None instead of dividing by zero or guessing a
missing input.
"""

from __future__ import annotations

from collections.abc import Iterable

from pydantic import BaseModel

import config
from date_utils import days_between
from db.models import Trip


def round_money(value: float | None) -> float | None:
    if value is None:
        return None
    return round(value, 2)


def profit(income: float | None, expenses: float | None) -> float | None:
    """Income minus expenses, or None when either side is unknown."""
    if income is None or expenses is None:
        return None
    return income - expenses


def margin_percentage(income: float | None, expenses: float | None) -> float | None:
    """Profit as a percentage of income.

    Undefined when there is no income to divide by or no expense data.
    """
    if not income or expenses is None:
        return None
    return (income - expenses) / income * 100


def profit_per_km(
    income: float | None,
    expenses: float | None,
    km: float | None,
) -> float | None:
    value = profit(income, expenses)
    if value is None or not km:
        return None
    return value / km


def income_per_km(income: float | None, km: float | None) -> float | None:
    if income is None or not km:
        return None
    return income / km


def safe_mean(values: Iterable[float | None]) -> float | None:
    """Mean of the non-None values, or None when there are none."""
    present = [v for v in values if v is not None]
    if not present:
        return None
    return sum(present) / len(present)


class TripPerformance(BaseModel):
    """Derived performance figures for one trip."""

    trip_id: str
    state: str
    km_traveled: int | None = None
    income: float | None = None
    expenses: float | None = None
    profit: float | None = None
    margin_percentage: float | None = None
    profit_per_km: float | None = None
    income_per_km: float | None = None
    duration_days: float | None = None
    is_excellent: bool = False


def trip_margin(trip: Trip) -> float | None:
    return margin_percentage(trip.income_amount, trip.expenses_total)


def trip_performance(trip: Trip) -> TripPerformance:
    income = trip.income_amount
    expenses = trip.expenses_total
    km = trip.km_traveled
    margin = margin_percentage(income, expenses)
    duration = days_between(trip.start_date, trip.end_date)

    return TripPerformance(
        trip_id=str(trip.id),
        state=str(trip.state),
        km_traveled=km,
        income=round_money(income),
        expenses=round_money(expenses),
        profit=round_money(profit(income, expenses)),
        margin_percentage=round_money(margin),
        profit_per_km=round_money(profit_per_km(income, expenses, km)),
        income_per_km=round_money(income_per_km(income, km)),
        duration_days=round(duration, 2) if duration is not None else None,
        is_excellent=margin is not None
        and margin >= config.PROFITABILITY_THRESHOLD_PCT,
    )
