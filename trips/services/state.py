"""Allowed trip state transitions."""

from __future__ import annotations

from core.exceptions import TripNotActive
from db.models import TripState

ALLOWED_TRANSITIONS: dict[TripState, frozenset[TripState]] = {
    TripState.ACTIVE: frozenset({TripState.COMPLETED, TripState.CANCELLED}),
    TripState.COMPLETED: frozenset(),
    TripState.CANCELLED: frozenset(),
}


def can_transition(current: TripState, target: TripState) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def assert_transition(current: TripState, target: TripState, trip_id: str | None = None) -> None:
    """Raise ``TripNotActive`` unless ``current -> target`` is allowed."""
    if not can_transition(current, target):
        msg = f"Trip is {current.value} and cannot become {target.value}"
        raise TripNotActive(
            msg,
            {"trip_id": trip_id, "state": current.value, "target": target.value},
        )
