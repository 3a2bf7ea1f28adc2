"""Trip services module."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from trips.services.trip_lifecycle_service import TripLifecycleService

__all__ = ("TripLifecycleService",)


def __getattr__(name: str):
    if name == "TripLifecycleService":
        from trips.services.trip_lifecycle_service import TripLifecycleService

        return TripLifecycleService
    msg = f"module {__name__!r} has no attribute {name!r}"
    raise AttributeError(msg)
