"""Database package for MongoDB operations using Beanie ODM.

Modules:
    manager: DatabaseManager singleton for connection handling
    models: Beanie Document models for all collections
    indexes: Index definitions and initialization
    unit_of_work: Identity map and staged, all-or-nothing writes
    repositories: Route and trip repositories bound to a unit of work

Usage:
    from db import UnitOfWork

    async with UnitOfWork() as uow:
        trip = await uow.trips.get(trip_id)
        trip.observations_final = "Unloaded"
        uow.trips.save(trip)
        await uow.commit()
"""

from __future__ import annotations

from db.indexes import init_database
from db.manager import DatabaseManager, db_manager
from db.models import (
    ALL_DOCUMENT_MODELS,
    Expense,
    Income,
    Route,
    Trip,
    TripState,
    Truck,
)
from db.unit_of_work import UnitOfWork, run_in_unit_of_work, unit_of_work_factory

__all__ = [
    "ALL_DOCUMENT_MODELS",
    "DatabaseManager",
    "Expense",
    "Income",
    "Route",
    "Trip",
    "TripState",
    "Truck",
    "UnitOfWork",
    "db_manager",
    "init_database",
    "run_in_unit_of_work",
    "unit_of_work_factory",
]
