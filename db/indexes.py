"""Database index definitions and initialization.

Beanie creates the lookup indexes declared on each model. This module adds
the ones Beanie settings cannot express portably, most importantly the
partial unique index that lets the database itself refuse a second ACTIVE
trip for the same truck.
"""

from __future__ import annotations

import logging
from typing import Any

import pymongo
from pymongo.errors import OperationFailure, PyMongoError

from core.exceptions import RepositoryUnavailable
from db.models import Trip, TripState

logger = logging.getLogger(__name__)

ACTIVE_TRIP_PER_TRUCK_INDEX = "freight_trips_one_active_per_truck"


async def safe_create_index(
    collection: Any,
    keys: list[tuple[str, int]],
    **kwargs: Any,
) -> str | None:
    """Create an index unless one with the same name or keys already exists.

    Returns:
        Name of the created or existing index, or None if creation failed
    """
    try:
        existing_indexes = await collection.index_information()
        keys_tuple = tuple(sorted(keys))

        for idx_name, idx_info in existing_indexes.items():
            if idx_name == "_id_":
                continue
            if idx_name == kwargs.get("name") or (
                tuple(sorted(idx_info.get("key", []))) == keys_tuple
                and idx_info.get("partialFilterExpression")
                == kwargs.get("partialFilterExpression")
            ):
                logger.info(
                    "Index '%s' already exists on %s, skipping creation",
                    idx_name,
                    collection.name,
                )
                return idx_name

        result = await collection.create_index(keys, **kwargs)
        logger.info(
            "Index created on %s with keys %s (Name: %s)",
            collection.name,
            keys_tuple,
            result,
        )
        return result
    except OperationFailure as e:
        logger.error(
            "Failed to create index %s on %s: %s",
            kwargs.get("name"),
            collection.name,
            e,
        )
        return None


async def ensure_trip_indexes() -> None:
    """Ensure the one-active-trip-per-truck index exists and is unique.

    Raises:
        RepositoryUnavailable: The index is missing or not unique, for example
            because a truck already has more than one ACTIVE trip
    """
    collection = Trip.get_motor_collection()
    name = await safe_create_index(
        collection,
        [("truck_id", pymongo.ASCENDING)],
        name=ACTIVE_TRIP_PER_TRUCK_INDEX,
        unique=True,
        partialFilterExpression={"state": TripState.ACTIVE.value},
    )
    if name is None:
        msg = f"Could not create index {ACTIVE_TRIP_PER_TRUCK_INDEX}"
        raise RepositoryUnavailable(msg, {"index": ACTIVE_TRIP_PER_TRUCK_INDEX})

    info = (await collection.index_information()).get(name, {})
    if not info.get("unique"):
        msg = f"Index {name} on {collection.name} is not unique"
        raise RepositoryUnavailable(msg, {"index": name})


async def init_database() -> None:
    """Initialize the database indexes. Called at application startup,
    after Beanie has been initialized."""
    logger.info("Initializing database...")
    try:
        await ensure_trip_indexes()
    except (PyMongoError, RepositoryUnavailable) as e:
        logger.error("Error ensuring trip indexes: %s", e)
        raise
    logger.info("Database initialization complete.")
