from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import pytest
from pymongo.errors import OperationFailure

from core.exceptions import RepositoryUnavailable
from db import indexes
from db.indexes import ACTIVE_TRIP_PER_TRUCK_INDEX, ensure_trip_indexes, init_database


@dataclass
class FakeCollection:
    name: str = "freight_trips"
    existing: dict[str, dict[str, Any]] = field(
        default_factory=lambda: {"_id_": {"key": [("_id", 1)]}}
    )
    create_error: Exception | None = None
    created: list[dict[str, Any]] = field(default_factory=list)

    async def index_information(self) -> dict[str, dict[str, Any]]:
        return dict(self.existing)

    async def create_index(self, keys, **kwargs) -> str:
        if self.create_error is not None:
            raise self.create_error
        self.created.append(kwargs)
        self.existing[kwargs["name"]] = {
            "key": list(keys),
            "unique": kwargs.get("unique", False),
            "partialFilterExpression": kwargs.get("partialFilterExpression"),
        }
        return kwargs["name"]


@pytest.fixture
def fake_collection(monkeypatch) -> FakeCollection:
    collection = FakeCollection()

    class _TripModel:
        @classmethod
        def get_motor_collection(cls) -> FakeCollection:
            return collection

    monkeypatch.setattr(indexes, "Trip", _TripModel)
    return collection


@pytest.mark.asyncio
async def test_active_trip_index_is_created_unique_and_partial(fake_collection) -> None:
    await ensure_trip_indexes()

    assert fake_collection.created == [
        {
            "name": ACTIVE_TRIP_PER_TRUCK_INDEX,
            "unique": True,
            "partialFilterExpression": {"state": "ACTIVE"},
        }
    ]


@pytest.mark.asyncio
async def test_startup_fails_when_active_trip_index_cannot_be_built(
    fake_collection,
) -> None:
    # Two ACTIVE trips for one truck make the unique build fail
    fake_collection.create_error = OperationFailure(
        "E11000 duplicate key error", code=11000
    )

    with pytest.raises(RepositoryUnavailable) as exc_info:
        await ensure_trip_indexes()
    assert exc_info.value.details == {"index": ACTIVE_TRIP_PER_TRUCK_INDEX}

    with pytest.raises(RepositoryUnavailable):
        await init_database()


@pytest.mark.asyncio
async def test_existing_non_unique_index_is_rejected(fake_collection) -> None:
    fake_collection.existing[ACTIVE_TRIP_PER_TRUCK_INDEX] = {
        "key": [("truck_id", 1)],
    }

    with pytest.raises(RepositoryUnavailable):
        await ensure_trip_indexes()
    assert fake_collection.created == []
