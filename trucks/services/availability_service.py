"""Truck availability flags, staged on the caller's unit of work."""

from __future__ import annotations

import logging

from core.exceptions import TruckNotFound
from core.ports import TruckInfo
from db.models import Truck
from db.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)


class MongoTruckAvailability:
    """Reads trucks and flips ``is_available`` inside one unit of work."""

    def __init__(self, uow: UnitOfWork) -> None:
        self._uow = uow

    async def _load(self, truck_id: str) -> Truck | None:
        trucks = await self._uow.find(
            Truck,
            {"truck_id": truck_id},
            lambda t: t.truck_id == truck_id,
        )
        return trucks[0] if trucks else None

    async def _require(self, truck_id: str) -> Truck:
        truck = await self._load(truck_id)
        if truck is None:
            msg = f"Truck {truck_id} not found"
            raise TruckNotFound(msg, {"truck_id": truck_id})
        return truck

    async def describe(self, truck_id: str) -> TruckInfo | None:
        truck = await self._load(truck_id)
        if truck is None or not truck.is_active:
            return None
        return TruckInfo(
            truck_id=truck.truck_id,
            label=truck.label or truck.plate or truck.truck_id,
            odometer_km=truck.odometer_km,
        )

    async def mark_busy(self, truck_id: str, trip_id: str | None = None) -> None:
        truck = await self._require(truck_id)
        truck.is_available = False
        truck.current_trip_id = trip_id
        self._uow.save(truck)
        logger.debug("Truck %s marked busy (trip=%s)", truck_id, trip_id)

    async def mark_available(
        self,
        truck_id: str,
        odometer_km: int | None = None,
    ) -> None:
        truck = await self._load(truck_id)
        if truck is None:
            logger.warning("Truck %s no longer in inventory, availability not restored", truck_id)
            return
        truck.is_available = True
        truck.current_trip_id = None
        if odometer_km is not None and (
            truck.odometer_km is None or odometer_km > truck.odometer_km
        ):
            truck.odometer_km = odometer_km
        self._uow.save(truck)
        logger.debug("Truck %s marked available (odometer=%s)", truck_id, odometer_km)
