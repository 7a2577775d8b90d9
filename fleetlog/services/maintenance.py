"""
Maintenance tracking: mileage since the last oil change, and its history.
"""
import logging
import uuid
from typing import Any, Iterable

from fastapi import Depends
from pydantic import ValidationError

from fleetlog.config import get_settings
from fleetlog.exceptions import StoreError
from fleetlog.schemas.schemas import (
    CurrentUser, MaintenanceHistoryEntry, MaintenanceStatus, Trip, TripStatusEnum,
)
from fleetlog.services.availability import parse_timestamp
from fleetlog.services.kv_store import KVStore, get_store, history_key, history_prefix, oil_change_key
from fleetlog.services.roster import VehicleRoster
from fleetlog.services.trip_ledger import TripLedger
from fleetlog.utils import utc_now_iso

logger = logging.getLogger(__name__)


def total_km(trips: Iterable[Trip], plate: str) -> int:
    return sum(
        (t.km_end or 0) - (t.km_start or 0)
        for t in trips
        if t.vehicle_plate == plate and t.status == TripStatusEnum.completed
    )


def coerce_watermark(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return int(value)


def compute_status(trips: Iterable[Trip], plate: str, last_oil_change: int, interval_km: int) -> MaintenanceStatus:
    km = total_km(trips, plate)
    since = km - last_oil_change
    return MaintenanceStatus(
        plate=plate,
        total_km=km,
        last_oil_change=last_oil_change,
        km_since_oil_change=since,
        needs_oil_change=since >= interval_km,
    )


class MaintenanceTracker:
    def __init__(self, store: KVStore, interval_km: int):
        self.store = store
        self.interval_km = interval_km
        self.ledger = TripLedger(store)

    async def watermark(self, plate: str) -> int:
        return coerce_watermark(await self.store.get(oil_change_key(plate)))

    async def status(self, plate: str) -> MaintenanceStatus:
        trips = await self.ledger.all_trips()
        return compute_status(trips, plate, await self.watermark(plate), self.interval_km)

    async def alerts(self) -> list[MaintenanceStatus]:
        trips = await self.ledger.all_trips()
        plates = {v.plate for v in await VehicleRoster(self.store).list_raw()}
        plates.update(t.vehicle_plate for t in trips if t.vehicle_plate)

        statuses = [
            compute_status(trips, plate, await self.watermark(plate), self.interval_km)
            for plate in sorted(plates)
        ]
        due = [s for s in statuses if s.needs_oil_change]
        due.sort(key=lambda s: s.km_since_oil_change, reverse=True)
        return due

    async def record_oil_change(self, user: CurrentUser, plate: str, current_km: int) -> None:
        # Overwrite, not increment.
        await self.store.put(oil_change_key(plate), current_km)

        entry = MaintenanceHistoryEntry(
            id=str(uuid.uuid4()),
            plate=plate,
            type="oil_change",
            km=current_km,
            date=utc_now_iso(),
            user_id=user.id,
            user_name=user.name or "User",
            notes=f"Oil change performed at {current_km} km",
        )
        try:
            await self.store.put(history_key(plate, entry.id), entry.model_dump(by_alias=True, mode="json"))
        except StoreError:
            logger.warning("Oil change for %s recorded but history entry %s was not saved", plate, entry.id)

    async def history(self, plate: str) -> list[MaintenanceHistoryEntry]:
        entries = []
        for value in await self.store.scan(history_prefix(plate)):
            try:
                entries.append(MaintenanceHistoryEntry.model_validate(value))
            except ValidationError:
                logger.warning("Skipping malformed maintenance history entry for %s", plate)
        entries.sort(key=lambda e: parse_timestamp(e.date), reverse=True)
        return entries


async def get_maintenance_tracker(store: KVStore = Depends(get_store)) -> MaintenanceTracker:
    return MaintenanceTracker(store, get_settings().oil_change_interval_km)
