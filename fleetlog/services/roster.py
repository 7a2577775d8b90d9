"""
Vehicle roster: CRUD over ``vehicle:{PLATE}`` records.

Renaming a vehicle moves ``vehicle:{OLD}`` and its oil-change watermark to
the new plate and then deletes the old keys. The steps are not atomic; a
failure after the new record is written is logged and left for manual
cleanup. Trips keep the plate they were created with.
"""
import logging
from typing import Any, Optional

from fastapi import Depends
from pydantic import ValidationError

from fleetlog.exceptions import ConflictError, ResourceNotFoundError, StoreError
from fleetlog.schemas.schemas import (
    CurrentUser, LastTripResponse, TripStatusEnum, Vehicle, VehicleCreateRequest,
    VehicleUpdateRequest, VehicleWithStatus,
)
from fleetlog.services.availability import active_trips_by_plate, parse_timestamp
from fleetlog.services.kv_store import VEHICLE_PREFIX, KVStore, get_store, oil_change_key, vehicle_key
from fleetlog.services.trip_ledger import TripLedger
from fleetlog.utils import normalize_plate, utc_now_iso

logger = logging.getLogger(__name__)


def parse_vehicle(value: Any) -> Optional[Vehicle]:
    # vehicle:* scans also return watermark rows (bare ints)
    if not isinstance(value, dict) or "plate" not in value:
        return None
    try:
        return Vehicle.model_validate(value)
    except ValidationError:
        logger.warning("Skipping malformed vehicle record %s", value.get("plate"))
        return None


class VehicleRoster:
    def __init__(self, store: KVStore):
        self.store = store
        self.ledger = TripLedger(store)

    async def get(self, plate: str) -> Optional[Vehicle]:
        return parse_vehicle(await self.store.get(vehicle_key(plate)))

    async def _save(self, vehicle: Vehicle) -> None:
        await self.store.put(vehicle_key(vehicle.plate), vehicle.model_dump(by_alias=True, mode="json", exclude_none=True))

    async def list_raw(self) -> list[Vehicle]:
        values = await self.store.scan(VEHICLE_PREFIX)
        return [v for v in (parse_vehicle(x) for x in values) if v is not None]

    async def list_with_availability(self) -> list[VehicleWithStatus]:
        vehicles = await self.list_raw()
        try:
            trips = await self.ledger.all_trips()
        except StoreError:
            # Listing stays usable; trip creation re-checks availability on its own.
            logger.warning("Trip scan failed; listing %d vehicles without availability data", len(vehicles))
            trips = []

        active = active_trips_by_plate(trips)
        logger.info("Found %d vehicles, %d active trips", len(vehicles), len(active))
        return [
            VehicleWithStatus(
                **v.model_dump(),
                is_available=v.plate not in active,
                active_trip=active.get(v.plate),
            )
            for v in vehicles
        ]

    async def create(self, user: CurrentUser, payload: VehicleCreateRequest) -> Vehicle:
        plate = normalize_plate(payload.plate)
        fields = payload.model_dump(exclude={"plate"})
        now = utc_now_iso()

        existing = await self.get(plate)
        if existing is not None:
            logger.info("Vehicle %s already exists; treating create as update", plate)
            vehicle = existing.model_copy(update={
                **fields,
                "created_at": existing.created_at or now,
                "created_by": existing.created_by or user.id,
                "updated_at": now,
                "updated_by": user.id,
            })
        else:
            vehicle = Vehicle(plate=plate, **fields, created_at=now, created_by=user.id)

        await self._save(vehicle)
        return vehicle

    async def update(self, user: CurrentUser, plate: str, payload: VehicleUpdateRequest) -> Vehicle:
        existing = await self.get(plate)
        if existing is None:
            raise ResourceNotFoundError("Vehicle")

        target = normalize_plate(payload.plate) if payload.plate else plate
        renaming = target != plate
        if renaming and await self.store.get(vehicle_key(target)) is not None:
            raise ConflictError("A vehicle with the new plate is already registered.")

        changes = payload.model_dump(exclude={"plate"}, exclude_none=True)
        vehicle = existing.model_copy(update={
            **changes,
            "plate": target,
            "updated_at": utc_now_iso(),
            "updated_by": user.id,
        })
        await self._save(vehicle)

        if renaming:
            logger.info("Renaming vehicle %s to %s", plate, target)
            await self._migrate_plate(plate, target)
        return vehicle

    async def _migrate_plate(self, old: str, new: str) -> None:
        try:
            await self.store.delete(vehicle_key(old))
        except StoreError:
            logger.warning("Failed to delete old vehicle record %s after rename", old)

        try:
            watermark = await self.store.get(oil_change_key(old))
            if watermark is not None:
                await self.store.put(oil_change_key(new), watermark)
                await self.store.delete(oil_change_key(old))
        except StoreError:
            logger.warning("Failed to migrate oil-change watermark from %s to %s", old, new)

    async def delete(self, plate: str) -> None:
        if await self.get(plate) is None:
            raise ResourceNotFoundError("Vehicle")

        await self.store.delete(vehicle_key(plate))
        try:
            await self.store.delete(oil_change_key(plate))
        except StoreError:
            logger.warning("Vehicle %s deleted but its oil-change watermark remains", plate)

    async def update_fuel(self, user: CurrentUser, plate: str, level: int) -> Vehicle:
        existing = await self.get(plate)
        if existing is None:
            raise ResourceNotFoundError("Vehicle")

        vehicle = existing.model_copy(update={
            "fuel_level": level,
            "last_fuel_update": utc_now_iso(),
            "last_fuel_update_by": user.name or user.email,
        })
        await self._save(vehicle)
        return vehicle

    async def last_trip(self, plate: str) -> LastTripResponse:
        completed = [
            t for t in await self.ledger.all_trips()
            if t.vehicle_plate == plate and t.status == TripStatusEnum.completed
        ]
        if not completed:
            return LastTripResponse()

        last = max(completed, key=lambda t: parse_timestamp(t.completed_at))
        return LastTripResponse(
            last_odometer=last.km_end,
            last_trip_id=last.id,
            completed_at=last.completed_at,
        )


async def get_roster(store: KVStore = Depends(get_store)) -> VehicleRoster:
    return VehicleRoster(store)
