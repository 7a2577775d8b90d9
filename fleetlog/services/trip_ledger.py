"""
Trip ledger — create / complete / delete / list trip records.

Each trip is written under ``trip:{id}`` plus an index entry
``user_trip:{user_id}:{id}``. The two writes are independent: when the
index write fails the trip record is kept and the error is surfaced, so a
trip can exist without an index entry. The reverse (index entry without a
trip, a "ghost") is cleaned up when the owner deletes it.
"""
import logging
import uuid
from typing import Any, Iterable, Optional

from fastapi import Depends
from pydantic import ValidationError

from fleetlog.exceptions import ConflictError, PermissionDeniedError, ResourceNotFoundError, StoreError
from fleetlog.schemas.schemas import (
    CurrentUser, Trip, TripCompleteRequest, TripCreateRequest, TripStatusEnum,
)
from fleetlog.services.availability import parse_timestamp, resolve_availability
from fleetlog.services.kv_store import (
    TRIP_PREFIX, KVStore, get_store, trip_key, user_trip_key, user_trip_prefix,
)
from fleetlog.services.roles import is_admin_tier
from fleetlog.utils import normalize_plate, utc_now_iso

logger = logging.getLogger(__name__)


def parse_trip(value: Any) -> Optional[Trip]:
    """
    Validate a stored trip. Fields that fail validation are dropped rather
    than the whole record, so a damaged in_progress trip keeps blocking its
    vehicle. Records without a usable id, plate or status are skipped.
    """
    if not isinstance(value, dict) or not value.get("id"):
        return None
    try:
        return Trip.model_validate(value)
    except ValidationError as exc:
        invalid = {err["loc"][0] for err in exc.errors() if err["loc"]}
        logger.warning("Trip record %s has invalid fields %s; ignoring them", value.get("id"), sorted(map(str, invalid)))

    try:
        return Trip.model_validate({k: v for k, v in value.items() if k not in invalid})
    except ValidationError:
        logger.warning("Skipping malformed trip record %s", value.get("id"))
        return None


def load_trips(values: Iterable[Any]) -> list[Trip]:
    return [t for t in (parse_trip(v) for v in values) if t is not None]


def dedupe_preferring_completed(trips: Iterable[Trip]) -> list[Trip]:
    """
    Collapse records sharing an id. A completed copy wins over an
    in_progress one; between two completed copies the later completedAt wins.
    """
    chosen: dict[str, Trip] = {}
    for trip in trips:
        existing = chosen.get(trip.id)
        if existing is None:
            chosen[trip.id] = trip
        elif trip.status == TripStatusEnum.completed:
            if existing.status != TripStatusEnum.completed:
                chosen[trip.id] = trip
            elif parse_timestamp(trip.completed_at) > parse_timestamp(existing.completed_at):
                chosen[trip.id] = trip
    return list(chosen.values())


def dedupe_first(trips: Iterable[Trip]) -> list[Trip]:
    chosen: dict[str, Trip] = {}
    for trip in trips:
        chosen.setdefault(trip.id, trip)
    return list(chosen.values())


def filter_trips(
    trips: Iterable[Trip],
    driver_name: Optional[str] = None,
    vehicle: Optional[str] = None,
    date: Optional[str] = None,
) -> list[Trip]:
    result = []
    for trip in trips:
        if driver_name and trip.user_name != driver_name:
            continue
        if vehicle and trip.vehicle_plate != normalize_plate(vehicle):
            continue
        if date and not ((trip.time_start or "").startswith(date) or (trip.created_at or "").startswith(date)):
            continue
        result.append(trip)
    return result


class TripLedger:
    def __init__(self, store: KVStore):
        self.store = store

    async def all_trips(self) -> list[Trip]:
        return load_trips(await self.store.scan(TRIP_PREFIX))

    async def get(self, trip_id: str) -> Optional[Trip]:
        return parse_trip(await self.store.get(trip_key(trip_id)))

    async def create(self, user: CurrentUser, payload: TripCreateRequest) -> Trip:
        plate = normalize_plate(payload.vehicle_plate)

        availability = resolve_availability(await self.all_trips(), plate)
        if not availability.is_available:
            occupant = availability.active_trip.user_name or "another driver"
            logger.info("Vehicle %s is already in use by %s", plate, occupant)
            raise ConflictError(f"Vehicle in use by {occupant}. Wait until the trip is finished.")

        trip = Trip(
            id=str(uuid.uuid4()),
            user_id=user.id,
            user_name=user.display_name,
            vehicle_plate=plate,
            vehicle_color=payload.vehicle_color,
            vehicle_model=payload.vehicle_model,
            km_start=payload.km_start,
            time_start=payload.time_start,
            destination=payload.destination,
            km_end=None,
            time_end=None,
            status=TripStatusEnum.in_progress,
            created_at=utc_now_iso(),
        )
        await self.store.put(trip_key(trip.id), trip.model_dump(by_alias=True, mode="json"))

        try:
            await self.store.put(user_trip_key(user.id, trip.id), trip.id)
        except StoreError:
            # No rollback: the trip record stays and still governs availability.
            logger.error("Trip %s saved but its user index entry was not", trip.id)
            raise

        logger.info("Trip %s created by %s on %s", trip.id, user.id, plate)
        return trip

    async def complete(self, user: CurrentUser, trip_id: str, payload: TripCompleteRequest) -> Trip:
        trip = await self.get(trip_id)
        if trip is None:
            raise ResourceNotFoundError("Trip")
        if trip.user_id != user.id:
            raise PermissionDeniedError()
        if trip.status == TripStatusEnum.completed:
            raise ConflictError("Trip is already completed")

        if payload.km_end < trip.km_start:
            # Accepted as sent; odometer sanity is enforced by the client.
            logger.warning(
                "Trip %s completed with kmEnd %s below kmStart %s", trip_id, payload.km_end, trip.km_start
            )

        updated = trip.model_copy(update={
            "km_end": payload.km_end,
            "time_end": payload.time_end,
            "status": TripStatusEnum.completed,
            "completed_at": utc_now_iso(),
        })
        await self.store.put(trip_key(trip_id), updated.model_dump(by_alias=True, mode="json"))
        logger.info("Trip %s completed by %s", trip_id, user.id)
        return updated

    async def delete(self, user: CurrentUser, trip_id: str) -> Optional[str]:
        """Delete a trip. Returns a message for the ghost-cleanup path, else None."""
        trip = await self.get(trip_id)

        if trip is None:
            logger.info("Trip %s not found; cleaning possible ghost index for user %s", trip_id, user.id)
            try:
                await self.store.delete(user_trip_key(user.id, trip_id))
            except StoreError:
                logger.warning("Ghost index cleanup failed for trip %s", trip_id)
            return "Trip cleaned up (ghost)"

        if trip.user_id != user.id and not is_admin_tier(user.role):
            raise PermissionDeniedError()

        await self.store.delete(trip_key(trip_id))
        try:
            await self.store.delete(user_trip_key(trip.user_id, trip_id))
        except StoreError:
            logger.warning("Trip %s deleted but its user index entry remains", trip_id)

        logger.info("Trip %s deleted by user %s", trip_id, user.id)
        return None

    async def list_for_user(self, user: CurrentUser) -> list[Trip]:
        trip_ids = [i for i in await self.store.scan(user_trip_prefix(user.id)) if isinstance(i, str)]
        if not trip_ids:
            return []

        raw = await self.store.get_many(trip_key(i) for i in trip_ids)
        trips = dedupe_preferring_completed(load_trips(raw))
        trips.sort(key=lambda t: parse_timestamp(t.created_at), reverse=True)
        return trips

    async def list_all(
        self,
        driver_name: Optional[str] = None,
        vehicle: Optional[str] = None,
        date: Optional[str] = None,
    ) -> list[Trip]:
        trips = dedupe_first(await self.all_trips())
        return filter_trips(trips, driver_name=driver_name, vehicle=vehicle, date=date)


async def get_trip_ledger(store: KVStore = Depends(get_store)) -> TripLedger:
    return TripLedger(store)
