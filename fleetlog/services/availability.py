"""
Vehicle availability from the trip history.

Availability is decided by the most recent trip only:

  1. keep trips for the plate
  2. order by createdAt descending (missing/unparseable -> epoch 0, last)
  3. on equal timestamps a completed trip ranks before an in_progress one
  4. the vehicle is occupied iff the first-ranked trip is in_progress

Older in_progress rows never block a vehicle. Two concurrent creates can
both pass the check; the next completion of the newer one frees the
vehicle again.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Optional

from fleetlog.schemas.schemas import Trip, TripStatusEnum


@dataclass(frozen=True)
class Availability:
    is_available: bool
    active_trip: Optional[Trip] = None


AVAILABLE = Availability(is_available=True)


def parse_timestamp(value: Optional[str]) -> float:
    """ISO-8601 string -> epoch seconds; 0.0 when missing or unparseable."""
    if not value:
        return 0.0
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (TypeError, ValueError):
        return 0.0
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp()


def recency_key(trip: Trip) -> tuple[float, int]:
    # Ascending sort on this key yields newest first, completed before in_progress.
    completed_first = 0 if trip.status == TripStatusEnum.completed else 1
    return (-parse_timestamp(trip.created_at), completed_first)


def latest_trip(trips: Iterable[Trip]) -> Optional[Trip]:
    ranked = sorted(trips, key=recency_key)
    return ranked[0] if ranked else None


def resolve_availability(trips: Iterable[Trip], plate: str) -> Availability:
    latest = latest_trip(t for t in trips if t.vehicle_plate == plate)
    if latest is not None and latest.status == TripStatusEnum.in_progress:
        return Availability(is_available=False, active_trip=latest)
    return AVAILABLE


def active_trips_by_plate(trips: Iterable[Trip]) -> dict[str, Trip]:
    """Resolve every plate in one pass; plates absent from the result are available."""
    grouped: dict[str, list[Trip]] = {}
    for trip in trips:
        if trip.vehicle_plate:
            grouped.setdefault(trip.vehicle_plate, []).append(trip)

    active: dict[str, Trip] = {}
    for plate, plate_trips in grouped.items():
        latest = latest_trip(plate_trips)
        if latest is not None and latest.status == TripStatusEnum.in_progress:
            active[plate] = latest
    return active
