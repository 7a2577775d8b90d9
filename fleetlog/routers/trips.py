"""
Trips router — POST /trips, GET /trips, PUT /trips/{id}/complete, DELETE /trips/{id}
"""
import logging

from fastapi import APIRouter, Depends, Header, Request, status

from fleetlog.middleware.auth import get_current_user
from fleetlog.middleware.idempotency import check_idempotency, store_idempotency_result
from fleetlog.schemas.schemas import (
    CurrentUser, SuccessResponse, TripCompleteRequest, TripCreateRequest, TripListResponse, TripResponse,
)
from fleetlog.services.trip_ledger import TripLedger, get_trip_ledger

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/trips", tags=["Trips"])


@router.post("", status_code=status.HTTP_201_CREATED, response_model=TripResponse)
async def create_trip(
    request: Request,
    payload: TripCreateRequest,
    user: CurrentUser = Depends(get_current_user),
    ledger: TripLedger = Depends(get_trip_ledger),
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
):
    """
    Start a trip:
      1. Replay a previous response for a reused Idempotency-Key
      2. Reject with 409 if the vehicle's latest trip is still in progress
      3. Write the trip, then the caller's index entry
    """
    if idempotency_key:
        cached = await check_idempotency(request, user.id)
        if cached:
            return cached

    trip = await ledger.create(user, payload)
    response = TripResponse(trip=trip)

    await store_idempotency_result(
        request, user.id, status.HTTP_201_CREATED, response.model_dump(by_alias=True, mode="json")
    )
    return response


@router.put("/{trip_id}/complete", response_model=TripResponse)
async def complete_trip(
    trip_id: str,
    payload: TripCompleteRequest,
    user: CurrentUser = Depends(get_current_user),
    ledger: TripLedger = Depends(get_trip_ledger),
):
    trip = await ledger.complete(user, trip_id, payload)
    return TripResponse(trip=trip)


@router.delete("/{trip_id}", response_model=SuccessResponse)
async def delete_trip(
    trip_id: str,
    user: CurrentUser = Depends(get_current_user),
    ledger: TripLedger = Depends(get_trip_ledger),
):
    """Owner or admin. A missing trip still answers success after index cleanup."""
    message = await ledger.delete(user, trip_id)
    return SuccessResponse(message=message)


@router.get("", response_model=TripListResponse)
async def list_my_trips(
    user: CurrentUser = Depends(get_current_user),
    ledger: TripLedger = Depends(get_trip_ledger),
):
    return TripListResponse(trips=await ledger.list_for_user(user))
