"""
Vehicles router — roster CRUD, fuel level, last trip and maintenance per plate.
"""
import logging

from fastapi import APIRouter, Depends, Header, Request, status

from fleetlog.middleware.auth import get_current_user, require_admin
from fleetlog.middleware.idempotency import check_idempotency, store_idempotency_result
from fleetlog.schemas.schemas import (
    CurrentUser, FuelUpdateRequest, FuelUpdateResponse, LastTripResponse, MaintenanceHistoryResponse,
    MaintenanceStatus, OilChangeRequest, SuccessResponse, VehicleCreateRequest, VehicleListResponse,
    VehicleResponse, VehicleUpdateRequest,
)
from fleetlog.services.maintenance import MaintenanceTracker, get_maintenance_tracker
from fleetlog.services.roster import VehicleRoster, get_roster
from fleetlog.utils import normalize_plate

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/vehicles", tags=["Vehicles"])


@router.get("", response_model=VehicleListResponse)
async def list_vehicles(
    user: CurrentUser = Depends(get_current_user),
    roster: VehicleRoster = Depends(get_roster),
):
    """All vehicles with isAvailable / activeTrip recomputed from the trip history."""
    return VehicleListResponse(vehicles=await roster.list_with_availability())


@router.post("", status_code=status.HTTP_201_CREATED, response_model=VehicleResponse)
async def create_vehicle(
    payload: VehicleCreateRequest,
    user: CurrentUser = Depends(require_admin),
    roster: VehicleRoster = Depends(get_roster),
):
    """Creating an existing plate updates it and keeps its creation metadata."""
    return VehicleResponse(vehicle=await roster.create(user, payload))


@router.put("/{plate}", response_model=VehicleResponse)
async def update_vehicle(
    plate: str,
    payload: VehicleUpdateRequest,
    user: CurrentUser = Depends(require_admin),
    roster: VehicleRoster = Depends(get_roster),
):
    vehicle = await roster.update(user, normalize_plate(plate), payload)
    return VehicleResponse(vehicle=vehicle)


@router.delete("/{plate}", response_model=SuccessResponse)
async def delete_vehicle(
    plate: str,
    user: CurrentUser = Depends(require_admin),
    roster: VehicleRoster = Depends(get_roster),
):
    await roster.delete(normalize_plate(plate))
    return SuccessResponse(message="Vehicle deleted")


@router.post("/{plate}/fuel", response_model=FuelUpdateResponse)
async def update_fuel(
    plate: str,
    payload: FuelUpdateRequest,
    user: CurrentUser = Depends(get_current_user),
    roster: VehicleRoster = Depends(get_roster),
):
    vehicle = await roster.update_fuel(user, normalize_plate(plate), payload.level)
    return FuelUpdateResponse(vehicle=vehicle)


@router.get("/{plate}/last-trip", response_model=LastTripResponse)
async def last_trip(
    plate: str,
    user: CurrentUser = Depends(get_current_user),
    roster: VehicleRoster = Depends(get_roster),
):
    return await roster.last_trip(normalize_plate(plate))


@router.get("/{plate}/maintenance", response_model=MaintenanceStatus)
async def maintenance_status(
    plate: str,
    user: CurrentUser = Depends(get_current_user),
    tracker: MaintenanceTracker = Depends(get_maintenance_tracker),
):
    return await tracker.status(normalize_plate(plate))


@router.post("/{plate}/oil-change", response_model=SuccessResponse)
async def record_oil_change(
    plate: str,
    request: Request,
    payload: OilChangeRequest,
    user: CurrentUser = Depends(get_current_user),
    tracker: MaintenanceTracker = Depends(get_maintenance_tracker),
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
):
    if idempotency_key:
        cached = await check_idempotency(request, user.id)
        if cached:
            return cached

    await tracker.record_oil_change(user, normalize_plate(plate), payload.current_km)
    response = SuccessResponse(message="Oil change recorded")

    await store_idempotency_result(request, user.id, status.HTTP_200_OK, response.model_dump())
    return response


@router.get("/{plate}/maintenance-history", response_model=MaintenanceHistoryResponse)
async def maintenance_history(
    plate: str,
    user: CurrentUser = Depends(get_current_user),
    tracker: MaintenanceTracker = Depends(get_maintenance_tracker),
):
    return MaintenanceHistoryResponse(history=await tracker.history(normalize_plate(plate)))
