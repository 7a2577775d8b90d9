"""
Admin router — all trips, raw roster, user management.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from fleetlog.exceptions import PermissionDeniedError, ResourceNotFoundError, ValidationFailedError
from fleetlog.middleware.auth import get_current_user, require_admin
from fleetlog.schemas.schemas import (
    CurrentUser, RoleUpdateRequest, RosterListResponse, SuccessResponse, TripListResponse, UsersResponse,
)
from fleetlog.services.identity import IdentityClient, get_identity_client, to_user_summary
from fleetlog.services.roles import Role, can_assign_role, can_delete_user
from fleetlog.services.roster import VehicleRoster, get_roster
from fleetlog.services.trip_ledger import TripLedger, get_trip_ledger

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/admin", tags=["Admin"])


@router.get("/trips", response_model=TripListResponse)
async def list_all_trips(
    driver_name: Optional[str] = Query(default=None, alias="driverName"),
    vehicle: Optional[str] = Query(default=None),
    date: Optional[str] = Query(default=None, description="YYYY-MM-DD"),
    user: CurrentUser = Depends(require_admin),
    ledger: TripLedger = Depends(get_trip_ledger),
):
    trips = await ledger.list_all(driver_name=driver_name, vehicle=vehicle, date=date)
    return TripListResponse(trips=trips)


@router.get("/vehicles", response_model=RosterListResponse)
async def list_roster(
    user: CurrentUser = Depends(require_admin),
    roster: VehicleRoster = Depends(get_roster),
):
    """Raw roster, no availability computation."""
    vehicles = await roster.list_raw()
    logger.info("User %s listed %d vehicles", user.id, len(vehicles))
    return RosterListResponse(vehicles=vehicles)


@router.get("/users", response_model=UsersResponse)
async def list_users(
    user: CurrentUser = Depends(require_admin),
    identity: IdentityClient = Depends(get_identity_client),
):
    users = await identity.list_users()
    return UsersResponse(users=[to_user_summary(u) for u in users])


@router.delete("/users/{user_id}", response_model=SuccessResponse)
async def delete_user(
    user_id: str,
    requester: CurrentUser = Depends(require_admin),
    identity: IdentityClient = Depends(get_identity_client),
):
    if requester.id == user_id:
        raise ValidationFailedError("You cannot delete your own account")

    target = await identity.get_user(user_id)
    if target is None:
        raise ResourceNotFoundError("User")

    target_role = to_user_summary(target).role
    if not can_delete_user(requester.role, target_role):
        raise PermissionDeniedError("Administrators can only delete drivers")

    await identity.delete_user(user_id)
    logger.info("User %s (%s) deleted by %s", user_id, target_role.value, requester.id)
    return SuccessResponse(message="User deleted")


@router.put("/users/{user_id}/role", response_model=SuccessResponse)
async def update_user_role(
    user_id: str,
    payload: RoleUpdateRequest,
    requester: CurrentUser = Depends(get_current_user),
    identity: IdentityClient = Depends(get_identity_client),
):
    """
    Only a super_admin may change roles, except the one-time bootstrap:
    promoting yourself to super_admin while none exists.
    """
    is_self = requester.id == user_id

    super_admin_exists = True
    if is_self and payload.role is Role.super_admin:
        users = await identity.list_users()
        super_admin_exists = any(to_user_summary(u).role is Role.super_admin for u in users)

    if not can_assign_role(requester.role, payload.role, is_self, super_admin_exists):
        if is_self and payload.role is Role.super_admin:
            raise PermissionDeniedError("A super admin already exists. Ask them to change your role.")
        raise PermissionDeniedError("Only super administrators can change user roles")

    if is_self and payload.role is Role.super_admin and not super_admin_exists:
        logger.info("Bootstrapping first super admin: %s", requester.email)

    target = await identity.get_user(user_id)
    if target is None:
        raise ResourceNotFoundError("User")

    metadata = dict(target.get("user_metadata") or {})
    metadata["role"] = payload.role.value
    await identity.update_user_metadata(user_id, metadata)
    return SuccessResponse(message=f"User updated to {payload.role.value}")
