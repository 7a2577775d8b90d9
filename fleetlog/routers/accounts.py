"""
Accounts router — POST /signup and the admin-registration setting.
"""
import logging

from fastapi import APIRouter, Depends

from fleetlog.exceptions import IdentityServiceError, PermissionDeniedError, ValidationFailedError
from fleetlog.middleware.auth import require_admin
from fleetlog.schemas.schemas import (
    AdminRegistrationSetting, AdminRegistrationUpdateResponse, CurrentUser, SignupRequest, UserSummary,
)
from fleetlog.services.app_settings import is_admin_registration_enabled, set_admin_registration_enabled
from fleetlog.services.identity import IdentityClient, get_identity_client, to_user_summary
from fleetlog.services.kv_store import KVStore, get_store
from fleetlog.services.roles import Role

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Accounts"])


@router.post("/signup", response_model=dict[str, UserSummary])
async def signup(
    payload: SignupRequest,
    store: KVStore = Depends(get_store),
    identity: IdentityClient = Depends(get_identity_client),
):
    """Self-service signup. Admin accounts only while admin registration is enabled."""
    role = Role(payload.role)
    if role is Role.admin and not await is_admin_registration_enabled(store):
        logger.info("Admin signup blocked for %s: registration disabled", payload.email)
        raise PermissionDeniedError("Registration of new administrators is currently disabled.")

    try:
        user = await identity.create_user(payload.email, payload.password, payload.name, role)
    except IdentityServiceError as exc:
        if exc.upstream_status is None:
            raise
        raise ValidationFailedError(exc.message) from exc

    logger.info("User %s signed up as %s", user.get("id"), role.value)
    return {"user": to_user_summary(user)}


@router.get("/settings/admin-registration", response_model=AdminRegistrationSetting)
async def get_admin_registration(store: KVStore = Depends(get_store)):
    return AdminRegistrationSetting(enabled=await is_admin_registration_enabled(store))


@router.put("/settings/admin-registration", response_model=AdminRegistrationUpdateResponse)
async def update_admin_registration(
    payload: AdminRegistrationSetting,
    user: CurrentUser = Depends(require_admin),
    store: KVStore = Depends(get_store),
):
    await set_admin_registration_enabled(store, payload.enabled)
    logger.info("Admin registration set to %s by %s", payload.enabled, user.id)
    return AdminRegistrationUpdateResponse(enabled=payload.enabled)
