from typing import Optional

from fastapi import Depends, Header
from fastapi.security import APIKeyHeader, HTTPAuthorizationCredentials, HTTPBearer

from fleetlog.exceptions import AuthenticationError, PermissionDeniedError
from fleetlog.schemas.schemas import CurrentUser
from fleetlog.services.identity import IdentityClient, get_identity_client
from fleetlog.services.roles import is_admin_tier

bearer_scheme = HTTPBearer(auto_error=False)
access_token_scheme = APIKeyHeader(name="x-access-token", auto_error=False)


def extract_token(access_token: Optional[str], authorization: Optional[str]) -> Optional[str]:
    """x-access-token wins over the Authorization header."""
    if access_token and access_token.strip():
        return access_token.strip()
    if authorization:
        token = authorization.removeprefix("Bearer ").strip()
        return token or None
    return None


async def get_current_user(
    access_token: Optional[str] = Depends(access_token_scheme),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    authorization: Optional[str] = Header(default=None, include_in_schema=False),
    identity: IdentityClient = Depends(get_identity_client),
) -> CurrentUser:
    """Resolve the caller through the identity service."""
    raw_auth = f"Bearer {credentials.credentials}" if credentials else authorization
    token = extract_token(access_token, raw_auth)
    if not token:
        raise AuthenticationError("No token provided")
    return await identity.verify_token(token)


async def require_admin(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if not is_admin_tier(user.role):
        raise PermissionDeniedError("Access denied - administrator access required")
    return user
