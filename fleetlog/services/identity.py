"""
Identity service adapter (GoTrue-compatible REST API).

Token verification tries the anonymous key first and falls back to the
service-role key; some tokens only validate in the elevated context.
User administration always uses the service-role key.
"""
import logging
from typing import Any, Optional

import httpx

from fleetlog.config import Settings, get_settings
from fleetlog.exceptions import AppException, AuthenticationError, IdentityServiceError
from fleetlog.schemas.schemas import CurrentUser, UserSummary
from fleetlog.services.roles import Role

logger = logging.getLogger(__name__)


def to_current_user(user: dict[str, Any]) -> CurrentUser:
    metadata = user.get("user_metadata") or {}
    return CurrentUser(
        id=user["id"],
        email=user.get("email"),
        role=Role.parse(metadata.get("role")),
        name=metadata.get("name"),
    )


def to_user_summary(user: dict[str, Any]) -> UserSummary:
    metadata = user.get("user_metadata") or {}
    return UserSummary(
        id=user["id"],
        email=user.get("email"),
        role=Role.parse(metadata.get("role")),
        name=metadata.get("name") or "Unknown",
        created_at=user.get("created_at"),
        last_sign_in_at=user.get("last_sign_in_at"),
    )


def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text or f"HTTP {resp.status_code}"
    if isinstance(body, dict):
        for field in ("msg", "message", "error_description", "error"):
            if body.get(field):
                return str(body[field])
    return f"HTTP {resp.status_code}"


def _redact(token: str) -> str:
    return f"{token[:6]}...{token[-4:]}" if len(token) > 12 else "***"


class IdentityClient:
    def __init__(
        self,
        base_url: str,
        anon_key: str,
        service_role_key: str = "",
        timeout: float = 10.0,
        page_size: int = 1000,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.anon_key = anon_key
        self.service_role_key = service_role_key
        self.timeout = timeout
        self.page_size = page_size
        self.transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> "IdentityClient":
        return cls(
            base_url=settings.identity_url,
            anon_key=settings.identity_anon_key,
            service_role_key=settings.identity_service_role_key,
            timeout=settings.identity_timeout_seconds,
            page_size=settings.identity_users_page_size,
        )

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self.transport)

    # ------------------------------------------------------------------
    # Token verification
    # ------------------------------------------------------------------

    async def _fetch_user(self, token: str, api_key: str, stage: str) -> Optional[dict[str, Any]]:
        headers = {"apikey": api_key, "Authorization": f"Bearer {token}"}
        try:
            async with self._client() as client:
                resp = await client.get("/auth/v1/user", headers=headers)
        except httpx.HTTPError as exc:
            logger.warning("Token %s verification (%s) transport error: %s", _redact(token), stage, exc)
            return None

        if resp.status_code != 200:
            logger.info("Token %s rejected (%s): %s", _redact(token), stage, _error_message(resp))
            return None
        try:
            user = resp.json()
        except ValueError:
            logger.warning("Token %s verification (%s) returned a non-JSON body", _redact(token), stage)
            return None
        return user if isinstance(user, dict) and user.get("id") else None

    async def verify_token(self, token: str) -> CurrentUser:
        if not self.base_url or not self.anon_key:
            logger.error("Identity service URL or anon key is not configured")
            raise AppException("Server configuration error")

        user = await self._fetch_user(token, self.anon_key, "anon")
        if user is None and self.service_role_key:
            logger.info("Retrying token %s with service role key", _redact(token))
            user = await self._fetch_user(token, self.service_role_key, "service")

        if user is None:
            raise AuthenticationError()
        return to_current_user(user)

    # ------------------------------------------------------------------
    # User administration
    # ------------------------------------------------------------------

    async def _admin_request(self, method: str, path: str, **kwargs) -> httpx.Response:
        if not self.base_url or not self.service_role_key:
            logger.error("Identity service URL or service role key is not configured")
            raise AppException("Server configuration error")

        headers = {"apikey": self.service_role_key, "Authorization": f"Bearer {self.service_role_key}"}
        try:
            async with self._client() as client:
                return await client.request(method, path, headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            logger.error("Identity service %s %s failed: %s", method, path, exc)
            raise IdentityServiceError("Identity service unavailable") from exc

    def _raise_for_status(self, resp: httpx.Response, action: str) -> None:
        if resp.status_code >= 400:
            message = _error_message(resp)
            logger.warning("Identity service error %s: %s %s", action, resp.status_code, message)
            raise IdentityServiceError(message, upstream_status=resp.status_code)

    async def create_user(self, email: str, password: str, name: str, role: Role) -> dict[str, Any]:
        resp = await self._admin_request("POST", "/auth/v1/admin/users", json={
            "email": email,
            "password": password,
            "user_metadata": {"name": name, "role": role.value},
            # no mail server: accounts are confirmed on creation
            "email_confirm": True,
        })
        self._raise_for_status(resp, "creating user")
        return resp.json()

    async def list_users(self) -> list[dict[str, Any]]:
        resp = await self._admin_request(
            "GET", "/auth/v1/admin/users", params={"page": 1, "per_page": self.page_size}
        )
        self._raise_for_status(resp, "listing users")
        body = resp.json()
        users = body.get("users", []) if isinstance(body, dict) else body
        return [u for u in users if isinstance(u, dict) and u.get("id")]

    async def get_user(self, user_id: str) -> Optional[dict[str, Any]]:
        resp = await self._admin_request("GET", f"/auth/v1/admin/users/{user_id}")
        if resp.status_code == 404:
            return None
        self._raise_for_status(resp, "fetching user")
        return resp.json()

    async def update_user_metadata(self, user_id: str, metadata: dict[str, Any]) -> dict[str, Any]:
        resp = await self._admin_request(
            "PUT", f"/auth/v1/admin/users/{user_id}", json={"user_metadata": metadata}
        )
        self._raise_for_status(resp, "updating user")
        return resp.json()

    async def delete_user(self, user_id: str) -> None:
        resp = await self._admin_request("DELETE", f"/auth/v1/admin/users/{user_id}")
        self._raise_for_status(resp, "deleting user")


def get_identity_client() -> IdentityClient:
    return IdentityClient.from_settings(get_settings())
