"""
Shared fixtures: in-memory SQLite store, mock Redis, fake identity service.
"""
import json
import uuid

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import fleetlog.redis_client as redis_client_module
from fleetlog.database import Base, get_db
from fleetlog.exceptions import StoreError
from fleetlog.main import app
from fleetlog.models import KVEntry  # noqa: F401
from fleetlog.services.identity import IdentityClient, get_identity_client
from fleetlog.services.kv_store import KVStore

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
IDENTITY_URL = "http://identity.test"
ANON_KEY = "anon-key"
SERVICE_KEY = "service-key"


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def store(session_factory):
    async with session_factory() as session:
        yield KVStore(session)


@pytest.fixture
def failing_store(monkeypatch):
    """
    Make one KVStore method raise StoreError for matching keys.
    Usage: failing_store("put", lambda key: key.startswith("user_trip:"))
    """
    def install(method, matches):
        original = getattr(KVStore, method)

        async def failing(self, key, *args, **kwargs):
            if matches(key):
                raise StoreError(f"Database error {method} {key}")
            return await original(self, key, *args, **kwargs)

        monkeypatch.setattr(KVStore, method, failing)

    return install


# ---------------------------------------------------------------------------
# Redis
# ---------------------------------------------------------------------------

class MockRedis:
    def __init__(self):
        self.store = {}

    async def get(self, key):
        return self.store.get(key)

    async def setex(self, key, ttl, value):
        self.store[key] = value
        return True

    async def aclose(self):
        pass


@pytest.fixture
def mock_redis(monkeypatch):
    redis = MockRedis()
    monkeypatch.setattr(redis_client_module, "_redis_pool", redis)
    return redis


# ---------------------------------------------------------------------------
# Identity service
# ---------------------------------------------------------------------------

class FakeIdentityService:
    """In-memory stand-in for the GoTrue REST API, served through httpx.MockTransport."""

    def __init__(self):
        self.users: dict[str, dict] = {}
        self.tokens: dict[str, str] = {}
        self.service_only_tokens: set[str] = set()
        self.requests: list[httpx.Request] = []

    def add_user(self, role="driver", name=None, email=None, service_only=False) -> tuple[str, str]:
        user_id = str(uuid.uuid4())
        metadata = {"role": role}
        if name:
            metadata["name"] = name
        self.users[user_id] = {
            "id": user_id,
            "email": email or f"{user_id[:8]}@fleet.test",
            "user_metadata": metadata,
            "created_at": "2026-01-01T00:00:00Z",
            "last_sign_in_at": None,
        }
        token = f"token-{user_id}"
        self.tokens[token] = user_id
        if service_only:
            self.service_only_tokens.add(token)
        return user_id, token

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        apikey = request.headers.get("apikey")
        path = request.url.path

        if path == "/auth/v1/user":
            token = request.headers.get("Authorization", "").removeprefix("Bearer ")
            user_id = self.tokens.get(token)
            if user_id not in self.users:
                return httpx.Response(401, json={"msg": "invalid JWT"})
            if token in self.service_only_tokens and apikey != SERVICE_KEY:
                return httpx.Response(403, json={"msg": "not allowed"})
            return httpx.Response(200, json=self.users[user_id])

        if apikey != SERVICE_KEY:
            return httpx.Response(401, json={"msg": "service role required"})

        if path == "/auth/v1/admin/users":
            if request.method == "GET":
                return httpx.Response(200, json={"users": list(self.users.values())})
            body = json.loads(request.content)
            if any(u["email"] == body["email"] for u in self.users.values()):
                return httpx.Response(422, json={"msg": "A user with this email address has already been registered"})
            user_id = str(uuid.uuid4())
            self.users[user_id] = {
                "id": user_id,
                "email": body["email"],
                "user_metadata": body["user_metadata"],
                "email_confirmed_at": "2026-01-01T00:00:00Z" if body.get("email_confirm") else None,
                "created_at": "2026-01-01T00:00:00Z",
            }
            return httpx.Response(200, json=self.users[user_id])

        if path.startswith("/auth/v1/admin/users/"):
            user_id = path.rsplit("/", 1)[1]
            if user_id not in self.users:
                return httpx.Response(404, json={"msg": "User not found"})
            if request.method == "GET":
                return httpx.Response(200, json=self.users[user_id])
            if request.method == "PUT":
                body = json.loads(request.content)
                self.users[user_id]["user_metadata"] = body["user_metadata"]
                return httpx.Response(200, json=self.users[user_id])
            if request.method == "DELETE":
                self.users.pop(user_id)
                return httpx.Response(200, json={})

        return httpx.Response(404, json={"msg": "not found"})

    def client(self) -> IdentityClient:
        return IdentityClient(
            base_url=IDENTITY_URL,
            anon_key=ANON_KEY,
            service_role_key=SERVICE_KEY,
            transport=httpx.MockTransport(self.handler),
        )


@pytest.fixture
def identity():
    return FakeIdentityService()


# ---------------------------------------------------------------------------
# API client
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def client(session_factory, identity, mock_redis):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_identity_client] = identity.client

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()


def auth(token: str) -> dict:
    return {"x-access-token": token}


@pytest.fixture
def driver(identity):
    user_id, token = identity.add_user(role="driver", name="Ana Driver")
    return {"id": user_id, "token": token, "headers": auth(token)}


@pytest.fixture
def other_driver(identity):
    user_id, token = identity.add_user(role="driver", name="Bruno Driver")
    return {"id": user_id, "token": token, "headers": auth(token)}


@pytest.fixture
def admin(identity):
    user_id, token = identity.add_user(role="admin", name="Carla Admin")
    return {"id": user_id, "token": token, "headers": auth(token)}


@pytest.fixture
def super_admin(identity):
    user_id, token = identity.add_user(role="super_admin", name="Davi Root")
    return {"id": user_id, "token": token, "headers": auth(token)}
