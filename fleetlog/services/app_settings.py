"""
Global settings persisted in the store (never cached in-process, so every
instance sees the same value).
"""
from fleetlog.services.kv_store import ADMIN_REGISTRATION_KEY, KVStore


async def is_admin_registration_enabled(store: KVStore) -> bool:
    # Only an explicit true enables it; absent or malformed means disabled.
    return await store.get(ADMIN_REGISTRATION_KEY) is True


async def set_admin_registration_enabled(store: KVStore, enabled: bool) -> None:
    await store.put(ADMIN_REGISTRATION_KEY, enabled)
