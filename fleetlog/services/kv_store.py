"""
Key-value store adapter.

Thin wrapper over the ``kv_store`` table: point get/put/delete and prefix
scan. Each write commits on its own; there are no multi-key transactions,
so callers that write several keys must tolerate partial failure.

Key layout:
  trip:{id}                              trip record
  user_trip:{user_id}:{trip_id}          per-user trip index (value: trip id)
  vehicle:{PLATE}                        vehicle record
  vehicle:{PLATE}:last_oil_change        oil-change watermark (int)
  history:maintenance:{PLATE}:{id}       maintenance history entry
  settings:admin_registration_enabled    bool
"""
import logging
from typing import Any, Iterable

from fastapi import Depends
from sqlalchemy import delete, func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from fleetlog.database import get_db
from fleetlog.exceptions import StoreError
from fleetlog.models import KVEntry

logger = logging.getLogger(__name__)

TRIP_PREFIX = "trip:"
VEHICLE_PREFIX = "vehicle:"
ADMIN_REGISTRATION_KEY = "settings:admin_registration_enabled"


def trip_key(trip_id: str) -> str:
    return f"{TRIP_PREFIX}{trip_id}"


def user_trip_prefix(user_id: str) -> str:
    return f"user_trip:{user_id}:"


def user_trip_key(user_id: str, trip_id: str) -> str:
    return f"{user_trip_prefix(user_id)}{trip_id}"


def vehicle_key(plate: str) -> str:
    return f"{VEHICLE_PREFIX}{plate}"


def oil_change_key(plate: str) -> str:
    return f"{VEHICLE_PREFIX}{plate}:last_oil_change"


def history_prefix(plate: str) -> str:
    return f"history:maintenance:{plate}:"


def history_key(plate: str, entry_id: str) -> str:
    return f"{history_prefix(plate)}{entry_id}"


_INSERT_BY_DIALECT = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def upsert_statement(dialect_name: str, key: str, value: Any):
    """INSERT ... ON CONFLICT (key) DO UPDATE, so concurrent first writes to a key cannot collide."""
    insert = _INSERT_BY_DIALECT.get(dialect_name)
    if insert is None:
        raise ValueError(f"Unsupported database dialect: {dialect_name}")
    stmt = insert(KVEntry).values(key=key, value=value)
    return stmt.on_conflict_do_update(
        index_elements=[KVEntry.key],
        set_={"value": stmt.excluded["value"], "updated_at": func.now()},
    )


class KVStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, key: str) -> Any | None:
        try:
            result = await self.db.execute(select(KVEntry.value).where(KVEntry.key == key))
            return result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            await self._fail(f"reading {key}", exc)

    async def get_many(self, keys: Iterable[str]) -> list[Any]:
        keys = list(keys)
        if not keys:
            return []
        try:
            result = await self.db.execute(select(KVEntry.value).where(KVEntry.key.in_(keys)))
            return list(result.scalars().all())
        except SQLAlchemyError as exc:
            await self._fail(f"reading {len(keys)} keys", exc)

    async def scan(self, prefix: str) -> list[Any]:
        """Return the values of every key starting with ``prefix``, in key order."""
        try:
            result = await self.db.execute(
                select(KVEntry.value)
                .where(KVEntry.key.startswith(prefix, autoescape=True))
                .order_by(KVEntry.key)
            )
            return list(result.scalars().all())
        except SQLAlchemyError as exc:
            await self._fail(f"scanning {prefix}*", exc)

    async def put(self, key: str, value: Any) -> None:
        try:
            await self.db.execute(upsert_statement(self.db.bind.dialect.name, key, value))
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self._fail(f"writing {key}", exc)

    async def delete(self, key: str) -> bool:
        try:
            result = await self.db.execute(delete(KVEntry).where(KVEntry.key == key))
            await self.db.commit()
            return result.rowcount > 0
        except SQLAlchemyError as exc:
            await self._fail(f"deleting {key}", exc)

    async def _fail(self, action: str, exc: Exception):
        logger.error("Store error %s: %s", action, exc)
        await self.db.rollback()
        raise StoreError(f"Database error {action}") from exc


async def get_store(db: AsyncSession = Depends(get_db)) -> KVStore:
    return KVStore(db)
