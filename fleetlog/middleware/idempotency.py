import json
from typing import Optional

from fastapi import Request, Response
from fastapi.responses import JSONResponse

from fleetlog.config import get_settings
from fleetlog.redis_client import get_redis

settings = get_settings()


def _cache_key(request: Request, user_id: str) -> Optional[str]:
    """Replays are scoped to the caller and to the exact operation (method + path)."""
    key = request.headers.get("Idempotency-Key")
    if not key:
        return None
    return f"idempotency:{user_id}:{request.method}:{request.url.path}:{key}"


async def check_idempotency(request: Request, user_id: str) -> Optional[Response]:
    """
    Returns the cached Response if this caller already sent the
    Idempotency-Key to this endpoint, otherwise None (proceed normally).
    """
    cache_key = _cache_key(request, user_id)
    if cache_key is None:
        return None

    redis = await get_redis()
    cached = await redis.get(cache_key)
    if cached:
        data = json.loads(cached)
        return JSONResponse(
            content=data["body"],
            status_code=data["status_code"],
            headers={"X-Idempotency-Replay": "true"},
        )
    return None


async def store_idempotency_result(request: Request, user_id: str, status_code: int, body: dict) -> None:
    """Persist the response for the request's idempotency key."""
    cache_key = _cache_key(request, user_id)
    if cache_key is None:
        return
    redis = await get_redis()
    await redis.setex(
        cache_key,
        settings.idempotency_ttl_seconds,
        json.dumps({"status_code": status_code, "body": body}),
    )
