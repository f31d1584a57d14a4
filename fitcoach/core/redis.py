"""Redis client and short-lived job locks."""
import logging
import time
import uuid

from fitcoach.config.settings import settings

logger = logging.getLogger(__name__)

# In-memory fallback for development when Redis is not available
_memory_store: dict[str, tuple[str, float | None]] = {}
_use_memory_fallback = False

LOCK_PREFIX = "lock:"


async def get_redis():
    """Get Redis client instance or None when running on the memory fallback."""
    global _use_memory_fallback

    if _use_memory_fallback:
        return None

    try:
        import redis.asyncio as redis

        client = redis.Redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
        )
        await client.ping()
        return client
    except Exception as e:
        logger.warning(f"Redis not available, using in-memory fallback: {e}")
        _use_memory_fallback = True
        return None


async def acquire_lock(name: str, ttl_seconds: int) -> str | None:
    """Try to take a named lock.

    Returns an owner token when the lock was acquired, ``None`` when another
    holder still owns it.
    """
    key = f"{LOCK_PREFIX}{name}"
    token = uuid.uuid4().hex
    client = await get_redis()

    if client:
        try:
            acquired = await client.set(key, token, nx=True, ex=ttl_seconds)
        finally:
            await client.aclose()
        return token if acquired else None

    now = time.time()
    existing = _memory_store.get(key)
    if existing is not None:
        _, expiry = existing
        if expiry is None or now < expiry:
            return None
    _memory_store[key] = (token, now + ttl_seconds)
    return token


async def release_lock(name: str, token: str) -> None:
    """Release a lock, but only if ``token`` still owns it."""
    key = f"{LOCK_PREFIX}{name}"
    client = await get_redis()

    if client:
        try:
            current = await client.get(key)
            if current == token:
                await client.delete(key)
        finally:
            await client.aclose()
        return

    existing = _memory_store.get(key)
    if existing is not None and existing[0] == token:
        del _memory_store[key]
