import redis.asyncio as aioredis

from app.core.config import settings

# Shared async Redis client, created lazily on first use
_redis: aioredis.Redis | None = None


def get_redis() -> aioredis.Redis:
    global _redis
    if _redis is None:
        _redis = aioredis.from_url(settings.redis_url, decode_responses=True)
    return _redis


# ─── Failed-login lockout ──────────────────────────────────────────────────────
# Keyed by the lower-cased login email; the key expires with the lockout window.

_FAILED_LOGIN_PREFIX = "apartments:failed_login:"


def _failed_login_key(email: str) -> str:
    return f"{_FAILED_LOGIN_PREFIX}{email.strip().lower()}"


async def note_failed_login(email: str) -> int:
    """Count one failed attempt and return the running total for the window."""
    r = get_redis()
    key = _failed_login_key(email)
    attempts = await r.incr(key)
    if attempts == 1:
        await r.expire(key, settings.login_lockout_seconds)
    return attempts


async def login_retry_after(email: str) -> int:
    """Seconds until the email may try again; 0 when it is not locked."""
    r = get_redis()
    key = _failed_login_key(email)
    attempts = await r.get(key)
    if not attempts or int(attempts) < settings.login_max_attempts:
        return 0
    ttl = await r.ttl(key)
    return max(ttl, 1)


async def reset_failed_logins(email: str) -> None:
    await get_redis().delete(_failed_login_key(email))
