from __future__ import annotations
import logging
import redis.asyncio as redis
from .config import get_settings

_settings = get_settings()
_r: redis.Redis | None = None
logger = logging.getLogger(__name__)

def get_redis() -> redis.Redis:
    global _r
    if _r is None:
        _r = redis.from_url(_settings.redis_url, decode_responses=True)
    return _r

async def ping_redis() -> bool:
    try:
        r = get_redis()
        pong = await r.ping()
        return bool(pong)
    except Exception as e:
        logger.warning("Redis unreachable at %s: %s", _settings.redis_url, e)
        return False

async def close_redis() -> None:
    global _r
    if _r is not None:
        await _r.aclose()
        _r = None

# ---- Fixed-window rate limit per scanning device ----
async def allow_request(client_key: str, route_key: str) -> bool:
    """
    Fixed window: increment a counter key; allow if <= max.
    Fails open when Redis is down so scanning keeps working.
    """
    if not _settings.rl_enabled:
        return True
    key = f"rl:{route_key}:{client_key}"
    try:
        r = get_redis()
        # INCR and (re)arm the window TTL
        pipe = r.pipeline()
        pipe.incr(key)
        pipe.expire(key, _settings.rl_window_seconds)
        count, _ = await pipe.execute()
    except redis.RedisError as e:
        logger.warning("Rate limiter unavailable, allowing %s: %s", client_key, e)
        return True
    return int(count) <= _settings.rl_max_reqs
