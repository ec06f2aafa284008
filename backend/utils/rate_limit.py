"""
Rate limiting optionnel par utilisateur (jeton Bearer hashé) ou par IP.
- fastapi-limiter (Redis) si initialisé par le lifespan.
- LOCAL_RATE_LIMIT_FALLBACK=1: fenêtre glissante en mémoire (dev, mono-process).
- Dépassement: RateLimited (429, {error, code}).
"""
from typing import Any, Dict
from urllib.parse import urlparse
import hashlib
import logging
import os
import time

from fastapi import Request, Response
from fastapi_limiter import FastAPILimiter
from fastapi_limiter.depends import RateLimiter

from backend.errors import RateLimited
from backend.utils.security import bearer_token

logger = logging.getLogger(__name__)


def user_key_from_request(request: Request) -> str:
    # Priorité: jeton Bearer (hashé, jamais stocké en clair) puis IP
    token = bearer_token(request)
    path = request.url.path
    if token:
        h = hashlib.sha256(token.encode("utf-8")).hexdigest()[:16]
        return f"user:{h}:{path}"
    ip = request.client.host if request.client else "local"
    return f"ip:{ip}:{path}"


async def _identifier(request: Request) -> str:
    return user_key_from_request(request)


async def _on_limit(request: Request, response: Response, pexpire: int):
    logger.info("rate_limit: exceeded key=%s retry_in_ms=%s", user_key_from_request(request), pexpire)
    raise RateLimited()


def _local_hit(request: Request, times: int, seconds: int) -> None:
    now = time.time()
    key = user_key_from_request(request)
    store = getattr(request.app.state, "_rl_store", None)
    if store is None:
        store = {}
        request.app.state._rl_store = store
    hits = [t for t in store.get(key, []) if now - t < seconds]
    if len(hits) >= times:
        raise RateLimited()
    hits.append(now)
    store[key] = hits


def optional_rate_limit(times: int, seconds: int):
    limiter = RateLimiter(times=times, seconds=seconds, identifier=_identifier, callback=_on_limit)

    async def _dep(request: Request, response: Response):
        if os.getenv("LOCAL_RATE_LIMIT_FALLBACK") == "1":
            _local_hit(request, times, seconds)
            return

        if getattr(request.app.state, "rate_limit_enabled", None) is not True:
            return
        if FastAPILimiter.redis is None:
            return
        await limiter(request, response)
    return _dep


def rate_limit_health_info(request: Request) -> Dict[str, Any]:
    enabled = getattr(request.app.state, "rate_limit_enabled", None)
    limiter_ready = FastAPILimiter.redis is not None
    backend = "redis" if limiter_ready else None
    if os.getenv("LOCAL_RATE_LIMIT_FALLBACK") == "1":
        backend = "memory"

    info: Dict[str, Any] = {
        "enabled": (bool(enabled) if enabled is not None else None),
        "ready": limiter_ready,
        "backend": backend,
    }

    if backend == "redis":
        settings = getattr(request.app.state, "settings", None)
        redis_url = getattr(settings, "rate_limit_redis_url", "")
        if redis_url:
            p = urlparse(redis_url)
            info["redis"] = {
                "scheme": p.scheme,
                "host": p.hostname,
                "port": p.port,
            }
    return info
