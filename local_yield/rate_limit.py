"""Fixed-window rate limiting for API routes.

Two backends share one interface. ``MemoryBackend`` keeps counters in a
process-local dict and is the default; ``RedisBackend`` is used when
``REDIS_URL`` is configured, so that several worker processes share the
same budget. Routes opt in with the :func:`rate_limit` decorator.
"""
from __future__ import annotations

import logging
import math
import threading
import time
from dataclasses import dataclass
from functools import wraps
from typing import Callable, Optional

import redis
from flask import current_app, request

from .errors import RateLimitError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitPreset:
    name: str
    window_ms: int
    max: int


PRESETS = {
    "AUTH": RateLimitPreset("AUTH", 60_000, 20),
    "DEFAULT": RateLimitPreset("DEFAULT", 60_000, 60),
    "MESSAGES": RateLimitPreset("MESSAGES", 60_000, 120),
}


def client_identifier() -> str:
    """First ``X-Forwarded-For`` address, then the socket peer, then ``unknown``."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return request.remote_addr or "unknown"


class MemoryBackend:
    """Process-local counters keyed on ``(identifier, window, max)``."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._store: dict[str, dict] = {}
        self._lock = threading.Lock()

    def hit(self, identifier: str, preset: RateLimitPreset) -> Optional[int]:
        """Count one request. Returns seconds to wait when over the limit."""
        now_ms = self._clock() * 1000
        key = f"{identifier}:{preset.window_ms}:{preset.max}"
        with self._lock:
            entry = self._store.get(key)
            if entry is None or now_ms >= entry["reset_at"]:
                self._store[key] = {"count": 1, "reset_at": now_ms + preset.window_ms}
                return None
            entry["count"] += 1
            if entry["count"] > preset.max:
                return max(1, math.ceil((entry["reset_at"] - now_ms) / 1000))
        return None


class RedisBackend:
    """Counters in Redis under ``rl:<identifier>:<preset>:<window start>``."""

    def __init__(self, client: "redis.Redis", clock: Callable[[], float] = time.time) -> None:
        self._client = client
        self._clock = clock

    @classmethod
    def from_url(cls, url: str) -> "RedisBackend":
        return cls(redis.Redis.from_url(url))

    def hit(self, identifier: str, preset: RateLimitPreset) -> Optional[int]:
        now_ms = int(self._clock() * 1000)
        window_start = (now_ms // preset.window_ms) * preset.window_ms
        key = f"rl:{identifier}:{preset.name}:{window_start}"
        pipe = self._client.pipeline()
        pipe.incr(key)
        pipe.pexpire(key, preset.window_ms)
        count, _ = pipe.execute()
        if int(count) > preset.max:
            return max(1, math.ceil((window_start + preset.window_ms - now_ms) / 1000))
        return None


def init_rate_limiter(app) -> None:
    """Pick the backend for ``app`` from its configuration."""
    url = app.config.get("REDIS_URL")
    if url:
        backend = RedisBackend.from_url(url)
        logger.info("Rate limiting backed by Redis")
    else:
        backend = MemoryBackend()
    app.extensions["rate_limiter"] = backend


def check_rate_limit(preset_name: str = "DEFAULT") -> None:
    """Raise ``RateLimitError`` when the current client is over budget."""
    if not current_app.config.get("RATELIMIT_ENABLED", True):
        return
    backend = current_app.extensions["rate_limiter"]
    preset = PRESETS[preset_name]
    identifier = client_identifier()
    try:
        retry_after = backend.hit(identifier, preset)
    except redis.RedisError as exc:
        # Redis outages fail open; the request proceeds unthrottled.
        logger.warning("Rate limit check failed: %s", exc)
        return
    if retry_after is not None:
        logger.info("Rate limit exceeded for %s (%s)", identifier, preset.name)
        raise RateLimitError(retry_after)


def rate_limit(preset_name: str = "DEFAULT"):
    """Decorator applying :func:`check_rate_limit` before the view runs."""

    def decorator(view):
        @wraps(view)
        def wrapper(*args, **kwargs):
            check_rate_limit(preset_name)
            return view(*args, **kwargs)

        return wrapper

    return decorator
