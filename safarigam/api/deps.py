from __future__ import annotations

from collections.abc import Generator

import redis

from safarigam.infra.redis_client import create_redis
from safarigam.sessions import SessionRegistry, registry


_CLIENT: redis.Redis | None = None


def get_redis() -> Generator[redis.Redis, None, None]:
    # Engines keep their store client for the whole session, so the client is
    # shared process-wide instead of being closed after each request.
    global _CLIENT
    if _CLIENT is None:
        _CLIENT = create_redis()
    yield _CLIENT


def close_redis() -> None:
    global _CLIENT
    if _CLIENT is None:
        return
    try:
        _CLIENT.close()
    except Exception:
        # Some redis client versions don't require explicit close.
        pass
    _CLIENT = None


def get_registry() -> SessionRegistry:
    return registry
