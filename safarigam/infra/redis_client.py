from __future__ import annotations

import os

import redis


def get_redis_url() -> str:
    return os.environ.get("REDIS_URL", "redis://localhost:6379/0")


def get_socket_timeout_s() -> float:
    return float(os.environ.get("SAFARIGAM_REDIS_TIMEOUT_S", "0.5"))


def create_redis() -> redis.Redis:
    """Client for profile/identity documents.

    Short socket timeouts: an unreachable store must turn into a failed save quickly
    rather than stall the progression engine.
    """

    timeout = get_socket_timeout_s()
    return redis.Redis.from_url(
        get_redis_url(),
        decode_responses=True,
        socket_timeout=timeout,
        socket_connect_timeout=timeout,
    )
