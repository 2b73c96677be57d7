from __future__ import annotations

import logging
from typing import Generic, TypeVar

import redis
from pydantic import ValidationError

from safarigam.api.models import Document, Identity, ProfileState


logger = logging.getLogger(__name__)

KEY_PREFIX = "safarigam"
PROBE_KEY_SUFFIX = "__storage_test__"

DocT = TypeVar("DocT", bound=Document)


def profile_key(*, version: str, profile_id: str) -> str:
    return f"{KEY_PREFIX}:{version}:{profile_id}:state"


def identity_key(*, version: str, profile_id: str) -> str:
    return f"{KEY_PREFIX}:{version}:{profile_id}:user"


class DocumentStore(Generic[DocT]):
    """Best-effort storage of one JSON document under one Redis key.

    Every operation reports failure through its return value and never raises:
    an unavailable or full store must not take the progression engine down.
    """

    model: type[DocT]

    def __init__(self, *, r: redis.Redis, key: str) -> None:
        self._r = r
        self.key = key

    def probe(self) -> bool:
        sentinel = f"{self.key}:{PROBE_KEY_SUFFIX}"
        try:
            self._r.set(sentinel, sentinel)
            self._r.delete(sentinel)
        except redis.RedisError as e:
            logger.warning("Storage probe failed for %s: %s", self.key, e)
            return False
        return True

    def load(self) -> DocT | None:
        try:
            raw = self._r.get(self.key)
        except redis.RedisError as e:
            logger.warning("Failed to load %s: %s", self.key, e)
            return None
        except UnicodeDecodeError as e:
            # Raised by the client itself when `decode_responses=True` meets non-UTF-8 bytes.
            logger.warning("Discarding undecodable document at %s: %s", self.key, e)
            return None
        if not raw:
            return None
        try:
            # Validation fills defaults for fields the stored document predates.
            return self.model.model_validate_json(raw)
        except ValidationError as e:
            logger.warning("Discarding malformed document at %s: %s", self.key, e.errors()[:3])
            return None

    def save(self, doc: DocT) -> bool:
        try:
            self._r.set(self.key, doc.to_json())
        except redis.RedisError as e:
            logger.warning("Failed to save %s: %s", self.key, e)
            return False
        return True

    def clear(self) -> bool:
        try:
            self._r.delete(self.key)
        except redis.RedisError as e:
            logger.warning("Failed to clear %s: %s", self.key, e)
            return False
        return True


class ProfileStore(DocumentStore[ProfileState]):
    model = ProfileState

    @classmethod
    def for_profile(cls, *, r: redis.Redis, profile_id: str, version: str) -> "ProfileStore":
        return cls(r=r, key=profile_key(version=version, profile_id=profile_id))


class IdentityStore(DocumentStore[Identity]):
    model = Identity

    @classmethod
    def for_profile(cls, *, r: redis.Redis, profile_id: str, version: str) -> "IdentityStore":
        return cls(r=r, key=identity_key(version=version, profile_id=profile_id))
