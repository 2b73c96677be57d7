from __future__ import annotations

import logging
import random
import string
import time
from collections.abc import Callable, Mapping
from datetime import UTC, datetime

from safarigam.api.models import Identity
from safarigam.persistence import IdentityStore


logger = logging.getLogger(__name__)

_BASE36 = string.digits + string.ascii_lowercase


def is_authenticated(identity: Identity | None) -> bool:
    return identity is not None and not identity.is_guest


def _epoch_ms() -> int:
    return int(time.time() * 1000)


class IdentityService:
    """Local, guest-grade identity for one profile.

    No stored identity means the player is an implicit guest. There is no backing
    authentication service: sign-up and sign-in both just establish a new record.
    """

    def __init__(
        self,
        *,
        store: IdentityStore,
        rng: random.Random | None = None,
        clock_ms: Callable[[], int] = _epoch_ms,
    ) -> None:
        self._store = store
        self._rng = rng or random.Random()
        self._clock_ms = clock_ms
        self._active: Identity | None = store.load()

    def get_active(self) -> Identity | None:
        return self._active

    def establish(self, provider: str, attributes: Mapping[str, str | None] | None = None) -> Identity:
        attrs = dict(attributes or {})
        now_ms = self._clock_ms()
        suffix = "".join(self._rng.choice(_BASE36) for _ in range(9))

        identity = Identity(
            id=f"user_{now_ms}_{suffix}",
            nickname=attrs.get("nickname") or f"Explorer{self._rng.randint(0, 9998)}",
            email=attrs.get("email") or None,
            provider=provider,
            created_at=datetime.fromtimestamp(now_ms / 1000, tz=UTC).isoformat(),
            is_guest=False,
        )
        if not self._store.save(identity):
            logger.warning("Identity %s only kept in memory", identity.id)
        self._active = identity
        logger.info("Established identity %s via %s", identity.id, provider)
        return identity

    def revoke(self) -> None:
        self._store.clear()
        self._active = None

    def google_attributes(self) -> dict[str, str]:
        # Simulated provider: no remote call, just plausible local values.
        return {
            "nickname": f"GoogleUser{self._rng.randint(0, 9998)}",
            "email": f"user{self._clock_ms()}@gmail.com",
        }
