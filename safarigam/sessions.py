from __future__ import annotations

import asyncio
import logging
import random
import re
import threading
from collections.abc import Callable, Sequence

import redis

from safarigam.catalog.singleton import get_catalog
from safarigam.config import EngineSettings
from safarigam.core.engine import ProgressionEngine
from safarigam.core.events import EngineEvent
from safarigam.core.timers import Scheduler, default_scheduler
from safarigam.identity import IdentityService
from safarigam.persistence import IdentityStore, ProfileStore
from safarigam.websocket_hub import ProfileWebSocketHub, hub


logger = logging.getLogger(__name__)

_PROFILE_ID_RE = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


def validate_profile_id(profile_id: str) -> str:
    if not _PROFILE_ID_RE.match(profile_id):
        raise ValueError("profile_id must be 1-64 characters of letters, digits, '_' or '-'")
    return profile_id


class SessionRegistry:
    """Live engines by profile id, one per open session.

    Each engine's events are forwarded to the WebSocket hub, which sends them to
    the profile's watchers as `profile_updated` messages.
    """

    def __init__(
        self,
        *,
        settings: EngineSettings | None = None,
        scheduler_factory: Callable[[], Scheduler] = default_scheduler,
        rng_factory: Callable[[], random.Random] = random.Random,
        ws_hub: ProfileWebSocketHub = hub,
    ) -> None:
        self.settings = settings or EngineSettings()
        self._scheduler_factory = scheduler_factory
        self._rng_factory = rng_factory
        self._hub = ws_hub
        self._engines: dict[str, ProgressionEngine] = {}
        self._lock = threading.Lock()
        self._tasks: set[asyncio.Task[int]] = set()

    def configure(self, settings: EngineSettings) -> None:
        self.settings = settings

    def get(self, profile_id: str) -> ProgressionEngine | None:
        return self._engines.get(profile_id)

    def open(self, *, r: redis.Redis, profile_id: str) -> tuple[ProgressionEngine, bool]:
        """Return the live engine for `profile_id`, creating and starting it if needed.

        The boolean is True when a new engine was created.
        """

        validate_profile_id(profile_id)
        with self._lock:
            existing = self._engines.get(profile_id)
            if existing is not None and not existing.disposed:
                return existing, False

            rng = self._rng_factory()
            version = self.settings.state_version
            engine = ProgressionEngine(
                profile_id=profile_id,
                profile_store=ProfileStore.for_profile(r=r, profile_id=profile_id, version=version),
                identity=IdentityService(
                    store=IdentityStore.for_profile(r=r, profile_id=profile_id, version=version),
                    rng=rng,
                ),
                catalog=get_catalog(),
                settings=self.settings,
                scheduler=self._scheduler_factory(),
                rng=rng,
            )
            engine.subscribe(lambda events, pid=profile_id: self._forward(pid, events))
            self._engines[profile_id] = engine

        engine.start()
        logger.info("Opened session for profile %s (storage_available=%s)", profile_id, engine.storage_available)
        return engine, True

    def close(self, profile_id: str) -> bool:
        with self._lock:
            engine = self._engines.pop(profile_id, None)
        if engine is None:
            return False
        engine.dispose()
        logger.info("Closed session for profile %s", profile_id)
        return True

    def close_all(self) -> int:
        with self._lock:
            engines = list(self._engines.values())
            self._engines.clear()
        for engine in engines:
            engine.dispose()
        return len(engines)

    def _forward(self, profile_id: str, events: Sequence[EngineEvent]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Driven from outside the event loop (scripts, manual schedulers); nobody to push to.
            return

        task = loop.create_task(self._hub.publish(profile_id, list(events)))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)


registry = SessionRegistry()
