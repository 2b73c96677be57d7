from __future__ import annotations

import os
import random
from collections.abc import Callable, Generator
from pathlib import Path

import fakeredis
import pytest

from safarigam.config import EngineSettings
from safarigam.core.engine import ProgressionEngine
from safarigam.core.timers import ManualScheduler
from safarigam.identity import IdentityService
from safarigam.persistence import IdentityStore, ProfileStore


class ScriptedRandom(random.Random):
    """Seeded `random.Random` whose `random()` can be scripted.

    Values in `rolls` are returned by `random()` first, in order; after that the
    seeded generator takes over. Everything else (choice/sample/shuffle) stays seeded.
    """

    def __init__(self, seed: int = 1234, rolls: list[float] | None = None) -> None:
        super().__init__(seed)
        self.rolls = list(rolls or [])

    def random(self) -> float:
        if self.rolls:
            return self.rolls.pop(0)
        return super().random()


@pytest.fixture(scope="session", autouse=True)
def _init_catalog_from_test_fixtures() -> None:
    """Initialize the catalog from `tests/assets` and forbid falling back to built-in data.

    This keeps tests hermetic: 32 seed species, 8 locked ones, all destinations.
    """

    os.environ["SAFARIGAM_STRICT_CATALOG"] = "1"

    from safarigam.catalog.singleton import init_catalog, reset_catalog_for_tests

    reset_catalog_for_tests()

    # Point the loader at a fake project root: tests/ contains an assets/ dir.
    test_root = Path(__file__).resolve().parent
    init_catalog(project_root=test_root, species_target=0)


@pytest.fixture()
def r() -> fakeredis.FakeRedis:
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture()
def broken_redis() -> fakeredis.FakeRedis:
    server = fakeredis.FakeServer()
    server.connected = False
    return fakeredis.FakeRedis(server=server, decode_responses=True)


@pytest.fixture()
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture()
def rng() -> ScriptedRandom:
    return ScriptedRandom()


EngineFactory = Callable[..., ProgressionEngine]


@pytest.fixture()
def make_engine(r, scheduler, rng) -> Generator[EngineFactory, None, None]:
    """Build (and by default start) an engine wired to fakeredis and the manual clock."""

    from safarigam.catalog.singleton import get_catalog

    created: list[ProgressionEngine] = []

    def _make(
        *,
        profile_id: str = "p1",
        redis_client=None,
        settings: EngineSettings | None = None,
        random_source: random.Random | None = None,
        start: bool = True,
    ) -> ProgressionEngine:
        client = redis_client if redis_client is not None else r
        source = random_source if random_source is not None else rng
        cfg = settings or EngineSettings()
        engine = ProgressionEngine(
            profile_id=profile_id,
            profile_store=ProfileStore.for_profile(r=client, profile_id=profile_id, version=cfg.state_version),
            identity=IdentityService(
                store=IdentityStore.for_profile(r=client, profile_id=profile_id, version=cfg.state_version),
                rng=source,
            ),
            catalog=get_catalog(),
            settings=cfg,
            scheduler=scheduler,
            rng=source,
        )
        if start:
            engine.start()
        created.append(engine)
        return engine

    yield _make

    for engine in created:
        engine.dispose()


@pytest.fixture()
def client_and_redis():
    """FastAPI TestClient + fakeredis + a session registry on the manual clock.

    Yields `(client, r, registry, scheduler)`.
    """

    from fastapi.testclient import TestClient

    from safarigam.api.deps import get_redis, get_registry
    from safarigam.main import app
    from safarigam.sessions import SessionRegistry

    r = fakeredis.FakeRedis(decode_responses=True)
    sched = ManualScheduler()
    reg = SessionRegistry(scheduler_factory=lambda: sched, rng_factory=lambda: ScriptedRandom())

    def _override_redis() -> Generator[fakeredis.FakeRedis, None, None]:
        yield r

    app.dependency_overrides[get_redis] = _override_redis
    app.dependency_overrides[get_registry] = lambda: reg
    with TestClient(app) as c:
        yield c, r, reg, sched
    reg.close_all()
    app.dependency_overrides.clear()
