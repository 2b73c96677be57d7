from __future__ import annotations

import json

import fakeredis

from safarigam.api.models import Identity, ProfileState, Screen, seed_species_ids
from safarigam.persistence import IdentityStore, ProfileStore, identity_key, profile_key


def test_keys_are_namespaced_and_versioned() -> None:
    assert profile_key(version="v2", profile_id="abc") == "safarigam:v2:abc:state"
    assert identity_key(version="v2", profile_id="abc") == "safarigam:v2:abc:user"


def test_profile_round_trip_uses_camel_case(r) -> None:
    store = ProfileStore.for_profile(r=r, profile_id="p1", version="v2")
    state = ProfileState(
        points=180,
        visited_destination_ids={3},
        kid_mode=True,
        current_screen=Screen.passport,
        earned_achievement_ids=["FIRST_SAFARI"],
    )

    assert store.save(state) is True

    raw = json.loads(r.get(store.key))
    assert raw["visitedDestinationIds"] == [3]
    assert raw["currentScreen"] == "passport"
    assert "guestPlaytimeMs" in raw

    assert store.load() == state


def test_missing_fields_get_defaults_and_seed_species(r) -> None:
    store = ProfileStore.for_profile(r=r, profile_id="p1", version="v2")
    r.set(store.key, json.dumps({"points": 40, "unlockedSpeciesIds": [35]}))

    loaded = store.load()

    assert loaded is not None
    assert loaded.points == 40
    assert loaded.unlocked_species_ids == seed_species_ids() | {35}
    assert loaded.kid_mode is False


def test_malformed_document_is_treated_as_absent(r) -> None:
    store = ProfileStore.for_profile(r=r, profile_id="p1", version="v2")
    r.set(store.key, "{not json")
    assert store.load() is None

    r.set(store.key, json.dumps({"points": -5}))
    assert store.load() is None

    # A client with `decode_responses=True` cannot decode these bytes at all.
    server = fakeredis.FakeServer()
    decoding = fakeredis.FakeRedis(server=server, decode_responses=True)
    raw = fakeredis.FakeRedis(server=server)
    store = ProfileStore.for_profile(r=decoding, profile_id="p1", version="v2")
    raw.set(store.key, b"\xff\xfe{\"points\": 1}")
    assert store.load() is None


def test_clear_and_probe(r) -> None:
    store = ProfileStore.for_profile(r=r, profile_id="p1", version="v2")
    assert store.probe() is True
    store.save(ProfileState())

    assert store.clear() is True
    assert store.load() is None
    assert r.keys("*") == []


def test_unavailable_storage_never_raises(broken_redis) -> None:
    store = ProfileStore.for_profile(r=broken_redis, profile_id="p1", version="v2")

    assert store.probe() is False
    assert store.save(ProfileState()) is False
    assert store.load() is None
    assert store.clear() is False


def test_identity_document_shape(r) -> None:
    store = IdentityStore.for_profile(r=r, profile_id="p1", version="v2")
    ident = Identity(
        id="user_1_abcdefghi",
        nickname="Kito",
        email=None,
        provider="nickname",
        created_at="2024-01-01T00:00:00+00:00",
    )
    store.save(ident)

    raw = json.loads(r.get(store.key))
    assert set(raw) == {"id", "nickname", "email", "provider", "createdAt", "isGuest"}
    assert store.load() == ident
