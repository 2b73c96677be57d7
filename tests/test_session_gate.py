from __future__ import annotations

import pytest

from safarigam.api.models import GateStatus
from safarigam.core.session_gate import GUEST_QUOTA_MS, SessionGate


def test_gate_starts_open() -> None:
    gate = SessionGate()
    assert gate.status is GateStatus.open
    assert not gate.is_locked


@pytest.mark.parametrize(
    ("playtime_ms", "expected"),
    [
        (35_940_000, GateStatus.open),
        (36_000_000, GateStatus.locked_pending_auth),
        (36_060_000, GateStatus.locked_pending_auth),
    ],
)
def test_guest_locks_at_quota(playtime_ms: int, expected: GateStatus) -> None:
    gate = SessionGate()
    gate.evaluate(is_authenticated=False, playtime_ms=playtime_ms)
    assert gate.status is expected


def test_authenticated_player_never_locks() -> None:
    gate = SessionGate()
    assert gate.evaluate(is_authenticated=True, playtime_ms=GUEST_QUOTA_MS * 2) is None
    assert gate.status is GateStatus.open


def test_only_authentication_reopens() -> None:
    gate = SessionGate(quota_ms=1_000)
    assert gate.evaluate(is_authenticated=False, playtime_ms=1_000) is GateStatus.locked_pending_auth

    # More (or less) playtime alone changes nothing once locked.
    assert gate.evaluate(is_authenticated=False, playtime_ms=0) is None
    assert gate.is_locked

    assert gate.evaluate(is_authenticated=True, playtime_ms=1_000) is GateStatus.open
    assert not gate.is_locked


def test_for_session_restores_locked_gate() -> None:
    gate = SessionGate.for_session(quota_ms=1_000, is_authenticated=False, playtime_ms=5_000)
    assert gate.status is GateStatus.locked_pending_auth

    signed_in = SessionGate.for_session(quota_ms=1_000, is_authenticated=True, playtime_ms=5_000)
    assert signed_in.status is GateStatus.open


def test_should_accrue_only_for_open_guests_under_quota() -> None:
    gate = SessionGate(quota_ms=1_000)
    assert gate.should_accrue(is_authenticated=False, playtime_ms=999)
    assert not gate.should_accrue(is_authenticated=True, playtime_ms=0)
    assert not gate.should_accrue(is_authenticated=False, playtime_ms=1_000)
