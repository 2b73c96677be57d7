from __future__ import annotations

import logging

from statemachine import State, StateMachine

from safarigam.api.models import GateStatus


logger = logging.getLogger(__name__)

GUEST_QUOTA_MS = 10 * 60 * 60 * 1000


class SessionGate(StateMachine):
    """Guest playtime gate.

    - open -> locked_pending_auth once an unauthenticated player reaches the quota
    - locked_pending_auth -> open only through authentication; more playtime changes nothing
    """

    open = State(GateStatus.open.value, value=GateStatus.open.value, initial=True)
    locked_pending_auth = State(
        GateStatus.locked_pending_auth.value,
        value=GateStatus.locked_pending_auth.value,
    )

    quota_reached = open.to(locked_pending_auth)
    authenticated = locked_pending_auth.to(open)

    def __init__(self, *, quota_ms: int = GUEST_QUOTA_MS, status: GateStatus = GateStatus.open):
        self.quota_ms = quota_ms
        super().__init__(start_value=status.value)

    @classmethod
    def for_session(cls, *, quota_ms: int, is_authenticated: bool, playtime_ms: int) -> "SessionGate":
        status = GateStatus.open
        if not is_authenticated and playtime_ms >= quota_ms:
            status = GateStatus.locked_pending_auth
        return cls(quota_ms=quota_ms, status=status)

    @property
    def status(self) -> GateStatus:
        return GateStatus(str(self.current_state.value))

    @property
    def is_locked(self) -> bool:
        return self.current_state == self.locked_pending_auth

    def quota_exhausted(self, *, is_authenticated: bool, playtime_ms: int) -> bool:
        return not is_authenticated and playtime_ms >= self.quota_ms

    def should_accrue(self, *, is_authenticated: bool, playtime_ms: int) -> bool:
        return not is_authenticated and not self.is_locked and playtime_ms < self.quota_ms

    def evaluate(self, *, is_authenticated: bool, playtime_ms: int) -> GateStatus | None:
        """Apply whichever transition the inputs call for. Returns the new status, or None."""

        if not self.is_locked and self.quota_exhausted(is_authenticated=is_authenticated, playtime_ms=playtime_ms):
            self.quota_reached()
            logger.info("Guest quota reached (%d ms); progression locked pending auth", playtime_ms)
            return self.status
        if self.is_locked and is_authenticated:
            self.authenticated()
            logger.info("Authenticated; progression gate reopened")
            return self.status
        return None
