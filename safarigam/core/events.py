from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Literal

EventType = Literal[
    "STATE_CHANGED",
    "AUTH_REQUIRED",
    "TRAVEL_STARTED",
    "TRAVEL_PROGRESS",
    "TRAVEL_COMPLETED",
    "TRAVEL_ABANDONED",
    "QUIZ_ISSUED",
    "QUIZ_ANSWERED",
    "SPECIES_UNLOCKED",
    "PROVERB_SHOWN",
    "ACHIEVEMENT_UNLOCKED",
    "TOAST_DISMISSED",
    "GATE_LOCKED",
    "GATE_OPENED",
    "SIGNED_IN",
    "SIGNED_OUT",
    "STATE_RESET",
    "STATE_SAVED",
]


@dataclass(frozen=True, slots=True)
class EngineEvent:
    type: EventType
    payload: dict[str, Any]
    ts: datetime

    @staticmethod
    def now(*, type: EventType, payload: dict[str, Any] | None = None) -> "EngineEvent":
        return EngineEvent(type=type, payload=payload or {}, ts=datetime.now(timezone.utc))

    def as_dict(self) -> dict[str, Any]:
        return {"type": self.type, "payload": self.payload, "ts": self.ts.isoformat()}
