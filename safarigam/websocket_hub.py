from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from collections.abc import Sequence

from fastapi import WebSocket

from safarigam.core.events import EngineEvent


logger = logging.getLogger(__name__)

# Ramp ticks arrive every 400 ms; a batch only forwards the latest one.
_COALESCED_EVENTS = frozenset({"TRAVEL_PROGRESS"})


def profile_update_payload(profile_id: str, events: Sequence[EngineEvent]) -> dict[str, object]:
    """`profile_updated` message for one batch of engine events."""

    out: list[dict[str, object]] = []
    last_index: dict[str, int] = {}
    for e in events:
        if e.type in _COALESCED_EVENTS and e.type in last_index:
            out[last_index[e.type]] = e.as_dict()
            continue
        last_index[e.type] = len(out)
        out.append(e.as_dict())
    return {"type": "profile_updated", "profile_id": profile_id, "events": out}


class ProfileWebSocketHub:
    """Pushes engine events to every socket watching a profile.

    One profile may be open in several tabs; each gets the same `profile_updated`
    messages. Sockets that fail on send are dropped.
    """

    def __init__(self) -> None:
        self._watchers: dict[str, set[WebSocket]] = defaultdict(set)
        self._lock = asyncio.Lock()

    async def connect(self, profile_id: str, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            self._watchers[profile_id].add(websocket)

    async def disconnect(self, profile_id: str, websocket: WebSocket) -> None:
        async with self._lock:
            conns = self._watchers.get(profile_id)
            if not conns:
                return
            conns.discard(websocket)
            if not conns:
                self._watchers.pop(profile_id, None)

    def watcher_count(self, profile_id: str) -> int:
        return len(self._watchers.get(profile_id, ()))

    async def publish(self, profile_id: str, events: Sequence[EngineEvent]) -> int:
        """Send one batch to the profile's watchers. Returns how many sockets received it."""

        if not events:
            return 0
        async with self._lock:
            conns = list(self._watchers.get(profile_id, set()))
        if not conns:
            return 0

        payload = profile_update_payload(profile_id, events)
        dead: list[WebSocket] = []
        for ws in conns:
            try:
                await ws.send_json(payload)
            except Exception:
                logger.debug("Dropping dead websocket for profile %s", profile_id, exc_info=True)
                dead.append(ws)

        if dead:
            async with self._lock:
                for ws in dead:
                    self._watchers.get(profile_id, set()).discard(ws)
        return len(conns) - len(dead)


hub = ProfileWebSocketHub()
