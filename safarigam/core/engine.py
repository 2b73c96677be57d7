from __future__ import annotations

import logging
import random
import threading
from collections.abc import Callable, Mapping, MutableSequence, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Protocol, TypeVar

from pydantic import ValidationError

from safarigam.api.models import (
    AchievementToast,
    AchievementView,
    ActiveSafari,
    GateStatus,
    Identity,
    ProfileState,
    Proverb,
    QuizChallenge,
    Screen,
    SessionView,
)
from safarigam.catalog.registry import Catalog
from safarigam.config import EngineSettings
from safarigam.core.achievements import ACHIEVEMENTS, AchievementDefinition, evaluate, progress_view
from safarigam.core.events import EngineEvent
from safarigam.core.session_gate import SessionGate
from safarigam.core.timers import Debouncer, RepeatingTimer, Scheduler, default_scheduler
from safarigam.identity import IdentityService, is_authenticated
from safarigam.persistence import ProfileStore


logger = logging.getLogger(__name__)

T = TypeVar("T")

Patch = Mapping[str, Any] | Callable[[ProfileState], ProfileState]
Listener = Callable[[Sequence[EngineEvent]], None]

QUIZ_DISTRACTORS = 3
NICKNAME_MAX_LEN = 20
PROVIDERS = ("nickname", "email", "google")


class RandomSource(Protocol):
    """The subset of `random.Random` the engine draws from."""

    def random(self) -> float: ...

    def choice(self, seq: Sequence[T]) -> T: ...

    def sample(self, population: Sequence[T], k: int) -> list[T]: ...

    def shuffle(self, x: MutableSequence[Any]) -> None: ...


@dataclass(frozen=True, slots=True)
class ActionResult:
    """Outcome of one engine operation.

    `accepted` is False when the intent was refused or invalid; the state is then unchanged.
    """

    accepted: bool
    state: ProfileState
    events: tuple[EngineEvent, ...]


def _now_iso() -> str:
    return datetime.now(tz=UTC).isoformat()


def _shrunk_fields(old: ProfileState, new: ProfileState) -> list[str]:
    out: list[str] = []
    if new.points < old.points:
        out.append("points")
    if new.quizzes_correct_count < old.quizzes_correct_count:
        out.append("quizzes_correct_count")
    if new.guest_playtime_ms < old.guest_playtime_ms:
        out.append("guest_playtime_ms")
    if not old.visited_destination_ids <= new.visited_destination_ids:
        out.append("visited_destination_ids")
    if not old.unlocked_species_ids <= new.unlocked_species_ids:
        out.append("unlocked_species_ids")
    if not set(old.earned_achievement_ids) <= set(new.earned_achievement_ids):
        out.append("earned_achievement_ids")
    return out


class ProgressionEngine:
    """Owns one profile's game state for the length of a session.

    Lifecycle: construct (hydrates state + identity) -> `start()` (initial achievement
    pass, playtime accrual) -> operations -> `dispose()` (flushes the pending save and
    cancels every timer).

    Every mutation flows through `apply_patch`, which runs exactly one achievement pass,
    recomputes the session gate and re-arms the debounced save. Operations are
    serialized behind one lock, timer callbacks included, and never raise.
    """

    def __init__(
        self,
        *,
        profile_id: str,
        profile_store: ProfileStore,
        identity: IdentityService,
        catalog: Catalog,
        settings: EngineSettings | None = None,
        scheduler: Scheduler | None = None,
        rng: RandomSource | None = None,
        achievements: Sequence[AchievementDefinition] = ACHIEVEMENTS,
    ) -> None:
        self.profile_id = profile_id
        self.settings = settings or EngineSettings()
        self._store = profile_store
        self._identity = identity
        self._catalog = catalog
        self._rng: RandomSource = rng or random.Random()
        self._achievements = tuple(achievements)
        self._lock = threading.RLock()
        self._listeners: list[Listener] = []
        self._disposed = False

        self.storage_available = profile_store.probe()
        loaded = profile_store.load() if self.storage_available else None
        self._state = loaded or ProfileState()
        if not self.storage_available:
            logger.warning("Storage unavailable for profile %s; running in memory only", profile_id)

        self._gate = SessionGate.for_session(
            quota_ms=self.settings.guest_quota_ms,
            is_authenticated=self.is_authenticated,
            playtime_ms=self._state.guest_playtime_ms,
        )

        # Transient slots; never persisted.
        self._safari: ActiveSafari | None = None
        self._quiz: QuizChallenge | None = None
        self._proverb: Proverb | None = None
        self._toast: AchievementToast | None = None

        sched = scheduler or default_scheduler()
        self._save_timer = Debouncer(
            scheduler=sched, delay_s=self.settings.save_debounce_ms / 1000, callback=self._on_save_due
        )
        self._toast_timer = Debouncer(
            scheduler=sched, delay_s=self.settings.toast_duration_ms / 1000, callback=self._on_toast_expired
        )
        self._playtime_timer = RepeatingTimer(
            scheduler=sched, interval_s=self.settings.playtime_tick_ms / 1000, callback=self.tick_playtime
        )
        self._ramp_timer = RepeatingTimer(
            scheduler=sched, interval_s=self.settings.progress_interval_ms / 1000, callback=self._on_ramp_tick
        )

    # ------------------------------------------------------------------ selectors

    @property
    def state(self) -> ProfileState:
        return self._state

    @property
    def identity(self) -> Identity | None:
        return self._identity.get_active()

    @property
    def is_authenticated(self) -> bool:
        return is_authenticated(self._identity.get_active())

    @property
    def gate_status(self) -> GateStatus:
        return self._gate.status

    @property
    def achievement_toast(self) -> AchievementToast | None:
        return self._toast

    @property
    def active_safari(self) -> ActiveSafari | None:
        return self._safari

    @property
    def quiz(self) -> QuizChallenge | None:
        return self._quiz

    @property
    def proverb(self) -> Proverb | None:
        return self._proverb

    @property
    def disposed(self) -> bool:
        return self._disposed

    @property
    def playtime_accruing(self) -> bool:
        return self._playtime_timer.running

    def guest_time_remaining_ms(self) -> int:
        return max(0, self.settings.guest_quota_ms - self._state.guest_playtime_ms)

    def format_time_remaining(self) -> str:
        remaining = self.guest_time_remaining_ms()
        hours, rest = divmod(remaining, 60 * 60 * 1000)
        return f"{hours}h {rest // (60 * 1000)}m"

    def achievements(self) -> list[AchievementView]:
        return progress_view(self._state, self._achievements)

    def session_view(self) -> SessionView:
        with self._lock:
            return SessionView(
                profile_id=self.profile_id,
                state=self._state,
                identity=self.identity,
                is_authenticated=self.is_authenticated,
                gate=self.gate_status,
                storage_available=self.storage_available,
                guest_time_remaining_ms=self.guest_time_remaining_ms(),
                guest_time_remaining=self.format_time_remaining(),
                active_safari=self._safari,
                quiz=self._quiz,
                proverb=self._proverb,
                achievement_toast=self._toast,
            )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    # ------------------------------------------------------------------ lifecycle

    def start(self) -> ActionResult:
        """Initial achievement pass over the hydrated state and playtime accrual."""

        def op(events: list[EngineEvent]) -> bool:
            self._commit(self._state, events, persist=self.storage_available)
            return True

        return self._dispatch(op)

    def flush(self) -> bool:
        with self._lock:
            return self._save_timer.flush()

    def dispose(self) -> None:
        with self._lock:
            if self._disposed:
                return
            self._save_timer.flush()
            for timer in (self._save_timer, self._toast_timer):
                timer.cancel()
            for repeating in (self._playtime_timer, self._ramp_timer):
                repeating.stop()
            self._disposed = True
            self._listeners.clear()
        logger.debug("Disposed engine for profile %s", self.profile_id)

    # ------------------------------------------------------------------ operations

    def apply_patch(self, patch: Patch) -> ActionResult:
        return self._dispatch(lambda events: self._apply(patch, events))

    def begin_travel(self, destination_id: int) -> ActionResult:
        def op(events: list[EngineEvent]) -> bool:
            self._refresh_gate(events)
            if self._gate.is_locked:
                events.append(EngineEvent.now(type="AUTH_REQUIRED", payload={"reason": "guest_quota_reached"}))
                return False

            dest = self._catalog.get_destination(destination_id)
            if dest is None:
                return self._reject(f"unknown destination {destination_id}")
            if dest.id in self._state.visited_destination_ids:
                return self._reject(f"destination {dest.id} already visited")
            if self._safari is not None:
                return self._reject("a safari is already in progress")

            self._apply({"current_screen": Screen.safari}, events)
            self._safari = ActiveSafari(destination=dest, progress=0)
            self._ramp_timer.start()
            events.append(EngineEvent.now(type="TRAVEL_STARTED", payload={"destination_id": dest.id}))
            return True

        return self._dispatch(op)

    def complete_travel(self) -> ActionResult:
        def op(events: list[EngineEvent]) -> bool:
            safari = self._safari
            if safari is None:
                return self._reject("no safari in progress")

            dest = safari.destination
            is_new = dest.id not in self._state.visited_destination_ids
            self._ramp_timer.stop()
            self._safari = None

            def _transform(s: ProfileState) -> ProfileState:
                update: dict[str, Any] = {"current_screen": Screen.home}
                if is_new:
                    update["visited_destination_ids"] = s.visited_destination_ids | {dest.id}
                    update["points"] = s.points + dest.points
                return s.model_copy(update=update)

            self._apply(_transform, events)
            events.append(
                EngineEvent.now(
                    type="TRAVEL_COMPLETED",
                    payload={"destination_id": dest.id, "new": is_new, "points_awarded": dest.points if is_new else 0},
                )
            )

            if is_new and self._catalog.proverbs:
                self._proverb = self._rng.choice(self._catalog.proverbs)
                events.append(EngineEvent.now(type="PROVERB_SHOWN", payload=self._proverb.model_dump()))

            self._quiz = self._build_quiz()
            if self._quiz is not None:
                events.append(EngineEvent.now(type="QUIZ_ISSUED", payload={"options": list(self._quiz.options)}))
            return True

        return self._dispatch(op)

    def abandon_travel(self) -> ActionResult:
        def op(events: list[EngineEvent]) -> bool:
            if self._safari is None:
                return self._reject("no safari in progress")
            dest_id = self._safari.destination.id
            self._ramp_timer.stop()
            self._safari = None
            self._apply({"current_screen": Screen.home}, events)
            events.append(EngineEvent.now(type="TRAVEL_ABANDONED", payload={"destination_id": dest_id}))
            return True

        return self._dispatch(op)

    def answer_quiz(self, choice: str) -> ActionResult:
        def op(events: list[EngineEvent]) -> bool:
            quiz = self._quiz
            if quiz is None:
                return self._reject("no quiz pending")
            self._quiz = None

            correct = choice == quiz.answer
            events.append(EngineEvent.now(type="QUIZ_ANSWERED", payload={"choice": choice, "correct": correct}))
            if not correct:
                return True

            locked = [sid for sid in self._catalog.species.ids() if sid not in self._state.unlocked_species_ids]
            bonus: int | None = None
            if locked and self._rng.random() < self.settings.bonus_unlock_probability:
                bonus = self._rng.choice(locked)

            reward = self.settings.quiz_reward

            def _transform(s: ProfileState) -> ProfileState:
                update: dict[str, Any] = {
                    "points": s.points + reward,
                    "quizzes_correct_count": s.quizzes_correct_count + 1,
                }
                if bonus is not None:
                    update["unlocked_species_ids"] = s.unlocked_species_ids | {bonus}
                return s.model_copy(update=update)

            self._apply(_transform, events)
            if bonus is not None:
                events.append(EngineEvent.now(type="SPECIES_UNLOCKED", payload={"species_id": bonus}))
            return True

        return self._dispatch(op)

    def skip_quiz(self) -> ActionResult:
        def op(events: list[EngineEvent]) -> bool:
            if self._quiz is None:
                return self._reject("no quiz pending")
            self._quiz = None
            return True

        return self._dispatch(op)

    def dismiss_proverb(self) -> ActionResult:
        def op(events: list[EngineEvent]) -> bool:
            if self._proverb is None:
                return self._reject("no proverb shown")
            self._proverb = None
            return True

        return self._dispatch(op)

    def dismiss_toast(self) -> ActionResult:
        def op(events: list[EngineEvent]) -> bool:
            if self._toast is None:
                return self._reject("no achievement toast shown")
            self._toast_timer.cancel()
            self._toast = None
            events.append(EngineEvent.now(type="TOAST_DISMISSED"))
            return True

        return self._dispatch(op)

    def set_kid_mode(self, flag: bool) -> ActionResult:
        return self.apply_patch({"kid_mode": bool(flag)})

    def select_companion(self, species_id: int) -> ActionResult:
        if species_id not in self._catalog.species:
            return self._refused(f"unknown species {species_id}")
        if species_id not in self._state.unlocked_species_ids:
            return self._refused(f"species {species_id} is still locked")
        return self.apply_patch({"companion_animal_id": species_id})

    def select_home_park(self, park_id: int) -> ActionResult:
        if self._catalog.get_park(park_id) is None:
            return self._refused(f"unknown park {park_id}")
        return self.apply_patch({"home_park_id": park_id})

    def navigate_to(self, screen: Screen | str) -> ActionResult:
        try:
            target = Screen(screen)
        except ValueError:
            return self._refused(f"unknown screen {screen!r}")
        return self.apply_patch({"current_screen": target})

    def reset(self) -> ActionResult:
        """Fresh progression defaults, persisted document cleared.

        Guest playtime is quota accounting, not progression: it survives the reset and
        is written back, so a locked guest is still locked in the next session.
        """

        def op(events: list[EngineEvent]) -> bool:
            self._ramp_timer.stop()
            self._save_timer.cancel()
            self._toast_timer.cancel()
            self._safari = None
            self._quiz = None
            self._proverb = None
            self._toast = None
            if self.storage_available and not self._store.clear():
                logger.warning("Could not clear stored profile %s", self.profile_id)
            events.append(EngineEvent.now(type="STATE_RESET"))
            fresh = ProfileState(guest_playtime_ms=self._state.guest_playtime_ms)
            self._commit(fresh, events, persist=self.storage_available)
            return True

        return self._dispatch(op)

    def tick_playtime(self) -> ActionResult:
        """One accrual step of guest playtime; called by the periodic timer."""

        def op(events: list[EngineEvent]) -> bool:
            if not self._gate.should_accrue(
                is_authenticated=self.is_authenticated, playtime_ms=self._state.guest_playtime_ms
            ):
                self._playtime_timer.stop()
                return False
            step = self.settings.playtime_tick_ms
            return self._apply(
                lambda s: s.model_copy(update={"guest_playtime_ms": s.guest_playtime_ms + step}),
                events,
            )

        return self._dispatch(op)

    def sign_up(
        self,
        provider: str,
        *,
        nickname: str | None = None,
        email: str | None = None,
        password: str | None = None,
    ) -> ActionResult:
        def op(events: list[EngineEvent]) -> bool:
            attrs = self._sign_up_attributes(provider, nickname=nickname, email=email, password=password)
            if attrs is None:
                return False
            identity = self._identity.establish(provider, attrs)
            events.append(
                EngineEvent.now(type="SIGNED_IN", payload={"identity_id": identity.id, "provider": provider})
            )
            self._refresh_gate(events)
            return True

        return self._dispatch(op)

    def sign_in(
        self,
        provider: str,
        *,
        nickname: str | None = None,
        email: str | None = None,
        password: str | None = None,
    ) -> ActionResult:
        # No credential check exists; signing in establishes a fresh identity.
        return self.sign_up(provider, nickname=nickname, email=email, password=password)

    def sign_out(self) -> ActionResult:
        """Forget the identity; progression is kept and the guest quota applies again."""

        def op(events: list[EngineEvent]) -> bool:
            self._identity.revoke()
            events.append(EngineEvent.now(type="SIGNED_OUT"))
            self._refresh_gate(events)
            return True

        return self._dispatch(op)

    # ------------------------------------------------------------------ internals

    def _dispatch(self, op: Callable[[list[EngineEvent]], bool]) -> ActionResult:
        with self._lock:
            events: list[EngineEvent] = []
            if self._disposed:
                accepted = self._reject("engine disposed")
            else:
                accepted = op(events)
            result = ActionResult(accepted=accepted, state=self._state, events=tuple(events))
        self._emit(result.events)
        return result

    def _refused(self, reason: str) -> ActionResult:
        with self._lock:
            return ActionResult(accepted=self._reject(reason), state=self._state, events=())

    def _reject(self, reason: str) -> bool:
        logger.debug("Profile %s: intent rejected: %s", self.profile_id, reason)
        return False

    def _apply(self, patch: Patch, events: list[EngineEvent]) -> bool:
        old = self._state
        try:
            if callable(patch):
                candidate = ProfileState.model_validate(patch(old).model_dump())
            else:
                unknown = set(patch) - set(ProfileState.model_fields)
                if unknown:
                    return self._reject(f"unknown fields {sorted(unknown)}")
                candidate = ProfileState.model_validate({**old.model_dump(), **dict(patch)})
        except (ValidationError, AttributeError, TypeError, ValueError) as e:
            return self._reject(f"invalid patch: {e}")

        shrunk = _shrunk_fields(old, candidate)
        if shrunk:
            return self._reject(f"patch would shrink {shrunk}")

        self._commit(candidate, events, persist=self.storage_available)
        return True

    def _commit(self, new: ProfileState, events: list[EngineEvent], *, persist: bool) -> None:
        """Install `new` after one achievement pass; then gate, save and timers follow."""

        newly = evaluate(new, self._achievements)
        if newly:
            new = new.model_copy(
                update={"earned_achievement_ids": [*new.earned_achievement_ids, *(a.id for a in newly)]}
            )
            # Only the first one is toasted; all of them are recorded.
            self._toast = newly[0].toast()
            self._toast_timer.arm()
            for a in newly:
                logger.info("Profile %s earned achievement %s", self.profile_id, a.id)
                events.append(EngineEvent.now(type="ACHIEVEMENT_UNLOCKED", payload={"id": a.id, "name": a.name}))

        self._state = new
        events.append(EngineEvent.now(type="STATE_CHANGED"))
        self._refresh_gate(events)
        if persist:
            self._save_timer.arm()

    def _refresh_gate(self, events: list[EngineEvent]) -> None:
        changed = self._gate.evaluate(
            is_authenticated=self.is_authenticated, playtime_ms=self._state.guest_playtime_ms
        )
        if changed is GateStatus.locked_pending_auth:
            events.append(EngineEvent.now(type="GATE_LOCKED", payload={"playtime_ms": self._state.guest_playtime_ms}))
        elif changed is GateStatus.open:
            events.append(EngineEvent.now(type="GATE_OPENED"))

        if self._disposed:
            return
        if self._gate.should_accrue(is_authenticated=self.is_authenticated, playtime_ms=self._state.guest_playtime_ms):
            self._playtime_timer.start()
        else:
            self._playtime_timer.stop()

    def _sign_up_attributes(
        self,
        provider: str,
        *,
        nickname: str | None,
        email: str | None,
        password: str | None,
    ) -> dict[str, str | None] | None:
        nick = (nickname or "").strip()[:NICKNAME_MAX_LEN]
        mail = (email or "").strip()

        if provider == "nickname":
            if not nick:
                self._reject("nickname sign-up needs a nickname")
                return None
            return {"nickname": nick}
        if provider == "email":
            if not mail or not password:
                self._reject("email sign-up needs email and password")
                return None
            return {"nickname": nick or None, "email": mail}
        if provider == "google":
            return dict(self._identity.google_attributes())

        self._reject(f"unknown provider {provider!r}")
        return None

    def _build_quiz(self) -> QuizChallenge | None:
        species = self._catalog.species
        pool = species.quiz_pool()
        if not pool or len(species) < QUIZ_DISTRACTORS + 1:
            return None

        subject = self._rng.choice(pool)
        others = [s for s in species.species if s.id != subject.id]
        distractors = self._rng.sample(others, QUIZ_DISTRACTORS)
        options = [subject.name, *(d.name for d in distractors)]
        self._rng.shuffle(options)
        return QuizChallenge(question=subject.fact, answer=subject.name, options=options)

    def _on_save_due(self) -> None:
        def op(events: list[EngineEvent]) -> bool:
            stamp = _now_iso()
            if not self._store.save(self._state.model_copy(update={"last_saved_timestamp": stamp})):
                return False
            # Bookkeeping only: not a progression mutation, so no re-arm.
            self._state = self._state.model_copy(update={"last_saved_timestamp": stamp})
            events.append(EngineEvent.now(type="STATE_SAVED", payload={"at": stamp}))
            return True

        self._dispatch(op)

    def _on_toast_expired(self) -> None:
        def op(events: list[EngineEvent]) -> bool:
            if self._toast is None:
                return False
            self._toast = None
            events.append(EngineEvent.now(type="TOAST_DISMISSED"))
            return True

        self._dispatch(op)

    def _on_ramp_tick(self) -> None:
        def op(events: list[EngineEvent]) -> bool:
            if self._safari is None:
                self._ramp_timer.stop()
                return False
            progress = min(100, self._safari.progress + self.settings.progress_step)
            self._safari = self._safari.model_copy(update={"progress": progress})
            if progress >= 100:
                self._ramp_timer.stop()
            events.append(EngineEvent.now(type="TRAVEL_PROGRESS", payload={"progress": progress}))
            return True

        self._dispatch(op)

    def _emit(self, events: Sequence[EngineEvent]) -> None:
        if not events:
            return
        for listener in list(self._listeners):
            try:
                listener(events)
            except Exception:
                logger.exception("Engine listener failed for profile %s", self.profile_id)
