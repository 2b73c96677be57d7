from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


SEED_SPECIES_COUNT = 32


def seed_species_ids(count: int = SEED_SPECIES_COUNT) -> set[int]:
    return set(range(1, count + 1))


class Screen(StrEnum):
    welcome = "welcome"
    select_animal = "selectAnimal"
    select_park = "selectPark"
    home = "home"
    safari = "safari"
    encyclopedia = "encyclopedia"
    achievements = "achievements"
    passport = "passport"


class Document(BaseModel):
    """Base for persisted documents: camelCase on disk, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class ProfileState(Document):
    points: int = Field(default=0, ge=0)
    visited_destination_ids: set[int] = Field(default_factory=set)
    unlocked_species_ids: set[int] = Field(default_factory=seed_species_ids)
    kid_mode: bool = False

    companion_animal_id: int | None = None
    home_park_id: int | None = None

    # Which view the UI collaborator renders; not a progression invariant.
    current_screen: Screen = Screen.welcome

    guest_playtime_ms: int = Field(default=0, ge=0)
    quizzes_correct_count: int = Field(default=0, ge=0)

    # Earn order is kept for the achievements screen; ids are unique.
    earned_achievement_ids: list[str] = Field(default_factory=list)

    last_saved_timestamp: str | None = None

    @model_validator(mode="after")
    def _normalize(self) -> "ProfileState":
        # Older documents (or hand-edited ones) may miss seed ids.
        self.unlocked_species_ids |= seed_species_ids()
        self.earned_achievement_ids = list(dict.fromkeys(self.earned_achievement_ids))
        return self


class Identity(Document):
    id: str
    nickname: str
    email: str | None = None
    provider: str
    created_at: str
    is_guest: bool = False


class GateStatus(StrEnum):
    open = "open"
    locked_pending_auth = "locked_pending_auth"


class Destination(BaseModel):
    id: int
    name: str
    region: str
    description: str = ""
    key_species: list[str] = Field(default_factory=list)
    color: str = ""
    points: int = Field(..., ge=0)


class Proverb(BaseModel):
    text: str
    translation: str
    language: str


class ActiveSafari(BaseModel):
    destination: Destination
    progress: int = Field(default=0, ge=0, le=100)


class QuizChallenge(BaseModel):
    question: str
    answer: str
    options: list[str]


class AchievementToast(BaseModel):
    id: str
    name: str
    description: str
    icon: str


class AchievementView(AchievementToast):
    earned: bool


class SessionView(BaseModel):
    profile_id: str
    state: ProfileState
    identity: Identity | None = None
    is_authenticated: bool
    gate: GateStatus
    storage_available: bool
    guest_time_remaining_ms: int
    guest_time_remaining: str

    active_safari: ActiveSafari | None = None
    quiz: QuizChallenge | None = None
    proverb: Proverb | None = None
    achievement_toast: AchievementToast | None = None


class EngineEventView(BaseModel):
    type: str
    payload: dict[str, Any] = Field(default_factory=dict)
    ts: str


class ActionResponse(BaseModel):
    accepted: bool
    events: list[EngineEventView] = Field(default_factory=list)
    session: SessionView


# Per-action request bodies for the generic action endpoint.


class CompanionRequest(BaseModel):
    species_id: int


class HomeParkRequest(BaseModel):
    park_id: int


class KidModeRequest(BaseModel):
    enabled: bool


class NavigateRequest(BaseModel):
    screen: Screen


class TravelRequest(BaseModel):
    destination_id: int


class QuizAnswerRequest(BaseModel):
    choice: str


class SignUpRequest(BaseModel):
    provider: str = Field(..., min_length=1)
    # Longer nicknames are cut to 20 characters by the engine.
    nickname: str | None = None
    email: str | None = None
    # Accepted and ignored; there is no backing authentication service.
    password: str | None = None


class SpeciesView(BaseModel):
    id: int
    name: str
    category: str
    habitat: str
    status: str
    parks: list[str]
    fact: str
    swahili: str | None = None
    emoji: str = ""


class SpeciesPage(BaseModel):
    page: int
    page_size: int
    total: int
    species: list[SpeciesView]


class ParkView(BaseModel):
    id: int
    name: str
    country: str
    ecosystem: str
    description: str
    color: str
