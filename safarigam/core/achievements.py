from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass

from safarigam.api.models import AchievementToast, AchievementView, ProfileState


Predicate = Callable[[ProfileState], bool]


@dataclass(frozen=True, slots=True)
class AchievementDefinition:
    id: str
    name: str
    description: str
    icon: str
    predicate: Predicate

    def toast(self) -> AchievementToast:
        return AchievementToast(id=self.id, name=self.name, description=self.description, icon=self.icon)


ACHIEVEMENTS: tuple[AchievementDefinition, ...] = (
    AchievementDefinition(
        "FIRST_SAFARI", "First Steps", "Complete your first safari", "🐾",
        lambda s: len(s.visited_destination_ids) >= 1,
    ),
    AchievementDefinition(
        "VISIT_3_DESTINATIONS", "World Traveler", "Visit 3 destinations", "🌍",
        lambda s: len(s.visited_destination_ids) >= 3,
    ),
    AchievementDefinition(
        "VISIT_ALL_DESTINATIONS", "Globe Trotter", "Visit all 6 destinations", "✈️",
        lambda s: len(s.visited_destination_ids) >= 6,
    ),
    AchievementDefinition(
        "UNLOCK_50_SPECIES", "Species Collector", "Unlock 50 species", "🔓",
        lambda s: len(s.unlocked_species_ids) >= 50,
    ),
    AchievementDefinition(
        "UNLOCK_100_SPECIES", "Wildlife Expert", "Unlock 100 species", "🏆",
        lambda s: len(s.unlocked_species_ids) >= 100,
    ),
    AchievementDefinition(
        "UNLOCK_500_SPECIES", "Master Naturalist", "Unlock 500 species", "👑",
        lambda s: len(s.unlocked_species_ids) >= 500,
    ),
    AchievementDefinition(
        "EARN_500_POINTS", "Point Collector", "Earn 500 Ulimanta Points", "✨",
        lambda s: s.points >= 500,
    ),
    AchievementDefinition(
        "EARN_1000_POINTS", "Safari Champion", "Earn 1000 Ulimanta Points", "🌟",
        lambda s: s.points >= 1000,
    ),
    AchievementDefinition(
        "QUIZ_MASTER", "Quiz Master", "Answer 10 quizzes correctly", "🧠",
        lambda s: s.quizzes_correct_count >= 10,
    ),
    AchievementDefinition(
        "EXPLORER_MODE", "True Explorer", "Play in Explorer mode", "🔭",
        lambda s: not s.kid_mode,
    ),
)


def evaluate(
    state: ProfileState,
    catalog: Sequence[AchievementDefinition] = ACHIEVEMENTS,
) -> list[AchievementDefinition]:
    """Achievements that qualify now but are not yet earned, in catalog order.

    Pure: the caller records the ids. Running it again on the updated state yields nothing.
    """

    earned = set(state.earned_achievement_ids)
    return [a for a in catalog if a.id not in earned and a.predicate(state)]


def get_achievement(achievement_id: str, catalog: Sequence[AchievementDefinition] = ACHIEVEMENTS) -> AchievementDefinition | None:
    return next((a for a in catalog if a.id == achievement_id), None)


def progress_view(
    state: ProfileState,
    catalog: Sequence[AchievementDefinition] = ACHIEVEMENTS,
) -> list[AchievementView]:
    earned = set(state.earned_achievement_ids)
    return [
        AchievementView(id=a.id, name=a.name, description=a.description, icon=a.icon, earned=a.id in earned)
        for a in catalog
    ]
