"""Achievement engine - declarative one-time milestones over a skill profile."""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from mnemo.skills.types import Achievement, AgentSkillProfile, SkillLevel, category_for

CODING_WIZARD_SKILLS = ("javascript", "typescript", "python", "java")


@dataclass(frozen=True)
class AchievementDefinition:
    id: str
    name: str
    description: str
    category: str
    check: Callable[[AgentSkillProfile], bool]

    def unlock(self, now: datetime | None = None) -> Achievement:
        return Achievement(
            id=self.id,
            name=self.name,
            description=self.description,
            category=self.category,
            unlocked_at=now or datetime.now(),
        )


def _coding_wizard(profile: AgentSkillProfile) -> bool:
    experts = [
        s
        for s in profile.skills.values()
        if s.skill_name in CODING_WIZARD_SKILLS and s.level.rank >= SkillLevel.EXPERT.rank
    ]
    return len(experts) >= 3


def _polyglot(profile: AgentSkillProfile) -> bool:
    return len({category_for(name) for name in profile.skills}) >= 4


DEFAULT_ACHIEVEMENTS: tuple[AchievementDefinition, ...] = (
    AchievementDefinition(
        "first_skill",
        "First Steps",
        "Earn your first skill",
        "general",
        lambda p: len(p.skills) > 0,
    ),
    AchievementDefinition(
        "skill_collector",
        "Skill Collector",
        "Earn 5 different skills",
        "general",
        lambda p: len(p.skills) >= 5,
    ),
    AchievementDefinition(
        "xp_millionaire",
        "XP Millionaire",
        "Earn 1,000 total XP",
        "general",
        lambda p: p.total_xp >= 1000,
    ),
    AchievementDefinition(
        "intermediate_specialist",
        "Leveling Up",
        "Reach Intermediate level in any skill",
        "general",
        lambda p: any(s.level != SkillLevel.BEGINNER for s in p.skills.values()),
    ),
    AchievementDefinition(
        "master_specialist",
        "Master of One",
        "Reach Master level in any skill",
        "general",
        lambda p: any(s.level == SkillLevel.MASTER for s in p.skills.values()),
    ),
    AchievementDefinition(
        "coding_wizard",
        "Coding Wizard",
        "Reach Expert level in 3 coding skills",
        "coding",
        _coding_wizard,
    ),
    AchievementDefinition(
        "polyglot",
        "Polyglot",
        "Have skills in 4 different categories",
        "general",
        _polyglot,
    ),
)


class AchievementEngine:
    """Evaluates achievement predicates against a profile."""

    def __init__(
        self,
        definitions: tuple[AchievementDefinition, ...] | list[AchievementDefinition] = DEFAULT_ACHIEVEMENTS,
    ):
        self.definitions = tuple(definitions)

    def check_achievements(self, profile: AgentSkillProfile) -> list[Achievement]:
        """Newly satisfied achievements not yet on the profile. Does not mutate it."""
        unlocked = profile.achievement_ids()
        now = datetime.now()
        return [
            definition.unlock(now)
            for definition in self.definitions
            if definition.id not in unlocked and definition.check(profile)
        ]
