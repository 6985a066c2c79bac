"""Skill progression - XP, levels, prerequisites, idle decay and achievements."""

from mnemo.skills.achievements import AchievementEngine
from mnemo.skills.analytics import SkillAnalytics, SkillTrendPoint
from mnemo.skills.progression import SkillProgression
from mnemo.skills.tracker import SkillTracker
from mnemo.skills.types import (
    AgentSkillProfile,
    DecayConfig,
    SkillDependency,
    SkillLevel,
    SkillProgress,
    XPAward,
    level_for_xp,
)

__all__ = [
    "AchievementEngine",
    "AgentSkillProfile",
    "DecayConfig",
    "SkillDependency",
    "SkillLevel",
    "SkillProgress",
    "SkillAnalytics",
    "SkillProgression",
    "SkillTracker",
    "SkillTrendPoint",
    "XPAward",
    "level_for_xp",
]
