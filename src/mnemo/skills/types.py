"""Skill progression data model and threshold tables."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class SkillLevel(Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"
    EXPERT = "expert"
    MASTER = "master"

    @property
    def rank(self) -> int:
        """Ordinal 0-4, used for prerequisite comparisons."""
        return _LEVEL_ORDER.index(self)

    @property
    def threshold(self) -> int:
        return XP_THRESHOLDS[self]


_LEVEL_ORDER = list(SkillLevel)

# Cumulative XP needed to reach each level
XP_THRESHOLDS: dict[SkillLevel, int] = {
    SkillLevel.BEGINNER: 0,
    SkillLevel.INTERMEDIATE: 100,
    SkillLevel.ADVANCED: 350,
    SkillLevel.EXPERT: 850,
    SkillLevel.MASTER: 1850,
}

# Width of each level band; master is terminal
XP_TO_NEXT_LEVEL: dict[SkillLevel, int] = {
    SkillLevel.BEGINNER: 100,
    SkillLevel.INTERMEDIATE: 250,
    SkillLevel.ADVANCED: 500,
    SkillLevel.EXPERT: 1000,
    SkillLevel.MASTER: 0,
}

SKILL_CATEGORIES: dict[str, tuple[str, ...]] = {
    "coding": ("javascript", "typescript", "python", "java", "cpp", "rust", "go"),
    "web": ("html", "css", "react", "vue", "angular", "frontend", "backend"),
    "systems": ("linux", "docker", "kubernetes", "devops", "terminal", "bash"),
    "database": ("sql", "mongodb", "postgresql", "redis", "database"),
    "tools": ("git", "debugging", "testing", "refactoring", "code-review"),
    "research": ("web-search", "documentation", "analysis", "investigation"),
    "communication": ("writing", "explaining", "documentation", "presentation"),
    "domain": ("ai", "ml", "security", "networking", "algorithms"),
}


def level_for_xp(total_xp: float) -> SkillLevel:
    """Level reached with this much cumulative XP."""
    level = SkillLevel.BEGINNER
    for candidate in _LEVEL_ORDER:
        if total_xp >= XP_THRESHOLDS[candidate]:
            level = candidate
    return level


def category_for(skill_name: str) -> str:
    """First category listing the skill, or 'other'."""
    for category, skills in SKILL_CATEGORIES.items():
        if skill_name in skills:
            return category
    return "other"


@dataclass
class SkillProgress:
    """Progress of one agent in one skill.

    `level`, `current_xp` and `xp_to_next_level` are derived from
    `total_xp` by recalculate() and never set independently.
    """

    skill_name: str
    total_xp: int = 0
    tasks_completed: int = 0
    last_used: datetime = field(default_factory=datetime.now)
    first_used: datetime = field(default_factory=datetime.now)
    decayed_xp: int = 0  # Removed by decay since last_used
    level: SkillLevel = field(init=False, default=SkillLevel.BEGINNER)
    current_xp: int = field(init=False, default=0)
    xp_to_next_level: int = field(init=False, default=XP_TO_NEXT_LEVEL[SkillLevel.BEGINNER])

    def __post_init__(self) -> None:
        self.recalculate()

    def recalculate(self) -> SkillLevel:
        """Recompute level fields from total XP. Returns the new level."""
        self.level = level_for_xp(self.total_xp)
        self.current_xp = self.total_xp - XP_THRESHOLDS[self.level]
        band = XP_TO_NEXT_LEVEL[self.level]
        self.xp_to_next_level = max(0, band - self.current_xp) if band else 0
        return self.level

    def to_dict(self) -> dict[str, Any]:
        return {
            "skill_name": self.skill_name,
            "level": self.level.value,
            "current_xp": self.current_xp,
            "total_xp": self.total_xp,
            "xp_to_next_level": self.xp_to_next_level,
            "tasks_completed": self.tasks_completed,
            "last_used": self.last_used.isoformat(),
            "first_used": self.first_used.isoformat(),
            "decayed_xp": self.decayed_xp,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SkillProgress":
        # Derived level fields are recomputed, never trusted from storage
        return cls(
            skill_name=data["skill_name"],
            total_xp=int(data.get("total_xp", 0)),
            tasks_completed=int(data.get("tasks_completed", 0)),
            last_used=datetime.fromisoformat(data["last_used"]),
            first_used=datetime.fromisoformat(data["first_used"]),
            decayed_xp=int(data.get("decayed_xp", 0)),
        )


@dataclass(frozen=True)
class Achievement:
    id: str
    name: str
    description: str
    category: str
    unlocked_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "unlocked_at": self.unlocked_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Achievement":
        return cls(
            id=data["id"],
            name=data.get("name", data["id"]),
            description=data.get("description", ""),
            category=data.get("category", "general"),
            unlocked_at=datetime.fromisoformat(data["unlocked_at"]),
        )


@dataclass
class AgentSkillProfile:
    """All skills and achievements of one agent."""

    agent_id: str
    agent_name: str
    skills: dict[str, SkillProgress] = field(default_factory=dict)
    achievements: list[Achievement] = field(default_factory=list)
    total_xp: int = 0
    total_tasks_completed: int = 0
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    def achievement_ids(self) -> set[str]:
        return {a.id for a in self.achievements}

    def to_dict(self) -> dict[str, Any]:
        return {
            "agent_id": self.agent_id,
            "agent_name": self.agent_name,
            "skills": {name: s.to_dict() for name, s in self.skills.items()},
            "achievements": [a.to_dict() for a in self.achievements],
            "total_xp": self.total_xp,
            "total_tasks_completed": self.total_tasks_completed,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AgentSkillProfile":
        return cls(
            agent_id=data["agent_id"],
            agent_name=data.get("agent_name", data["agent_id"]),
            skills={
                name: SkillProgress.from_dict(s) for name, s in (data.get("skills") or {}).items()
            },
            achievements=[Achievement.from_dict(a) for a in data.get("achievements") or []],
            total_xp=int(data.get("total_xp", 0)),
            total_tasks_completed=int(data.get("total_tasks_completed", 0)),
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
        )


@dataclass(frozen=True)
class SkillDependency:
    """`skill_name` needs `required_skill_name` at `required_level` or above."""

    skill_name: str
    required_skill_name: str
    required_level: SkillLevel = SkillLevel.INTERMEDIATE


DEFAULT_DEPENDENCIES: tuple[SkillDependency, ...] = (
    SkillDependency("typescript", "javascript", SkillLevel.INTERMEDIATE),
    SkillDependency("react", "javascript", SkillLevel.INTERMEDIATE),
    SkillDependency("docker", "linux", SkillLevel.INTERMEDIATE),
    SkillDependency("kubernetes", "docker", SkillLevel.INTERMEDIATE),
)


@dataclass(frozen=True)
class DecayConfig:
    enabled: bool = True
    idle_days: float = 7.0
    rate_per_day: float = 5.0
    min_level: SkillLevel = SkillLevel.INTERMEDIATE


@dataclass
class XPAward:
    """Outcome of a single award_xp call."""

    agent_id: str
    skill_name: str
    xp_awarded: int
    reason: str
    previous_level: SkillLevel
    new_level: SkillLevel
    leveled_up: bool = False
    achievements: list[Achievement] = field(default_factory=list)
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "agent_id": self.agent_id,
            "skill_name": self.skill_name,
            "xp_awarded": self.xp_awarded,
            "reason": self.reason,
            "previous_level": self.previous_level.value,
            "new_level": self.new_level.value,
            "leveled_up": self.leveled_up,
            "achievements": [a.id for a in self.achievements],
            "timestamp": self.timestamp.isoformat(),
        }
