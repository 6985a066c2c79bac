"""Skill analytics - XP trend history, next-level projections and gap analysis.

A trend point is recorded after every XP award. The last TREND_LIMIT points
per agent and skill are kept in the "skill_trends" collection.
"""

import asyncio
import math
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from mnemo.core.events import Event
from mnemo.core.logging import get_logger
from mnemo.memory.snapshots import PersistenceError, SnapshotStore
from mnemo.skills.tracker import SkillTracker
from mnemo.skills.types import SKILL_CATEGORIES, SkillLevel, SkillProgress

logger = get_logger("skills.analytics")

COLLECTION = "skill_trends"
TREND_LIMIT = 100
PROJECTION_WINDOW = 10
DEFAULT_XP_PER_TASK = 10
MAX_GAP_RECOMMENDATIONS = 10

_PRIORITY_ORDER = {"high": 0, "medium": 1, "low": 2}


@dataclass
class SkillTrendPoint:
    timestamp: datetime
    level: SkillLevel
    total_xp: int
    tasks_completed: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "level": self.level.value,
            "total_xp": self.total_xp,
            "tasks_completed": self.tasks_completed,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SkillTrendPoint":
        return cls(
            timestamp=datetime.fromisoformat(data["timestamp"]),
            level=SkillLevel(data["level"]),
            total_xp=int(data["total_xp"]),
            tasks_completed=int(data.get("tasks_completed", 0)),
        )


def next_level(level: SkillLevel) -> SkillLevel | None:
    levels = list(SkillLevel)
    index = levels.index(level)
    return levels[index + 1] if index < len(levels) - 1 else None


def estimate_tasks_to_next_level(progress: SkillProgress) -> int:
    """Tasks needed at the skill's average XP per task; 0 at master."""
    if progress.level == SkillLevel.MASTER:
        return 0
    if progress.tasks_completed > 0 and progress.total_xp > 0:
        per_task = progress.total_xp / progress.tasks_completed
    else:
        per_task = DEFAULT_XP_PER_TASK
    return math.ceil(progress.xp_to_next_level / per_task)


def project_next_level(
    progress: SkillProgress,
    history: list[SkillTrendPoint],
    now: datetime | None = None,
) -> dict[str, Any] | None:
    """Extrapolate when the next level is reached from the recent XP rate.

    Uses the last PROJECTION_WINDOW points. None at master, with fewer than
    two points, or when XP did not grow over the window.
    """
    upcoming = next_level(progress.level)
    if upcoming is None or len(history) < 2:
        return None

    recent = history[-PROJECTION_WINDOW:]
    first, last = recent[0], recent[-1]
    elapsed = (last.timestamp - first.timestamp).total_seconds()
    gained = last.total_xp - first.total_xp
    if elapsed <= 0 or gained <= 0:
        return None

    xp_per_second = gained / elapsed
    now = now or datetime.now()
    return {
        "level": upcoming.value,
        "estimated_date": (now + timedelta(seconds=progress.xp_to_next_level / xp_per_second)).isoformat(),
        "tasks_needed": estimate_tasks_to_next_level(progress),
    }


class SkillAnalytics:
    """Trend history and derived reports on top of the skill tracker."""

    def __init__(self, snapshots: SnapshotStore, tracker: SkillTracker):
        self.snapshots = snapshots
        self.tracker = tracker
        # agent_id -> skill_name -> points, oldest first
        self._trends: dict[str, dict[str, deque[SkillTrendPoint]]] = {}
        self._lock = asyncio.Lock()

    async def load(self) -> None:
        data = await self.snapshots.load(COLLECTION)
        trends: dict[str, dict[str, deque[SkillTrendPoint]]] = {}
        if isinstance(data, dict):
            for agent_id, skills in data.items():
                try:
                    trends[agent_id] = {
                        skill_name: deque(
                            (SkillTrendPoint.from_dict(p) for p in points), maxlen=TREND_LIMIT
                        )
                        for skill_name, points in skills.items()
                    }
                except (AttributeError, KeyError, TypeError, ValueError) as e:
                    logger.warning(f"Skipping unreadable trends for {agent_id}: {e}")
        elif data is not None:
            logger.warning("Skill trend snapshot has unexpected shape, starting empty")
        self._trends = trends
        logger.info(f"Skill analytics loaded trends for {len(self._trends)} agents")

    async def record_snapshot(
        self,
        agent_id: str,
        skill_name: str,
        progress: SkillProgress,
        now: datetime | None = None,
    ) -> SkillTrendPoint:
        """Append a trend point for one skill and persist.

        Raises:
            PersistenceError: trends could not be saved.
        """
        point = SkillTrendPoint(
            timestamp=now or datetime.now(),
            level=progress.level,
            total_xp=progress.total_xp,
            tasks_completed=progress.tasks_completed,
        )
        async with self._lock:
            points = self._trends.setdefault(agent_id, {}).setdefault(
                skill_name, deque(maxlen=TREND_LIMIT)
            )
            points.append(point)
            try:
                await self._save()
            except PersistenceError:
                points.pop()
                raise
        return point

    async def on_xp_awarded(self, event: Event) -> None:
        """Event handler: record a trend point for the awarded skill."""
        agent_id = event.payload.get("agent_id")
        skill_name = event.payload.get("skill_name")
        progress = self.tracker.get_skill_progress(agent_id, skill_name)
        if progress is None:
            return
        try:
            await self.record_snapshot(agent_id, skill_name, progress)
        except PersistenceError as e:
            logger.error(f"Trend point for {agent_id}/{skill_name} not persisted: {e}")

    def get_skill_trends(self, agent_id: str, skill_name: str) -> list[SkillTrendPoint]:
        return list(self._trends.get(agent_id, {}).get(skill_name, ()))

    def progression_chart(self, agent_id: str, now: datetime | None = None) -> dict[str, Any] | None:
        """History and projected next level for every skill, highest XP first."""
        profile = self.tracker.get_agent_profile(agent_id)
        if profile is None:
            return None

        skills = []
        for progress in sorted(profile.skills.values(), key=lambda s: s.total_xp, reverse=True):
            history = self.get_skill_trends(agent_id, progress.skill_name)
            skills.append({
                "skill_name": progress.skill_name,
                "current_level": progress.level.value,
                "history": [p.to_dict() for p in history],
                "projected_next_level": project_next_level(progress, history, now),
            })

        return {"agent_id": profile.agent_id, "agent_name": profile.agent_name, "skills": skills}

    def analyze_gaps(self, agent_id: str) -> dict[str, Any] | None:
        """Per category: skills never used and skills still at beginner."""
        profile = self.tracker.get_agent_profile(agent_id)
        if profile is None:
            return None

        gaps = []
        recommendations = []
        for category, category_skills in SKILL_CATEGORIES.items():
            missing = [name for name in category_skills if name not in profile.skills]
            weak = [
                profile.skills[name]
                for name in category_skills
                if name in profile.skills and profile.skills[name].level.rank < SkillLevel.INTERMEDIATE.rank
            ]
            if missing or weak:
                gaps.append({
                    "category": category,
                    "missing_skills": missing,
                    "weak_skills": [
                        {
                            "skill_name": s.skill_name,
                            "level": s.level.value,
                            "reason": f"Only {s.level.value} level in {category}",
                        }
                        for s in weak
                    ],
                })
            for skill in weak:
                recommendations.append({
                    "skill_name": skill.skill_name,
                    "priority": "high",
                    "reason": f"Improve {category} proficiency",
                    "estimated_tasks": estimate_tasks_to_next_level(skill),
                })

        recommendations.sort(key=lambda r: _PRIORITY_ORDER[r["priority"]])
        return {
            "agent_id": profile.agent_id,
            "agent_name": profile.agent_name,
            "gaps": gaps,
            "recommendations": recommendations[:MAX_GAP_RECOMMENDATIONS],
        }

    async def _save(self) -> None:
        await self.snapshots.save(
            COLLECTION,
            {
                agent_id: {name: [p.to_dict() for p in points] for name, points in skills.items()}
                for agent_id, skills in self._trends.items()
            },
        )
