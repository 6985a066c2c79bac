"""Skill progression - maps finished tasks to XP and suggests what to practise."""

from collections import Counter, defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from mnemo.core.logging import get_logger
from mnemo.skills.analytics import SkillAnalytics
from mnemo.skills.tracker import SECONDS_PER_DAY, SkillTracker
from mnemo.skills.types import SkillLevel, SkillProgress, XPAward, category_for

logger = get_logger("skills.progression")

SUCCESS_XP = 10
FAILURE_XP = 5
STALE_DAYS = 7
MAX_RECOMMENDATIONS = 5

TOOL_SKILLS: dict[str, str] = {
    "bash": "terminal",
    "str_replace_editor": "coding",
    "web_search": "research",
    "screenshot": "vision",
    "mouse_move": "computer-control",
    "mouse_click": "computer-control",
    "type_text": "computer-control",
    "download_file": "web",
    "open_url": "web",
    "github_create_repo": "git",
    "github_create_issue": "git",
}

TASK_SKILLS: dict[str, str] = {
    "coding": "coding",
    "research": "research",
    "debugging": "debugging",
    "testing": "testing",
    "documentation": "documentation",
    "refactoring": "refactoring",
    "security-audit": "security",
    "code-review": "code-review",
}


@dataclass
class Recommendation:
    skill_name: str
    reason: str
    priority: str  # high | medium | low

    def to_dict(self) -> dict[str, str]:
        return {"skill_name": self.skill_name, "reason": self.reason, "priority": self.priority}


def skill_for_tool(tool_name: str) -> str:
    return TOOL_SKILLS.get(tool_name, tool_name)


def skill_for_task(task_type: str) -> str | None:
    return TASK_SKILLS.get(task_type)


def _average_level(skills: list[SkillProgress]) -> SkillLevel:
    if not skills:
        return SkillLevel.BEGINNER
    average = sum(s.level.rank for s in skills) / len(skills)
    # Round half up to the nearest rank
    return list(SkillLevel)[min(4, int(average + 0.5))]


class SkillProgression:
    """Task-level view on top of the skill tracker."""

    def __init__(self, tracker: SkillTracker, analytics: SkillAnalytics | None = None):
        self.tracker = tracker
        self.analytics = analytics

    async def award_task_xp(
        self,
        agent_id: str,
        agent_name: str,
        task_type: str,
        success: bool,
        tools_used: list[str] | None = None,
    ) -> list[XPAward]:
        """Award XP for every tool used plus double XP for the task's own skill."""
        base_xp = SUCCESS_XP if success else FAILURE_XP
        reason = f"Completed {task_type} task"
        awards = []

        for tool in tools_used or []:
            awards.append(
                await self.tracker.award_xp(agent_id, agent_name, skill_for_tool(tool), base_xp, reason)
            )

        task_skill = skill_for_task(task_type)
        if task_skill:
            awards.append(
                await self.tracker.award_xp(agent_id, agent_name, task_skill, base_xp * 2, reason)
            )

        logger.debug(f"{agent_name}: {len(awards)} awards for {task_type} (success={success})")
        return awards

    def recommendations(self, agent_id: str, now: datetime | None = None) -> list[Recommendation]:
        """Skills below their category average, then skills idle for over a week."""
        profile = self.tracker.get_agent_profile(agent_id)
        if profile is None:
            return []

        now = now or datetime.now()
        results: list[Recommendation] = []

        by_category: dict[str, list[SkillProgress]] = defaultdict(list)
        for skill in profile.skills.values():
            by_category[category_for(skill.skill_name)].append(skill)

        for category, skills in by_category.items():
            average = _average_level(skills)
            for skill in skills:
                if skill.level.rank < average.rank:
                    results.append(Recommendation(
                        skill.skill_name, f"Below average in {category} category", "medium"
                    ))

        for skill in profile.skills.values():
            idle_days = (now - skill.last_used).total_seconds() / SECONDS_PER_DAY
            if idle_days > STALE_DAYS:
                results.append(Recommendation(
                    skill.skill_name, "Not used recently, may need practice", "low"
                ))

        return results[:MAX_RECOMMENDATIONS]

    def report(self, agent_id: str) -> dict[str, Any] | None:
        profile = self.tracker.get_agent_profile(agent_id)
        if profile is None:
            return None

        distribution = Counter(s.level.value for s in profile.skills.values())
        report = {
            "agent_id": profile.agent_id,
            "agent_name": profile.agent_name,
            "total_xp": profile.total_xp,
            "total_tasks_completed": profile.total_tasks_completed,
            "total_skills": len(profile.skills),
            "top_skills": [s.to_dict() for s in self.tracker.get_top_skills(agent_id, 5)],
            "recommendations": [r.to_dict() for r in self.recommendations(agent_id)],
            "achievements": [a.to_dict() for a in profile.achievements],
            "skill_distribution": {level.value: distribution.get(level.value, 0) for level in SkillLevel},
            "created_at": profile.created_at.isoformat(),
            "updated_at": profile.updated_at.isoformat(),
        }
        if self.analytics is not None:
            report["gap_analysis"] = self.analytics.analyze_gaps(agent_id)
            report["progression_chart"] = self.analytics.progression_chart(agent_id)
        return report
