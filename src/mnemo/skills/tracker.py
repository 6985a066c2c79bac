"""Skill tracker - XP awards, leveling, prerequisite gating and idle decay."""

import asyncio
import math
from collections import Counter
from datetime import datetime
from typing import Any

from mnemo.core.events import EventBus, EventType
from mnemo.core.logging import get_logger
from mnemo.memory.snapshots import PersistenceError, SnapshotStore
from mnemo.skills.achievements import AchievementEngine
from mnemo.skills.types import (
    DEFAULT_DEPENDENCIES,
    AgentSkillProfile,
    DecayConfig,
    SkillDependency,
    SkillLevel,
    SkillProgress,
    XPAward,
)

logger = get_logger("skills.tracker")

COLLECTION = "skill_profiles"
SECONDS_PER_DAY = 86400


class SkillTracker:
    """Owns every agent's skill profile."""

    def __init__(
        self,
        snapshots: SnapshotStore,
        events: EventBus | None = None,
        achievements: AchievementEngine | None = None,
        decay: DecayConfig | None = None,
        dependencies: tuple[SkillDependency, ...] | list[SkillDependency] = DEFAULT_DEPENDENCIES,
    ):
        self.snapshots = snapshots
        self.events = events or EventBus()
        self.achievements = achievements or AchievementEngine()
        self.decay = decay or DecayConfig()
        self._dependencies: list[SkillDependency] = list(dependencies)
        self._profiles: dict[str, AgentSkillProfile] = {}
        self._lock = asyncio.Lock()

    async def load(self) -> None:
        data = await self.snapshots.load(COLLECTION)
        profiles = {}
        if isinstance(data, dict):
            for agent_id, item in data.items():
                try:
                    profiles[agent_id] = AgentSkillProfile.from_dict(item)
                except (KeyError, TypeError, ValueError) as e:
                    logger.warning(f"Skipping unreadable profile {agent_id}: {e}")
        elif data is not None:
            logger.warning("Skill profile snapshot has unexpected shape, starting empty")
        self._profiles = profiles
        logger.info(f"Skill tracker loaded {len(self._profiles)} agent profiles")

    # Dependencies

    def set_dependencies(self, dependencies: list[SkillDependency]) -> None:
        """Replace the prerequisite table."""
        self._dependencies = list(dependencies)

    @property
    def dependencies(self) -> list[SkillDependency]:
        return list(self._dependencies)

    def unmet_dependencies(self, agent_id: str, skill_name: str) -> list[SkillDependency]:
        """Prerequisites of a skill the agent has not reached yet."""
        profile = self._profiles.get(agent_id)
        unmet = []
        for dependency in self._dependencies:
            if dependency.skill_name != skill_name:
                continue
            required = profile.skills.get(dependency.required_skill_name) if profile else None
            if required is None or required.level.rank < dependency.required_level.rank:
                unmet.append(dependency)
        return unmet

    # Awards

    async def award_xp(
        self,
        agent_id: str,
        agent_name: str,
        skill_name: str,
        amount: int,
        reason: str = "",
    ) -> XPAward:
        """Award XP for using a skill.

        Flow:
        1. Check prerequisites, returning a zero-XP award if any is unmet
        2. Create profile and skill lazily
        3. Add XP, recompute level, collect level-up
        4. Unlock achievements
        5. Persist, then publish events

        Raises:
            ValueError: amount is negative.
            PersistenceError: profiles could not be saved.
        """
        if amount < 0:
            raise ValueError(f"XP amount must be non-negative, got {amount}")

        pending: list[tuple[EventType, dict[str, Any]]] = []

        async with self._lock:
            unmet = self.unmet_dependencies(agent_id, skill_name)
            if unmet:
                needs = ", ".join(
                    f"{d.required_skill_name} at {d.required_level.value}" for d in unmet
                )
                logger.info(f"{agent_name}: XP for {skill_name} blocked, requires {needs}")
                current = self.get_skill_progress(agent_id, skill_name)
                level = current.level if current else SkillLevel.BEGINNER
                return XPAward(
                    agent_id=agent_id,
                    skill_name=skill_name,
                    xp_awarded=0,
                    reason=f"Missing dependency for {skill_name}: requires {needs}",
                    previous_level=level,
                    new_level=level,
                )

            now = datetime.now()
            profile = self._profiles.get(agent_id)
            if profile is None:
                profile = AgentSkillProfile(agent_id=agent_id, agent_name=agent_name)
                self._profiles[agent_id] = profile

            progress = profile.skills.get(skill_name)
            if progress is None:
                progress = SkillProgress(skill_name=skill_name)
                profile.skills[skill_name] = progress

            previous_level = progress.level
            progress.total_xp += amount
            progress.tasks_completed += 1
            progress.last_used = now
            progress.decayed_xp = 0
            new_level = progress.recalculate()

            profile.total_xp += amount
            profile.total_tasks_completed += 1
            profile.updated_at = now

            leveled_up = new_level != previous_level
            if leveled_up:
                logger.info(
                    f"{agent_name} leveled up {skill_name}: "
                    f"{previous_level.value} -> {new_level.value}"
                )
                pending.append((EventType.LEVEL_UP, {
                    "agent_id": agent_id,
                    "agent_name": agent_name,
                    "skill_name": skill_name,
                    "previous_level": previous_level.value,
                    "new_level": new_level.value,
                    "total_xp": progress.total_xp,
                }))

            unlocked = self.achievements.check_achievements(profile)
            profile.achievements.extend(unlocked)
            for achievement in unlocked:
                logger.info(f"{agent_name} unlocked achievement: {achievement.name}")
                pending.append((EventType.ACHIEVEMENT_UNLOCKED, {
                    "agent_id": agent_id,
                    "agent_name": agent_name,
                    "achievement": achievement.to_dict(),
                }))

            await self._save()

        award = XPAward(
            agent_id=agent_id,
            skill_name=skill_name,
            xp_awarded=amount,
            reason=reason,
            previous_level=previous_level,
            new_level=new_level,
            leveled_up=leveled_up,
            achievements=unlocked,
        )
        pending.append((EventType.XP_AWARDED, award.to_dict()))

        # Emitted outside the lock so handlers may award XP themselves
        for event_type, payload in pending:
            await self.events.emit(event_type, payload)

        return award

    # Queries

    def get_agent_profile(self, agent_id: str) -> AgentSkillProfile | None:
        return self._profiles.get(agent_id)

    def all_profiles(self) -> list[AgentSkillProfile]:
        return list(self._profiles.values())

    def get_skill_progress(self, agent_id: str, skill_name: str) -> SkillProgress | None:
        profile = self._profiles.get(agent_id)
        return profile.skills.get(skill_name) if profile else None

    def get_top_skills(self, agent_id: str, limit: int = 5) -> list[SkillProgress]:
        """Skills sorted by cumulative XP, highest first."""
        profile = self._profiles.get(agent_id)
        if profile is None:
            return []
        return sorted(profile.skills.values(), key=lambda s: s.total_xp, reverse=True)[:limit]

    def global_stats(self) -> dict[str, Any]:
        profiles = list(self._profiles.values())
        skills = [s for p in profiles for s in p.skills.values()]
        return {
            "total_agents": len(profiles),
            "total_xp": sum(p.total_xp for p in profiles),
            "total_tasks": sum(p.total_tasks_completed for p in profiles),
            "total_skills": len(skills),
            "level_distribution": dict(Counter(s.level.value for s in skills)),
            "most_common_skills": [
                name for name, _ in Counter(s.skill_name for s in skills).most_common(5)
            ],
            "achievements_unlocked": sum(len(p.achievements) for p in profiles),
        }

    # Decay

    async def apply_decay(self, now: datetime | None = None) -> int:
        """Apply idle decay to every skill. Returns how many skills lost XP.

        XP owed grows with idle time; only the part not already removed
        since the skill was last used is subtracted, so repeated sweeps
        are idempotent. Skills at or below the floor level are untouched.
        """
        if not self.decay.enabled:
            return 0

        now = now or datetime.now()
        floor_xp = self.decay.min_level.threshold
        pending: list[tuple[EventType, dict[str, Any]]] = []
        changed = 0

        async with self._lock:
            for profile in list(self._profiles.values()):
                for progress in list(profile.skills.values()):
                    idle_days = (now - progress.last_used).total_seconds() / SECONDS_PER_DAY
                    if idle_days <= self.decay.idle_days:
                        continue

                    owed = math.floor((idle_days - self.decay.idle_days) * self.decay.rate_per_day)
                    due = owed - progress.decayed_xp
                    if due <= 0 or progress.total_xp <= floor_xp:
                        continue

                    old_level = progress.level
                    progress.total_xp = max(floor_xp, progress.total_xp - due)
                    progress.decayed_xp = owed
                    new_level = progress.recalculate()
                    changed += 1

                    if new_level != old_level:
                        logger.info(
                            f"{profile.agent_name} {progress.skill_name} decayed: "
                            f"{old_level.value} -> {new_level.value}"
                        )
                        pending.append((EventType.DECAY_LEVEL_DOWN, {
                            "agent_id": profile.agent_id,
                            "skill_name": progress.skill_name,
                            "old_level": old_level.value,
                            "new_level": new_level.value,
                        }))

            if changed:
                try:
                    await self._save()
                except PersistenceError as e:
                    logger.error(f"Decay sweep not persisted: {e}")

        for event_type, payload in pending:
            await self.events.emit(event_type, payload)

        if changed:
            logger.info(f"Decay applied to {changed} skills")
        return changed

    async def trigger_decay(self) -> int:
        """Run a decay sweep now."""
        return await self.apply_decay()

    async def _save(self) -> None:
        await self.snapshots.save(
            COLLECTION, {agent_id: p.to_dict() for agent_id, p in self._profiles.items()}
        )
