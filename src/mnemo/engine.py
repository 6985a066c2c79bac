"""Engine - owns every memory and skill component and their background sweeps.

Construct one per process (or per test), start it, pass it by reference:

    async with Engine(settings) as engine:
        await engine.memory.remember("User's name is Sam")
"""

from datetime import timedelta

from mnemo.core.config import Settings
from mnemo.core.events import EventBus, EventType
from mnemo.core.logging import get_logger
from mnemo.core.scheduler import Scheduler, TaskPriority
from mnemo.memory.consolidation import Consolidator
from mnemo.memory.embeddings import EmbeddingProvider, create_embedding_provider
from mnemo.memory.extraction import InteractionLearner
from mnemo.memory.privacy import PrivacyFilter
from mnemo.memory.snapshots import SnapshotStore
from mnemo.memory.store import MemoryStore
from mnemo.memory.vectors import SemanticIndex
from mnemo.skills.achievements import AchievementEngine
from mnemo.skills.analytics import SkillAnalytics
from mnemo.skills.progression import SkillProgression
from mnemo.skills.tracker import SkillTracker
from mnemo.skills.types import DecayConfig, SkillLevel

logger = get_logger("engine")


class Engine:
    """Explicit context object replacing process-wide singletons."""

    def __init__(
        self,
        settings: Settings | None = None,
        embedder: EmbeddingProvider | None = None,
    ):
        self.settings = settings or Settings()
        self.embedder = embedder if embedder is not None else create_embedding_provider(self.settings)

        self.snapshots = SnapshotStore(self.settings.db_path)
        self.events = EventBus()
        self.privacy = PrivacyFilter()
        self.index = SemanticIndex(
            self.snapshots, self.embedder, timeout=self.settings.embedding_timeout
        )
        self.memory = MemoryStore(self.snapshots, self.index, self.privacy, self.settings)
        self.consolidator = Consolidator(self.memory, self.index, events=self.events)
        self.learner = InteractionLearner(self.memory)

        self.achievements = AchievementEngine()
        self.skills = SkillTracker(
            self.snapshots,
            events=self.events,
            achievements=self.achievements,
            decay=DecayConfig(
                enabled=self.settings.decay_enabled,
                idle_days=self.settings.decay_idle_days,
                rate_per_day=self.settings.decay_rate_per_day,
                min_level=SkillLevel(self.settings.decay_min_level),
            ),
        )
        self.analytics = SkillAnalytics(self.snapshots, self.skills)
        self.events.subscribe(EventType.XP_AWARDED, self.analytics.on_xp_awarded)
        self.progression = SkillProgression(self.skills, self.analytics)

        self.scheduler = Scheduler(tick=self.settings.scheduler_tick)
        self._started = False

    @property
    def started(self) -> bool:
        return self._started

    async def start(self, schedule: bool = True) -> None:
        """Connect storage, load every collection and optionally start sweeps."""
        if self._started:
            return

        await self.snapshots.connect()
        await self.index.load()
        await self.memory.load()
        await self.skills.load()
        await self.analytics.load()

        if schedule:
            self._schedule_sweeps()
            await self.scheduler.start()

        self._started = True
        logger.info("Engine started")

    def _schedule_sweeps(self) -> None:
        s = self.settings
        self.scheduler.schedule_task(
            "expiry",
            "Memory expiry sweep",
            self.memory.sweep_expired,
            interval=timedelta(seconds=s.expiry_sweep_interval),
            priority=TaskPriority.HIGH,
        )
        self.scheduler.schedule_task(
            "decay",
            "Skill decay sweep",
            self.skills.apply_decay,
            interval=timedelta(seconds=s.decay_sweep_interval),
        )
        # First consolidation and dedup run after one full interval
        self.scheduler.schedule_task(
            "consolidation",
            "Memory consolidation",
            self.consolidator.consolidate,
            interval=timedelta(seconds=s.consolidation_interval),
            priority=TaskPriority.LOW,
            delay=timedelta(seconds=s.consolidation_interval),
        )
        self.scheduler.schedule_task(
            "dedup",
            "Memory deduplication",
            self.consolidator.deduplicate,
            interval=timedelta(seconds=s.dedup_interval),
            priority=TaskPriority.LOW,
            delay=timedelta(seconds=s.dedup_interval),
        )

    async def stop(self) -> None:
        """Cancel sweeps, drain pending indexing and close storage."""
        await self.scheduler.stop()
        if self._started:
            await self.memory.wait_for_indexing()
        close = getattr(self.embedder, "close", None)
        if close is not None:
            await close()
        await self.snapshots.close()
        self._started = False
        logger.info("Engine stopped")

    async def sweep(self) -> dict[str, int]:
        """Run every maintenance pass once, in order."""
        return {
            "expired": await self.memory.sweep_expired(),
            "decayed": await self.skills.apply_decay(),
            "deduplicated": await self.consolidator.deduplicate(),
            "summaries": (await self.consolidator.consolidate())["summaries_created"],
        }

    async def __aenter__(self) -> "Engine":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()
