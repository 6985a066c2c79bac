"""Memory store - record of truth for learned knowledge with hybrid recall.

Keeps five collections in memory (memories, preferences, patterns, task
knowledge, reflections) and rewrites the matching snapshot after every
mutation. Recall fuses a keyword scan with semantic index hits.
"""

import asyncio
import json
from collections import Counter
from datetime import datetime, timedelta
from typing import Any

from mnemo.core.config import Settings
from mnemo.core.logging import get_logger
from mnemo.memory.base import (
    MemoryKind,
    MemoryRecord,
    MemorySource,
    Outcome,
    Pattern,
    Preference,
    Reflection,
    Sensitivity,
    TaskKnowledge,
    clamp,
    new_id,
)
from mnemo.memory.privacy import PrivacyFilter
from mnemo.memory.snapshots import PersistenceError, SnapshotStore
from mnemo.memory.vectors import SemanticIndex

logger = get_logger("memory.store")

DUPLICATE_OVERLAP = 0.8

# Keyword scoring weights
EXACT_MATCH_SCORE = 10.0
TOKEN_MATCH_SCORE = 2.0
TAG_MATCH_SCORE = 3.0
# Semantic fusion
SEMANTIC_BOOST = 15.0
SEMANTIC_BASELINE = 10.0


def token_overlap(a: str, b: str) -> float:
    """Overlap-over-union of lowercased whitespace tokens."""
    tokens_a = set(a.lower().split())
    tokens_b = set(b.lower().split())
    union = tokens_a | tokens_b
    if not union:
        return 0.0
    return len(tokens_a & tokens_b) / len(union)


class MemoryStore:
    """Persistent memory with merge-on-duplicate writes and hybrid recall."""

    def __init__(
        self,
        snapshots: SnapshotStore,
        index: SemanticIndex,
        privacy: PrivacyFilter | None = None,
        settings: Settings | None = None,
    ):
        self.snapshots = snapshots
        self.index = index
        self.privacy = privacy or PrivacyFilter()
        self.settings = settings or Settings(_env_file=None)

        self._memories: dict[str, MemoryRecord] = {}
        self._preferences: dict[str, Preference] = {}
        self._patterns: dict[str, Pattern] = {}  # lowercased trigger -> pattern
        self._tasks: dict[str, TaskKnowledge] = {}  # task_type -> knowledge
        self._reflections: list[Reflection] = []

        # One writer per collection
        self._locks = {
            name: asyncio.Lock()
            for name in ("memories", "preferences", "patterns", "tasks", "reflections")
        }
        self._indexing: set[asyncio.Task] = set()

    # Loading

    async def load(self) -> None:
        """Restore all collections. Unreadable snapshots start empty."""
        self._memories = {
            m.id: m for m in await self._load_list("memories", MemoryRecord.from_dict)
        }
        self._preferences = {
            p.key: p for p in await self._load_list("preferences", Preference.from_dict)
        }
        self._patterns = {
            p.trigger: p for p in await self._load_list("patterns", Pattern.from_dict)
        }
        self._tasks = {
            t.task_type: t for t in await self._load_list("tasks", TaskKnowledge.from_dict)
        }
        self._reflections = await self._load_list("reflections", Reflection.from_dict)
        logger.info(
            f"Memory store loaded: {len(self._memories)} memories, "
            f"{len(self._preferences)} preferences, {len(self._patterns)} patterns"
        )

    async def _load_list(self, name: str, factory) -> list:
        data = await self.snapshots.load(name)
        if data is None:
            return []
        if not isinstance(data, list):
            logger.warning(f"Snapshot '{name}' has unexpected shape, starting empty")
            return []
        items = []
        for item in data:
            try:
                items.append(factory(item))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping unreadable {name} entry: {e}")
        return items

    # Memory operations

    async def remember(
        self,
        content: str,
        *,
        kind: MemoryKind = MemoryKind.FACT,
        category: str = "general",
        context: str | None = None,
        confidence: float | None = None,
        use_count: int = 0,
        success_rate: float | None = None,
        tags: list[str] | None = None,
        source: MemorySource = MemorySource.INTERACTION,
        expires_at: datetime | None = None,
        sensitivity: Sensitivity = Sensitivity.PUBLIC,
        origin_id: str | None = None,
        reliability: float | None = None,
        metadata: dict[str, Any] | None = None,
        merge: bool = True,
    ) -> MemoryRecord:
        """Store a memory, or strengthen an existing near-duplicate.

        With merge=False the duplicate check is skipped and a new record is
        always created (consolidation summaries overlap their members).

        Raises:
            PersistenceError: the snapshot write failed; a new record is
                rolled back before the error propagates.
        """
        redaction = self.privacy.redact(content)
        if redaction.has_pii:
            logger.debug(f"Redacted {', '.join(redaction.patterns)} from memory content")
        context_redaction = self.privacy.redact(context) if context else None

        async with self._locks["memories"]:
            similar = self.find_similar(redaction.redacted) if merge else None
            if similar is not None:
                similar.strengthen(0.1)
                await self._save_memories()
                logger.debug(f"Merged into existing memory {similar.id}")
                return similar

            record = MemoryRecord(
                id=new_id(),
                kind=kind,
                category=category or "general",
                content=redaction.redacted,
                context=context_redaction.redacted if context_redaction else context,
                confidence=0.7 if confidence is None else confidence,
                use_count=use_count,
                success_rate=1.0 if success_rate is None else success_rate,
                tags=list(tags or []),
                source=source,
                expires_at=expires_at,
                sensitivity=sensitivity,
                origin_id=origin_id,
                reliability=0.7 if reliability is None else clamp(reliability),
                has_pii=redaction.has_pii or bool(context_redaction and context_redaction.has_pii),
                metadata=metadata,
            )
            self._memories[record.id] = record
            try:
                await self._save_memories()
            except PersistenceError:
                del self._memories[record.id]
                raise

        self._schedule_indexing(record)
        logger.info(f"Remembered [{record.kind.value}] {record.content[:50]}")
        return record

    def _schedule_indexing(self, record: MemoryRecord) -> asyncio.Task:
        task = asyncio.create_task(self._index_record(record))
        self._indexing.add(task)
        task.add_done_callback(self._indexing.discard)
        return task

    async def _index_record(self, record: MemoryRecord) -> str | None:
        metadata = {
            "memory_id": record.id,
            "kind": record.kind.value,
            "category": record.category,
        }
        entry_id = await self.index.index(record.content, metadata, entry_id=record.id)
        if entry_id is None:
            logger.debug(f"Memory {record.id} not indexed, keyword recall only")
        return entry_id

    async def wait_for_indexing(self) -> None:
        """Block until every pending background indexing task has finished."""
        while self._indexing:
            await asyncio.gather(*list(self._indexing), return_exceptions=True)

    def find_similar(self, content: str) -> MemoryRecord | None:
        """First record that is an exact (case-insensitive) or high-overlap match."""
        content_lower = content.lower()
        for memory in self._memories.values():
            if memory.content.lower() == content_lower:
                return memory
            if token_overlap(memory.content, content) > DUPLICATE_OVERLAP:
                return memory
        return None

    def _matches(
        self,
        memory: MemoryRecord,
        kind: MemoryKind | None,
        category: str | None,
    ) -> bool:
        if kind is not None and memory.kind != kind:
            return False
        if category is not None and memory.category != category:
            return False
        return True

    def _keyword_score(self, memory: MemoryRecord, query_lower: str, tokens: list[str]) -> float:
        score = 0.0
        content_lower = memory.content.lower()
        tags_lower = [t.lower() for t in memory.tags]

        if query_lower and query_lower in content_lower:
            score += EXACT_MATCH_SCORE

        for token in tokens:
            if token in content_lower:
                score += TOKEN_MATCH_SCORE
            if any(token in tag for tag in tags_lower):
                score += TAG_MATCH_SCORE

        return score * memory.confidence * memory.success_rate

    async def recall_scored(
        self,
        query: str,
        *,
        kind: MemoryKind | None = None,
        category: str | None = None,
        limit: int | None = None,
        semantic_limit: int | None = None,
    ) -> list[tuple[MemoryRecord, float]]:
        """Hybrid keyword + semantic recall, returning (record, score) pairs."""
        limit = self.settings.recall_limit if limit is None else limit
        semantic_limit = self.settings.semantic_limit if semantic_limit is None else semantic_limit
        query_lower = query.lower().strip()
        tokens = query_lower.split()

        # Phase A: keyword
        scores: dict[str, float] = {}
        for memory in list(self._memories.values()):
            if not self._matches(memory, kind, category):
                continue
            score = self._keyword_score(memory, query_lower, tokens)
            if score > 0:
                scores[memory.id] = score

        # Phase B: semantic
        hits = await self.index.query(
            query, limit=semantic_limit, threshold=self.settings.semantic_threshold
        )
        for hit in hits:
            memory_id = hit.metadata.get("memory_id", hit.id)
            memory = self._memories.get(memory_id)
            if memory is None or not self._matches(memory, kind, category):
                continue
            if memory_id in scores:
                scores[memory_id] += SEMANTIC_BOOST
            else:
                scores[memory_id] = SEMANTIC_BASELINE

        ranked = sorted(scores.items(), key=lambda item: item[1], reverse=True)[:limit]
        results = [(self._memories[mid], score) for mid, score in ranked if mid in self._memories]

        if results:
            await self._track_usage([memory for memory, _ in results])
        logger.debug(f"Recall '{query}' returned {len(results)} memories")
        return results

    async def recall(
        self,
        query: str,
        *,
        kind: MemoryKind | None = None,
        category: str | None = None,
        limit: int | None = None,
        semantic_limit: int | None = None,
    ) -> list[MemoryRecord]:
        """Most relevant memories for a query, best first."""
        scored = await self.recall_scored(
            query, kind=kind, category=category, limit=limit, semantic_limit=semantic_limit
        )
        return [memory for memory, _ in scored]

    async def _track_usage(self, memories: list[MemoryRecord]) -> None:
        async with self._locks["memories"]:
            for memory in memories:
                memory.mark_used()
            try:
                await self._save_memories()
            except PersistenceError as e:
                logger.warning(f"Recall usage not persisted: {e}")

    async def forget(self, memory_id: str) -> bool:
        """Delete a memory and its vector. Returns False if it did not exist."""
        async with self._locks["memories"]:
            if memory_id not in self._memories:
                return False
            del self._memories[memory_id]
            await self._save_memories()
        await self.index.remove(memory_id)
        logger.info(f"Forgot memory {memory_id}")
        return True

    def get(self, memory_id: str) -> MemoryRecord | None:
        return self._memories.get(memory_id)

    def all_memories(self) -> list[MemoryRecord]:
        """Snapshot copy of all records, safe to iterate while others mutate."""
        return list(self._memories.values())

    async def add_tags(self, memory_id: str, *tags: str) -> bool:
        """Append tags to a record without touching its content."""
        async with self._locks["memories"]:
            memory = self._memories.get(memory_id)
            if memory is None:
                return False
            if memory.add_tags(*tags):
                memory.updated_at = datetime.now()
                await self._save_memories()
            return True

    async def update(self, memory_id: str, **fields: Any) -> bool:
        """Update record fields (confidence, tags, metadata, ...)."""
        async with self._locks["memories"]:
            memory = self._memories.get(memory_id)
            if memory is None:
                return False
            for key, value in fields.items():
                if key == "id" or not hasattr(memory, key):
                    raise ValueError(f"Unknown memory field: {key}")
                setattr(memory, key, value)
            memory.confidence = clamp(memory.confidence)
            memory.success_rate = clamp(memory.success_rate)
            memory.updated_at = datetime.now()
            await self._save_memories()
            return True

    async def sweep_expired(self, now: datetime | None = None) -> int:
        """Remove memories past their expiry. Persists only if anything was removed."""
        now = now or datetime.now()
        async with self._locks["memories"]:
            expired = [m.id for m in list(self._memories.values()) if m.is_expired(now)]
            for memory_id in expired:
                del self._memories[memory_id]
            if expired:
                await self._save_memories()

        for memory_id in expired:
            await self.index.remove(memory_id)
        if expired:
            logger.info(f"Cleaned {len(expired)} expired memories")
        return len(expired)

    # Preferences

    async def learn_preference(self, key: str, value: Any, context: str = "") -> Preference:
        """Record a preference; repetition strengthens, contradiction replaces."""
        async with self._locks["preferences"]:
            existing = self._preferences.get(key)
            if existing is not None:
                if _same_value(existing.value, value):
                    existing.confidence = clamp(existing.confidence + 0.15)
                else:
                    existing.value = value
                    existing.confidence = 0.6
                existing.learned_from = context
                existing.updated_at = datetime.now()
                preference = existing
            else:
                preference = Preference(
                    id=new_id(),
                    key=key,
                    value=value,
                    learned_from=context,
                    confidence=0.7,
                )
                self._preferences[key] = preference

            await self.snapshots.save(
                "preferences", [p.to_dict() for p in self._preferences.values()]
            )
        return preference

    def get_preference(self, key: str) -> Any | None:
        """Preference value, or None unless it is trusted (confidence > 0.5)."""
        preference = self._preferences.get(key)
        if preference is None or preference.confidence <= 0.5:
            return None
        return preference.value

    def all_preferences(self) -> list[Preference]:
        return list(self._preferences.values())

    # Patterns

    def _find_pattern_key(self, trigger: str) -> str | None:
        # First match wins, not best match
        trigger_lower = trigger.lower()
        for key in self._patterns:
            if key == trigger_lower or key in trigger_lower or trigger_lower in key:
                return key
        return None

    async def learn_pattern(self, trigger: str, response: str, example: str) -> Pattern:
        """Record a successful trigger/response pair, merging fuzzy-matching triggers."""
        async with self._locks["patterns"]:
            key = self._find_pattern_key(trigger)
            if key is not None:
                pattern = self._patterns[key]
                if example not in pattern.examples:
                    pattern.examples.append(example)
                pattern.success_count += 1
                pattern.last_used = datetime.now()
            else:
                pattern = Pattern(
                    id=new_id(),
                    trigger=trigger.lower(),
                    response=response,
                    examples=[example],
                )
                self._patterns[pattern.trigger] = pattern

            await self._save_patterns()
        return pattern

    def find_pattern(self, text: str) -> Pattern | None:
        """Exact trigger first, then the first fuzzy match."""
        text_lower = text.lower()
        if text_lower in self._patterns:
            return self._patterns[text_lower]
        key = self._find_pattern_key(text_lower)
        return self._patterns[key] if key is not None else None

    async def report_pattern_outcome(self, trigger: str, success: bool) -> bool:
        async with self._locks["patterns"]:
            key = self._find_pattern_key(trigger)
            if key is None:
                return False
            pattern = self._patterns[key]
            if success:
                pattern.success_count += 1
            else:
                pattern.fail_count += 1
            pattern.last_used = datetime.now()
            await self._save_patterns()
        return True

    def top_patterns(self, limit: int = 5) -> list[Pattern]:
        return sorted(self._patterns.values(), key=lambda p: p.success_count, reverse=True)[:limit]

    # Task knowledge

    async def learn_task(
        self,
        task_type: str,
        *,
        description: str = "",
        successful_approach: str = "",
        tools: list[str] | None = None,
        steps: list[str] | None = None,
        tips: list[str] | None = None,
        error_handling: dict[str, str] | None = None,
        duration: float | None = None,
    ) -> TaskKnowledge:
        """Record a successful approach, merging into existing knowledge for the type."""
        task_type = task_type or "unknown"
        async with self._locks["tasks"]:
            existing = self._tasks.get(task_type)
            if existing is not None:
                if tips:
                    existing.tips = list(dict.fromkeys(existing.tips + tips))
                if steps:
                    existing.steps = list(steps)
                if error_handling:
                    existing.error_handling = {**existing.error_handling, **error_handling}
                if tools:
                    existing.tools = list(dict.fromkeys(existing.tools + tools))
                existing.success_count += 1
                if duration is not None:
                    n = existing.success_count
                    existing.avg_duration += (duration - existing.avg_duration) / n
                knowledge = existing
            else:
                knowledge = TaskKnowledge(
                    id=new_id(),
                    task_type=task_type,
                    description=description,
                    successful_approach=successful_approach,
                    tools=list(tools or []),
                    steps=list(steps or []),
                    tips=list(dict.fromkeys(tips or [])),
                    error_handling=dict(error_handling or {}),
                    avg_duration=duration or 0.0,
                )
                self._tasks[task_type] = knowledge

            await self.snapshots.save("tasks", [t.to_dict() for t in self._tasks.values()])
        return knowledge

    def get_task_knowledge(self, task_type: str) -> TaskKnowledge | None:
        return self._tasks.get(task_type)

    def find_relevant_task_knowledge(self, text: str) -> list[TaskKnowledge]:
        text_lower = text.lower()
        results = []
        for task in self._tasks.values():
            task_type = task.task_type.lower()
            if (
                text_lower in task_type
                or text_lower in task.description.lower()
                or task_type in text_lower
            ):
                results.append(task)
        return results

    # Reflection

    async def reflect(
        self,
        interaction: str,
        outcome: Outcome,
        *,
        what_worked: list[str] | None = None,
        what_failed: list[str] | None = None,
        improvement: str = "",
    ) -> Reflection:
        """Record a self-assessment and turn it into learnings/corrections."""
        reflection = Reflection(
            id=new_id(),
            interaction=interaction,
            outcome=outcome,
            what_worked=list(what_worked or []),
            what_failed=list(what_failed or []),
            improvement=improvement,
        )

        async with self._locks["reflections"]:
            self._reflections.append(reflection)
            self._reflections = self._reflections[-self.settings.reflection_limit:]
            await self.snapshots.save(
                "reflections", [r.to_dict() for r in self._reflections]
            )

        if outcome == Outcome.SUCCESS:
            for worked in reflection.what_worked:
                await self.remember(
                    worked,
                    kind=MemoryKind.LEARNING,
                    category="success",
                    context=interaction,
                    confidence=0.8,
                    source=MemorySource.SELF,
                )

        if outcome == Outcome.FAILURE and improvement:
            await self.remember(
                improvement,
                kind=MemoryKind.CORRECTION,
                category="improvement",
                context=interaction,
                confidence=0.9,
                source=MemorySource.SELF,
            )

        return reflection

    def recent_reflections(self, limit: int = 10) -> list[Reflection]:
        return self._reflections[-limit:] if limit > 0 else []

    # Context building

    async def build_context(self, query: str) -> str:
        """Human-readable digest of what is known about a query, for LLM grounding."""
        memories = await self.recall(query, limit=5)
        task_knowledge = self.find_relevant_task_knowledge(query)
        preferences = [p for p in self._preferences.values() if p.confidence > 0.6]
        reflections = self.recent_reflections(3)

        lines: list[str] = []

        if memories:
            lines.append("## Relevant Memories:")
            for memory in memories:
                lines.append(
                    f"- [{memory.kind.value}] {memory.content} "
                    f"(confidence: {round(memory.confidence * 100)}%)"
                )

        if task_knowledge:
            lines.append("## Learned Task Approaches:")
            for task in task_knowledge:
                lines.append(f"- {task.task_type}: {task.successful_approach}")
                if task.tips:
                    lines.append(f"  Tips: {', '.join(task.tips)}")

        if preferences:
            lines.append("## User Preferences:")
            for preference in preferences[:5]:
                lines.append(f"- {preference.key}: {json.dumps(preference.value)}")

        if reflections:
            lines.append("## Recent Learnings:")
            for reflection in reflections:
                if reflection.outcome == Outcome.SUCCESS and reflection.what_worked:
                    lines.append(f"- Success: {reflection.what_worked[0]}")
                if reflection.improvement:
                    lines.append(f"- Improvement: {reflection.improvement}")

        return "\n".join(lines)

    # Stats

    def stats(self) -> dict[str, Any]:
        by_kind = Counter(m.kind.value for m in self._memories.values())
        return {
            "total_memories": len(self._memories),
            "total_preferences": len(self._preferences),
            "total_patterns": len(self._patterns),
            "total_task_knowledge": len(self._tasks),
            "total_reflections": len(self._reflections),
            "memory_by_kind": dict(by_kind),
            "top_patterns": [p.trigger for p in self.top_patterns(5)],
            "vectors": self.index.stats(),
        }

    def analytics(self, now: datetime | None = None) -> dict[str, Any]:
        """Seven-day ingestion chart, category distribution and PII count."""
        now = now or datetime.now()
        memories = list(self._memories.values())
        today = now.replace(hour=0, minute=0, second=0, microsecond=0)

        ingestion = []
        for offset in range(6, -1, -1):
            day_start = today - timedelta(days=offset)
            day_end = day_start + timedelta(days=1)
            ingestion.append({
                "date": day_start.date().isoformat(),
                "count": sum(1 for m in memories if day_start <= m.created_at < day_end),
            })

        distribution = Counter(m.category for m in memories)
        return {
            "ingestion_chart": ingestion,
            "distribution": [{"name": k, "value": v} for k, v in distribution.items()],
            "total_memories": len(memories),
            "pii_detections": sum(1 for m in memories if m.has_pii),
        }

    # Persistence

    async def _save_memories(self) -> None:
        await self.snapshots.save("memories", [m.to_dict() for m in self._memories.values()])

    async def _save_patterns(self) -> None:
        await self.snapshots.save("patterns", [p.to_dict() for p in self._patterns.values()])


def _same_value(a: Any, b: Any) -> bool:
    try:
        return json.dumps(a, sort_keys=True) == json.dumps(b, sort_keys=True)
    except (TypeError, ValueError):
        return a == b
