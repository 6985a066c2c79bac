"""Consolidator - folds clusters of similar memories into summaries.

Consolidation pipeline:
1. Group live (non-superseded) memories by category
2. Cluster large categories through the semantic index
3. Write one summary per cluster and tag the members `superseded`

Deduplication is a separate pass that merges near-identical records.
"""

from collections import defaultdict
from datetime import datetime
from typing import Any

from mnemo.core.events import EventBus, EventType
from mnemo.core.logging import get_logger
from mnemo.memory.base import MemoryKind, MemoryRecord, MemorySource, clamp
from mnemo.memory.snapshots import PersistenceError
from mnemo.memory.store import MemoryStore
from mnemo.memory.vectors import SemanticIndex

logger = get_logger("memory.consolidation")

SUPERSEDED_TAG = "superseded"
SUMMARY_TAGS = ["summary", "auto-generated"]
SUMMARY_MAX_CHARS = 500


class Consolidator:
    """Background maintenance over the memory store."""

    def __init__(
        self,
        store: MemoryStore,
        index: SemanticIndex,
        events: EventBus | None = None,
        min_category_size: int = 10,
        similarity_threshold: float = 0.7,
        cluster_limit: int = 10,
        min_cluster_size: int = 3,
    ):
        self.store = store
        self.index = index
        self.events = events
        self.min_category_size = min_category_size
        self.similarity_threshold = similarity_threshold
        self.cluster_limit = cluster_limit
        self.min_cluster_size = min_cluster_size

    async def consolidate(self) -> dict[str, int]:
        """Summarize clusters of similar memories. Safe to run repeatedly."""
        result = {
            "categories": 0,
            "clusters": 0,
            "summaries_created": 0,
            "memories_superseded": 0,
        }

        grouped: dict[str, list[MemoryRecord]] = defaultdict(list)
        for memory in self.store.all_memories():
            if SUPERSEDED_TAG in memory.tags:
                continue
            grouped[memory.category or "general"].append(memory)

        for category, memories in grouped.items():
            if len(memories) < self.min_category_size:
                continue
            result["categories"] += 1

            clusters = await self._cluster(memories)
            for cluster in clusters:
                if len(cluster) < self.min_cluster_size:
                    continue
                result["clusters"] += 1
                try:
                    await self._summarize_cluster(cluster, category)
                except PersistenceError as e:
                    logger.error(f"Consolidation of '{category}' cluster failed: {e}")
                    continue
                result["summaries_created"] += 1
                result["memories_superseded"] += len(cluster)

        logger.info(
            f"Consolidation: {result['summaries_created']} summaries, "
            f"{result['memories_superseded']} memories superseded"
        )
        if self.events and result["summaries_created"]:
            await self.events.emit(EventType.MEMORY_CONSOLIDATED, result)
        return result

    async def _cluster(self, memories: list[MemoryRecord]) -> list[list[MemoryRecord]]:
        """Single-pass greedy grouping.

        Each unvisited record absorbs its unvisited semantic neighbours.
        Neighbours of neighbours are not pulled in, so clusters are not
        transitively closed.
        """
        by_id = {m.id: m for m in memories}
        visited: set[str] = set()
        clusters = []

        for memory in memories:
            if memory.id in visited:
                continue
            cluster = [memory]
            visited.add(memory.id)

            hits = await self.index.query(
                memory.content,
                limit=self.cluster_limit,
                threshold=self.similarity_threshold,
            )
            for hit in hits:
                neighbour = by_id.get(hit.metadata.get("memory_id", hit.id))
                if neighbour is not None and neighbour.id not in visited:
                    cluster.append(neighbour)
                    visited.add(neighbour.id)

            if len(cluster) > 1:
                clusters.append(cluster)

        return clusters

    async def _summarize_cluster(
        self, cluster: list[MemoryRecord], category: str
    ) -> MemoryRecord:
        """Write a new summary record and supersede the members."""
        contents = " | ".join(m.content for m in cluster)
        summary = await self.store.remember(
            f"Summary of {len(cluster)} related memories: {contents[:SUMMARY_MAX_CHARS]}",
            kind=MemoryKind.LEARNING,
            category=category,
            context=f"Summarized {len(cluster)} memories on {datetime.now().isoformat()}",
            confidence=0.8,
            tags=list(SUMMARY_TAGS),
            source=MemorySource.SELF,
            metadata={"consolidated_from": [m.id for m in cluster]},
            merge=False,
        )
        for memory in cluster:
            await self.store.add_tags(memory.id, SUPERSEDED_TAG)

        logger.debug(f"Created summary {summary.id} for {len(cluster)} memories")
        return summary

    async def deduplicate(self, threshold: float = 0.92, limit: int = 5) -> int:
        """Merge near-identical memories into the first one seen. Returns merged count."""
        memories = self.store.all_memories()
        by_id = {m.id: m for m in memories}
        processed: set[str] = set()
        merged = 0

        for memory in memories:
            if memory.id in processed:
                continue

            hits = await self.index.query(memory.content, limit=limit, threshold=threshold)
            duplicates = []
            for hit in hits:
                candidate = by_id.get(hit.metadata.get("memory_id", hit.id))
                if (
                    candidate is not None
                    and candidate.id != memory.id
                    and candidate.id not in processed
                ):
                    duplicates.append(candidate)

            if not duplicates:
                continue

            try:
                await self._merge_duplicates(memory, duplicates)
            except PersistenceError as e:
                logger.error(f"Deduplication of {memory.id} failed: {e}")
                continue

            merged += len(duplicates)
            processed.add(memory.id)
            processed.update(d.id for d in duplicates)

        logger.info(f"Deduplication: merged {merged} duplicate memories")
        return merged

    async def _merge_duplicates(self, primary: MemoryRecord, duplicates: list[MemoryRecord]) -> None:
        tags = list(dict.fromkeys(primary.tags + [t for d in duplicates for t in d.tags]))

        metadata: dict[str, Any] = dict(primary.metadata or {})
        for duplicate in duplicates:
            metadata.update(duplicate.metadata or {})

        max_confidence = max([primary.confidence] + [d.confidence for d in duplicates])
        boost = min(0.1, len(duplicates) * 0.02)

        await self.store.update(
            primary.id,
            tags=tags,
            metadata=metadata or None,
            confidence=clamp(max_confidence + boost),
            use_count=primary.use_count + sum(d.use_count for d in duplicates),
        )
        for duplicate in duplicates:
            await self.store.forget(duplicate.id)

        logger.debug(f"Merged {len(duplicates)} duplicates into {primary.id}")
