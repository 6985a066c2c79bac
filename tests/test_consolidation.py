"""Tests for memory consolidation and deduplication."""

import pytest

from mnemo.core.events import Event, EventBus, EventType
from mnemo.memory.base import MemoryKind, MemorySource
from mnemo.memory.consolidation import SUPERSEDED_TAG, Consolidator
from mnemo.memory.store import MemoryStore
from mnemo.memory.vectors import SemanticIndex

SIMILAR = [
    "deploy service with docker compose today",
    "deploy service with docker compose tomorrow",
    "deploy service with docker compose weekly",
]

FILLERS = [
    "alpha bravo",
    "charlie delta",
    "echo foxtrot",
    "golf hotel",
    "india juliet",
    "kilo lima",
    "mike november",
    "oscar papa",
    "quebec romeo",
]


async def _seed(store: MemoryStore, fillers: int = 7, category: str = "ops") -> list:
    similar = [await store.remember(text, category=category) for text in SIMILAR]
    for text in FILLERS[:fillers]:
        await store.remember(text, category=category)
    await store.wait_for_indexing()
    return similar


@pytest.mark.asyncio
async def test_consolidates_similar_cluster(store: MemoryStore, index: SemanticIndex):
    """Three similar records in a category of ten become one summary."""
    similar = await _seed(store)
    consolidator = Consolidator(store, index)

    result = await consolidator.consolidate()

    assert result["categories"] == 1
    assert result["summaries_created"] == 1
    assert result["memories_superseded"] == 3

    summaries = [m for m in store.all_memories() if "summary" in m.tags]
    assert len(summaries) == 1
    summary = summaries[0]
    assert summary.kind == MemoryKind.LEARNING
    assert summary.source == MemorySource.SELF
    assert summary.confidence == pytest.approx(0.8)
    assert summary.tags == ["summary", "auto-generated"]
    assert summary.category == "ops"
    assert all(text in summary.content for text in SIMILAR)

    # Originals are tagged, never deleted
    for memory in similar:
        assert store.get(memory.id) is not None
        assert SUPERSEDED_TAG in memory.tags


@pytest.mark.asyncio
async def test_small_category_skipped(store: MemoryStore, index: SemanticIndex):
    await _seed(store, fillers=6)
    result = await Consolidator(store, index).consolidate()
    assert result["summaries_created"] == 0
    assert not any(SUPERSEDED_TAG in m.tags for m in store.all_memories())


@pytest.mark.asyncio
async def test_repeated_run_creates_no_second_summary(store: MemoryStore, index: SemanticIndex):
    await _seed(store, fillers=9)
    consolidator = Consolidator(store, index)

    first = await consolidator.consolidate()
    await store.wait_for_indexing()
    second = await consolidator.consolidate()

    assert first["summaries_created"] == 1
    assert second["summaries_created"] == 0
    assert len([m for m in store.all_memories() if "summary" in m.tags]) == 1


@pytest.mark.asyncio
async def test_summary_content_truncated(store: MemoryStore, index: SemanticIndex):
    shared = " ".join(f"shared{i}" for i in range(40))
    for k in range(3):
        extra = " ".join(f"extra{k}x{j}" for j in range(12))
        await store.remember(f"{shared} {extra}", category="long")
    for text in FILLERS[:7]:
        await store.remember(text, category="long")
    await store.wait_for_indexing()

    await Consolidator(store, index).consolidate()

    summary = next(m for m in store.all_memories() if "summary" in m.tags)
    prefix = "Summary of 3 related memories: "
    assert summary.content.startswith(prefix)
    assert len(summary.content) == len(prefix) + 500


@pytest.mark.asyncio
async def test_long_members_still_get_a_summary(store: MemoryStore, index: SemanticIndex):
    """A member that overlaps its own summary does not absorb it."""
    shared = " ".join(f"s{i:02d}" for i in range(80))
    members = []
    for k in range(3):
        unique = " ".join(f"m{k}u{j:02d}" for j in range(15))
        members.append(await store.remember(f"{shared} {unique}", category="ops"))
    for text in FILLERS[:7]:
        await store.remember(text, category="ops")
    await store.wait_for_indexing()
    assert len({m.id for m in members}) == 3

    result = await Consolidator(store, index).consolidate()

    summaries = [m for m in store.all_memories() if "summary" in m.tags]
    assert result["summaries_created"] == 1
    assert len(summaries) == 1
    summary = summaries[0]
    assert summary.id not in {m.id for m in members}
    assert SUPERSEDED_TAG not in summary.tags
    assert set(summary.metadata["consolidated_from"]) == {m.id for m in members}
    assert len(store.all_memories()) == 11
    for member in members:
        assert member.confidence == pytest.approx(0.7)
        assert SUPERSEDED_TAG in member.tags


@pytest.mark.asyncio
async def test_consolidation_event(store: MemoryStore, index: SemanticIndex):
    events = EventBus()
    received: list[Event] = []
    events.subscribe(EventType.MEMORY_CONSOLIDATED, received.append)
    await _seed(store)

    await Consolidator(store, index, events=events).consolidate()

    assert len(received) == 1
    assert received[0].payload["summaries_created"] == 1


@pytest.mark.asyncio
async def test_deduplicate_merges_near_identical(store: MemoryStore, index: SemanticIndex):
    # Token overlap 0.75 keeps them apart on write, cosine ~0.96 marks them duplicates
    primary = await store.remember(
        "backup backup backup server nightly", tags=["ops"], metadata={"a": 1}, use_count=2
    )
    duplicate = await store.remember(
        "backup backup backup server nightly weekly",
        tags=["backup"],
        metadata={"b": 2},
        use_count=3,
    )
    await store.remember("unrelated gardening tip")
    await store.wait_for_indexing()
    assert primary.id != duplicate.id

    merged = await Consolidator(store, index).deduplicate()

    assert merged == 1
    assert store.get(duplicate.id) is None
    assert primary.tags == ["ops", "backup"]
    assert primary.metadata == {"a": 1, "b": 2}
    assert primary.use_count == 5
    assert primary.confidence == pytest.approx(0.72)
    assert len(store.all_memories()) == 2


@pytest.mark.asyncio
async def test_deduplicate_nothing_to_merge(store: MemoryStore, index: SemanticIndex):
    await store.remember("first unique memory")
    await store.remember("second different note")
    await store.wait_for_indexing()

    assert await Consolidator(store, index).deduplicate() == 0
    assert len(store.all_memories()) == 2
