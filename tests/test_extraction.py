"""Tests for rule-based interaction learning."""

import re

import pytest

from mnemo.memory.base import MemoryKind, MemorySource, Outcome
from mnemo.memory.extraction import (
    DEFAULT_FACT_RULES,
    ExtractionRule,
    InteractionLearner,
    detect_task_type,
)
from mnemo.memory.store import MemoryStore


@pytest.fixture
def learner(store: MemoryStore) -> InteractionLearner:
    return InteractionLearner(store)


async def _interact(learner, message, *, tools=(), success=True, error=None, response="ok"):
    learner.start(message)
    for tool in tools:
        learner.record_tool(tool)
    return await learner.complete(response, success, error)


def _contents(store: MemoryStore, kind: MemoryKind | None = None) -> set[str]:
    return {m.content for m in store.all_memories() if kind is None or m.kind == kind}


@pytest.mark.asyncio
async def test_extracts_name(learner, store):
    await _interact(learner, "Hi, my name is sam")
    assert "User's name is Sam" in _contents(store, MemoryKind.FACT)


@pytest.mark.asyncio
async def test_article_is_not_a_name(learner, store):
    await _interact(learner, "I am a data analyst.")
    facts = _contents(store, MemoryKind.FACT)
    assert "User works as data analyst" in facts
    assert not any(f.startswith("User's name") for f in facts)


@pytest.mark.asyncio
async def test_extracts_location(learner, store):
    await _interact(learner, "I live in Lisbon, by the sea")
    assert "User is in/from Lisbon" in _contents(store, MemoryKind.FACT)


@pytest.mark.asyncio
async def test_explicit_fact(learner, store):
    await _interact(learner, "Remember that the staging server reboots on Sundays")
    memory = next(m for m in store.all_memories() if m.category == "explicit")
    assert memory.content == "the staging server reboots on Sundays"
    assert memory.source == MemorySource.USER
    assert memory.confidence == pytest.approx(0.95)


@pytest.mark.asyncio
async def test_language_and_length_preferences(learner, store):
    await _interact(learner, "Answer in Spanish and be brief")
    assert store.get_preference("response_language") == "spanish"
    assert store.get_preference("response_length") == "brief"


@pytest.mark.asyncio
async def test_length_group_first_match_only(learner, store):
    """Alternatives in one group do not both fire."""
    await _interact(learner, "Short answer please, no need to explain")
    assert store.get_preference("response_length") == "brief"


@pytest.mark.asyncio
async def test_dislike_preference(learner, store):
    await _interact(learner, "Please don't use emoji.")
    preference = store.get_preference("user_dislikes_use emoji")
    assert preference == {"preference": "use emoji", "negative": True}


@pytest.mark.asyncio
async def test_command_pattern_on_success(learner, store):
    await _interact(learner, "open the calendar", tools=["launcher"])
    pattern = store.find_pattern("launch_app")
    assert pattern is not None
    assert pattern.response == "Tools used: launcher"
    assert pattern.examples == ["open the calendar"]


@pytest.mark.asyncio
async def test_no_pattern_on_failure(learner, store):
    await _interact(learner, "open the calendar", tools=["launcher"], success=False)
    assert store.find_pattern("launch_app") is None


@pytest.mark.asyncio
async def test_task_approach_learned(learner, store):
    await _interact(learner, "search for flights to Oslo", tools=["web_search", "browser"])
    knowledge = store.get_task_knowledge("search")
    assert knowledge.tools == ["web_search", "browser"]
    assert knowledge.successful_approach == "Used tools: web_search -> browser"


@pytest.mark.asyncio
async def test_no_task_without_tools(learner, store):
    await _interact(learner, "search for flights")
    assert store.get_task_knowledge("search") is None


@pytest.mark.asyncio
async def test_reflection_on_failure(learner, store):
    await _interact(learner, "check the weather", success=False, error="API timeout")
    reflection = store.recent_reflections(1)[0]
    assert reflection.outcome == Outcome.FAILURE
    assert "Error: API timeout" in reflection.what_failed
    assert "Need to handle this error better: API timeout" in _contents(store, MemoryKind.CORRECTION)


@pytest.mark.asyncio
async def test_reflection_on_success(learner, store):
    await _interact(learner, "what time is it", tools=["clock"])
    reflection = store.recent_reflections(1)[0]
    assert reflection.outcome == Outcome.SUCCESS
    assert "Fast response time" in reflection.what_worked


@pytest.mark.asyncio
async def test_record_tool_deduplicates(learner):
    learner.start("do things")
    learner.record_tool("bash")
    learner.record_tool("bash")
    assert learner.current.tools_used == ["bash"]


@pytest.mark.asyncio
async def test_complete_without_start(learner):
    assert await learner.complete("ok", True) is None


@pytest.mark.asyncio
async def test_custom_rule(store):
    """New rules plug in without touching the store."""
    captured = []

    async def remember_pet(store, match, interaction):
        captured.append(match.group(1))
        return await store.remember(f"User has a pet named {match.group(1)}", category="pets")

    rules = DEFAULT_FACT_RULES + [
        ExtractionRule("pet", re.compile(r"my (?:dog|cat) is called (\w+)", re.I), remember_pet)
    ]
    learner = InteractionLearner(store, fact_rules=rules)
    await _interact(learner, "My dog is called Rex")

    assert captured == ["Rex"]
    assert "User has a pet named Rex" in _contents(store)


@pytest.mark.asyncio
async def test_teach_and_forget(learner, store):
    memory = await learner.teach_fact("Deploys freeze on Fridays")
    assert memory.confidence == 1.0
    assert memory.tags == ["taught", "explicit"]

    await learner.teach_preference("timezone", "UTC")
    assert store.get_preference("timezone") == "UTC"

    await store.wait_for_indexing()
    assert await learner.forget_fact("deploys freeze") is True
    assert store.get(memory.id) is None
    assert await learner.forget_fact("nothing matches this") is False


@pytest.mark.asyncio
async def test_stats(learner):
    await _interact(learner, "what is new", success=True)
    await _interact(learner, "what broke", success=False)
    stats = learner.stats()
    assert stats["recent_interactions"] == 2
    assert stats["success_rate"] == 50


def test_detect_task_type():
    assert detect_task_type("Take a screenshot") == "screenshot"
    assert detect_task_type("edit the file") == "file_operation"
    assert detect_task_type("turn up the volume") == "system_control"
    assert detect_task_type("hello there") == "general"
