"""Tests for task-level XP mapping, recommendations and reports."""

from datetime import datetime, timedelta

import pytest

from mnemo.memory.snapshots import SnapshotStore
from mnemo.skills.progression import SkillProgression, skill_for_task, skill_for_tool
from mnemo.skills.tracker import SkillTracker


@pytest.fixture
async def progression(snapshots: SnapshotStore) -> SkillProgression:
    tracker = SkillTracker(snapshots)
    await tracker.load()
    return SkillProgression(tracker)


def test_tool_and_task_mapping():
    assert skill_for_tool("bash") == "terminal"
    assert skill_for_tool("custom_tool") == "custom_tool"
    assert skill_for_task("security-audit") == "security"
    assert skill_for_task("chitchat") is None


@pytest.mark.asyncio
async def test_award_task_xp_success(progression: SkillProgression):
    awards = await progression.award_task_xp("a", "A", "debugging", True, ["bash", "web_search"])

    assert [(a.skill_name, a.xp_awarded) for a in awards] == [
        ("terminal", 10),
        ("research", 10),
        ("debugging", 20),
    ]
    assert progression.tracker.get_agent_profile("a").total_xp == 40


@pytest.mark.asyncio
async def test_award_task_xp_failure(progression: SkillProgression):
    awards = await progression.award_task_xp("a", "A", "testing", False, ["bash"])
    assert [(a.skill_name, a.xp_awarded) for a in awards] == [("terminal", 5), ("testing", 10)]


@pytest.mark.asyncio
async def test_unknown_task_type_awards_tools_only(progression: SkillProgression):
    awards = await progression.award_task_xp("a", "A", "chitchat", True)
    assert awards == []


@pytest.mark.asyncio
async def test_recommendations(progression: SkillProgression):
    tracker = progression.tracker
    await tracker.award_xp("a", "A", "python", 900)
    await tracker.award_xp("a", "A", "java", 400)
    await tracker.award_xp("a", "A", "go", 10)
    tracker.get_skill_progress("a", "java").last_used = datetime.now() - timedelta(days=10)

    recommendations = progression.recommendations("a")
    pairs = [(r.skill_name, r.priority) for r in recommendations]

    # Average of expert, advanced and beginner rounds to advanced
    assert ("go", "medium") in pairs
    assert ("java", "low") in pairs
    assert all(r.skill_name != "python" for r in recommendations)
    assert progression.recommendations("nobody") == []


@pytest.mark.asyncio
async def test_recommendations_capped(progression: SkillProgression):
    tracker = progression.tracker
    for name in ("sql", "redis", "mongodb", "postgresql", "database", "git"):
        await tracker.award_xp("a", "A", name, 10)
        tracker.get_skill_progress("a", name).last_used = datetime.now() - timedelta(days=30)

    assert len(progression.recommendations("a")) == 5


@pytest.mark.asyncio
async def test_report(progression: SkillProgression):
    await progression.award_task_xp("a", "A", "coding", True, ["str_replace_editor"])

    report = progression.report("a")
    assert report["agent_name"] == "A"
    assert report["total_xp"] == 30
    assert report["total_skills"] == 1
    assert report["top_skills"][0]["skill_name"] == "coding"
    assert report["skill_distribution"]["beginner"] == 1
    assert report["skill_distribution"]["master"] == 0
    assert "first_skill" in {a["id"] for a in report["achievements"]}
    assert progression.report("nobody") is None
