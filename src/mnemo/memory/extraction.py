"""Interaction learner - rule-based extraction of knowledge from conversations.

Extraction is an ordered list of (pattern, handler) rules per concern.
Rules sharing a `group` are alternatives: only the first match in a group
fires. New rules are added by passing extended lists to the learner, the
memory store never changes.
"""

import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from mnemo.core.logging import get_logger
from mnemo.memory.base import MemoryKind, MemoryRecord, MemorySource, Outcome, new_id
from mnemo.memory.snapshots import PersistenceError
from mnemo.memory.store import MemoryStore

logger = get_logger("memory.extraction")

HISTORY_LIMIT = 100
FAST_RESPONSE_SECONDS = 5.0


@dataclass
class InteractionRecord:
    """One user request and how the agent handled it."""

    id: str
    user_message: str
    bot_response: str = ""
    tools_used: list[str] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.now)
    ended_at: datetime | None = None
    success: bool = False
    error: str | None = None

    @property
    def duration(self) -> float:
        """Seconds between start and completion."""
        if self.ended_at is None:
            return 0.0
        return (self.ended_at - self.started_at).total_seconds()


RuleHandler = Callable[[MemoryStore, re.Match[str], InteractionRecord], Awaitable[Any]]


@dataclass(frozen=True)
class ExtractionRule:
    name: str
    pattern: re.Pattern[str]
    handler: RuleHandler
    group: str | None = None


def _rule(name: str, regex: str, handler: RuleHandler, group: str | None = None) -> ExtractionRule:
    return ExtractionRule(name, re.compile(regex, re.IGNORECASE), handler, group)


# Fact handlers


async def _remember_name(store: MemoryStore, match: re.Match[str], interaction: InteractionRecord):
    return await store.remember(
        f"User's name is {match.group(1).capitalize()}",
        kind=MemoryKind.FACT,
        category="user_info",
        context=interaction.user_message,
        confidence=0.9,
        tags=["name", "user", "personal"],
    )


async def _remember_location(store: MemoryStore, match: re.Match[str], interaction: InteractionRecord):
    return await store.remember(
        f"User is in/from {match.group(1).strip()}",
        kind=MemoryKind.FACT,
        category="user_info",
        context=interaction.user_message,
        confidence=0.8,
        tags=["location", "user", "personal"],
    )


async def _remember_job(store: MemoryStore, match: re.Match[str], interaction: InteractionRecord):
    return await store.remember(
        f"User works as {match.group(1).strip()}",
        kind=MemoryKind.FACT,
        category="user_info",
        context=interaction.user_message,
        confidence=0.8,
        tags=["job", "work", "user", "personal"],
    )


async def _remember_stated(store: MemoryStore, match: re.Match[str], interaction: InteractionRecord):
    return await store.remember(
        match.group(1).strip(),
        kind=MemoryKind.FACT,
        category="explicit",
        context=interaction.user_message,
        confidence=0.95,
        tags=["explicit", "user_stated"],
        source=MemorySource.USER,
    )


_NOT_A_NAME = r"(?!(?:a|an|the|in|from|not|so|very)\b)"

DEFAULT_FACT_RULES: list[ExtractionRule] = [
    _rule("name", rf"\b(?:my name is|call me|i am|i'm)\s+{_NOT_A_NAME}([a-z]+)", _remember_name),
    _rule(
        "location",
        r"\b(?:i live in|i'm in|i am in|i'm from|i am from)\s+([a-z\s]+?)(?:[.,]|$)",
        _remember_location,
    ),
    _rule("job", r"\b(?:i work as an?|i am an?|i'm an?|my job is)\s+([a-z\s]+?)(?:[.,]|$)", _remember_job),
    _rule("stated", r"\b(?:remember that|note that|keep in mind that)\s+(.+)", _remember_stated),
    _rule("fyi", r"\b(?:fyi|for your information)[,:]?\s*(.+)", _remember_stated),
    _rule("important", r"\bimportant[,:]\s*(.+)", _remember_stated),
]


# Preference handlers


def _set_preference(key: str, value: Any) -> RuleHandler:
    async def handler(store: MemoryStore, match: re.Match[str], interaction: InteractionRecord):
        return await store.learn_preference(key, value, interaction.user_message)

    return handler


async def _learn_language(store: MemoryStore, match: re.Match[str], interaction: InteractionRecord):
    return await store.learn_preference(
        "response_language", match.group(1).lower(), interaction.user_message
    )


def _learn_inclination(negative: bool) -> RuleHandler:
    async def handler(store: MemoryStore, match: re.Match[str], interaction: InteractionRecord):
        preference = match.group(1).strip().lower()
        key = f"user_{'dislikes' if negative else 'likes'}_{preference[:30]}"
        return await store.learn_preference(
            key, {"preference": preference, "negative": negative}, interaction.user_message
        )

    return handler


DEFAULT_PREFERENCE_RULES: list[ExtractionRule] = [
    _rule("language", r"\bin (arabic|hebrew|english|spanish|french|german)\b", _learn_language, "language"),
    _rule("brief", r"\b(?:be brief|short answer)", _set_preference("response_length", "brief"), "length"),
    _rule("detailed", r"\b(?:detailed|explain)\b", _set_preference("response_length", "detailed"), "length"),
    _rule("likes", r"\bi (?:prefer|like|want)\s+(.+?)(?:[.,]|$)", _learn_inclination(False)),
    _rule("habit", r"\b(?:always|usually)\s+(.+?)(?:[.,]|$)", _learn_inclination(False)),
    _rule("dislikes", r"\b(?:don't|do not)\s+(.+?)(?:[.,]|$)", _learn_inclination(True)),
]


# Command patterns (successful interactions only)


def _learn_command(command_type: str) -> RuleHandler:
    async def handler(store: MemoryStore, match: re.Match[str], interaction: InteractionRecord):
        return await store.learn_pattern(
            command_type,
            f"Tools used: {', '.join(interaction.tools_used)}",
            interaction.user_message,
        )

    return handler


DEFAULT_PATTERN_RULES: list[ExtractionRule] = [
    _rule("launch_app", r"^(?:open|launch|start)\s+", _learn_command("launch_app"), "command"),
    _rule("search", r"^(?:search|find|look for)\s+", _learn_command("search"), "command"),
    _rule("create", r"^(?:create|make|write)\s+", _learn_command("create"), "command"),
    _rule("delete", r"^(?:delete|remove)\s+", _learn_command("delete"), "command"),
    _rule("system_control", r"^(?:set|change)\s+.*(?:volume|brightness)", _learn_command("system_control"), "command"),
    _rule("reminder", r"^(?:remind|alert)\s+", _learn_command("reminder"), "command"),
    _rule("question", r"^(?:what|how|why|when|where)\b", _learn_command("question"), "command"),
]

# Ordered keyword -> task type table, first hit wins
TASK_TYPES: list[tuple[tuple[str, ...], str]] = [
    (("screenshot",), "screenshot"),
    (("file", "create", "edit"), "file_operation"),
    (("search", "find"), "search"),
    (("volume", "brightness"), "system_control"),
    (("open", "launch"), "launch"),
    (("remind", "notification"), "notification"),
    (("weather",), "weather"),
    (("time", "date"), "datetime"),
]


def detect_task_type(message: str) -> str:
    message = message.lower()
    for keywords, task_type in TASK_TYPES:
        if any(k in message for k in keywords):
            return task_type
    return "general"


class InteractionLearner:
    """Tracks interactions and feeds what they reveal into the memory store."""

    def __init__(
        self,
        store: MemoryStore,
        fact_rules: list[ExtractionRule] | None = None,
        preference_rules: list[ExtractionRule] | None = None,
        pattern_rules: list[ExtractionRule] | None = None,
        history_limit: int = HISTORY_LIMIT,
    ):
        self.store = store
        self.fact_rules = list(DEFAULT_FACT_RULES if fact_rules is None else fact_rules)
        self.preference_rules = list(
            DEFAULT_PREFERENCE_RULES if preference_rules is None else preference_rules
        )
        self.pattern_rules = list(DEFAULT_PATTERN_RULES if pattern_rules is None else pattern_rules)
        self.history_limit = history_limit

        self._current: InteractionRecord | None = None
        self._history: list[InteractionRecord] = []

    @property
    def current(self) -> InteractionRecord | None:
        return self._current

    def start(self, user_message: str) -> str:
        """Begin tracking an interaction. Returns its id."""
        self._current = InteractionRecord(id=new_id(), user_message=user_message)
        return self._current.id

    def record_tool(self, tool_name: str) -> None:
        if self._current is not None and tool_name not in self._current.tools_used:
            self._current.tools_used.append(tool_name)

    async def complete(
        self,
        response: str,
        success: bool,
        error: str | None = None,
    ) -> InteractionRecord | None:
        """Close the current interaction and learn from it."""
        interaction = self._current
        if interaction is None:
            return None

        interaction.bot_response = response
        interaction.ended_at = datetime.now()
        interaction.success = success
        interaction.error = error

        self._history.append(interaction)
        self._history = self._history[-self.history_limit:]
        self._current = None

        try:
            await self.learn_from(interaction)
        except PersistenceError as e:
            logger.error(f"Learning from interaction {interaction.id} failed: {e}")

        return interaction

    async def learn_from(self, interaction: InteractionRecord) -> None:
        """Run every extraction stage over a finished interaction."""
        message = interaction.user_message
        await self.apply_rules(self.fact_rules, message, interaction)
        await self.apply_rules(self.preference_rules, message, interaction)
        if interaction.success:
            await self.apply_rules(self.pattern_rules, message.strip(), interaction)
        await self._learn_task_approach(interaction)
        await self._self_reflect(interaction)
        logger.debug(f"Learned from interaction {interaction.id} (success={interaction.success})")

    async def apply_rules(
        self,
        rules: list[ExtractionRule],
        text: str,
        interaction: InteractionRecord,
    ) -> list[str]:
        """Fire every matching rule (first match per group). Returns fired rule names."""
        fired = []
        used_groups: set[str] = set()
        for rule in rules:
            if rule.group is not None and rule.group in used_groups:
                continue
            match = rule.pattern.search(text)
            if match is None:
                continue
            await rule.handler(self.store, match, interaction)
            fired.append(rule.name)
            if rule.group is not None:
                used_groups.add(rule.group)
        return fired

    async def _learn_task_approach(self, interaction: InteractionRecord) -> None:
        if not interaction.success or not interaction.tools_used:
            return

        duration = interaction.duration
        await self.store.learn_task(
            detect_task_type(interaction.user_message),
            description=interaction.user_message,
            successful_approach=f"Used tools: {' -> '.join(interaction.tools_used)}",
            tools=interaction.tools_used,
            steps=interaction.tools_used,
            tips=[f"This approach completed in {round(duration)}s"],
            duration=duration,
        )

    async def _self_reflect(self, interaction: InteractionRecord) -> None:
        what_worked: list[str] = []
        what_failed: list[str] = []
        improvement = ""
        summary = interaction.user_message[:50]

        if interaction.success:
            what_worked.append(f"Successfully handled: {summary}")
            if interaction.tools_used:
                what_worked.append(f"Effective tool sequence: {' -> '.join(interaction.tools_used)}")
            if interaction.duration < FAST_RESPONSE_SECONDS:
                what_worked.append("Fast response time")
        else:
            what_failed.append(f"Failed to handle: {summary}")
            if interaction.error:
                what_failed.append(f"Error: {interaction.error}")
                improvement = f"Need to handle this error better: {interaction.error}"

        await self.store.reflect(
            interaction.user_message,
            Outcome.SUCCESS if interaction.success else Outcome.FAILURE,
            what_worked=what_worked,
            what_failed=what_failed,
            improvement=improvement,
        )

    # Explicit teaching

    async def teach_fact(self, fact: str) -> MemoryRecord:
        return await self.store.remember(
            fact,
            kind=MemoryKind.FACT,
            category="taught",
            confidence=1.0,
            tags=["taught", "explicit"],
            source=MemorySource.USER,
        )

    async def teach_preference(self, key: str, value: Any) -> None:
        await self.store.learn_preference(key, value, "Explicitly taught by user")

    async def forget_fact(self, query: str) -> bool:
        """Forget the single best match for a query."""
        memories = await self.store.recall(query, limit=1)
        if not memories:
            return False
        return await self.store.forget(memories[0].id)

    def history(self) -> list[InteractionRecord]:
        return list(self._history)

    def stats(self) -> dict[str, Any]:
        total = len(self._history)
        successes = sum(1 for i in self._history if i.success)
        return {
            **self.store.stats(),
            "recent_interactions": total,
            "success_rate": round(successes / total * 100) if total else 0,
        }
