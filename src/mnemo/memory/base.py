"""
Memory data model.

Records are plain dataclasses serialized with to_dict/from_dict into the
snapshot store.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import uuid4


class MemoryKind(Enum):
    FACT = "fact"
    PREFERENCE = "preference"
    LEARNING = "learning"
    PATTERN = "pattern"
    CORRECTION = "correction"
    SKILL = "skill"


class MemorySource(Enum):
    USER = "user"
    SELF = "self"
    INTERACTION = "interaction"


class Sensitivity(Enum):
    PUBLIC = "public"
    PRIVATE = "private"
    CONFIDENTIAL = "confidential"


class Outcome(Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    PARTIAL = "partial"


def new_id() -> str:
    return str(uuid4())


def clamp(value: float) -> float:
    """Clamp a score into [0, 1]."""
    return max(0.0, min(1.0, float(value)))


def _dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


@dataclass
class MemoryRecord:
    """Single stored unit of knowledge."""

    id: str
    kind: MemoryKind
    category: str
    content: str  # Already redacted
    context: str | None = None
    confidence: float = 0.7
    use_count: int = 0
    success_rate: float = 1.0
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)
    last_used_at: datetime = field(default_factory=datetime.now)
    tags: list[str] = field(default_factory=list)
    source: MemorySource = MemorySource.INTERACTION

    # Privacy & provenance
    expires_at: datetime | None = None
    sensitivity: Sensitivity = Sensitivity.PUBLIC
    origin_id: str | None = None
    reliability: float | None = 0.7
    has_pii: bool = False
    metadata: dict[str, Any] | None = None

    def __post_init__(self) -> None:
        self.confidence = clamp(self.confidence)
        self.success_rate = clamp(self.success_rate)
        self.use_count = max(0, int(self.use_count))
        # Tags behave as an ordered set
        self.tags = list(dict.fromkeys(self.tags))

    def is_expired(self, now: datetime | None = None) -> bool:
        return self.expires_at is not None and self.expires_at < (now or datetime.now())

    def add_tags(self, *tags: str) -> bool:
        """Add tags not already present. Returns True if anything changed."""
        added = [t for t in tags if t not in self.tags]
        self.tags.extend(dict.fromkeys(added))
        return bool(added)

    def strengthen(self, amount: float = 0.1) -> None:
        """Merge-on-duplicate reinforcement."""
        self.confidence = clamp(self.confidence + amount)
        self.use_count += 1
        self.updated_at = datetime.now()

    def mark_used(self) -> None:
        self.use_count += 1
        self.last_used_at = datetime.now()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "category": self.category,
            "content": self.content,
            "context": self.context,
            "confidence": self.confidence,
            "use_count": self.use_count,
            "success_rate": self.success_rate,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "last_used_at": self.last_used_at.isoformat(),
            "tags": self.tags,
            "source": self.source.value,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "sensitivity": self.sensitivity.value,
            "origin_id": self.origin_id,
            "reliability": self.reliability,
            "has_pii": self.has_pii,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MemoryRecord":
        return cls(
            id=data["id"],
            kind=MemoryKind(data["kind"]),
            category=data.get("category", "general"),
            content=data["content"],
            context=data.get("context"),
            confidence=data.get("confidence", 0.7),
            use_count=data.get("use_count", 0),
            success_rate=data.get("success_rate", 1.0),
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
            last_used_at=datetime.fromisoformat(data["last_used_at"]),
            tags=list(data.get("tags") or []),
            source=MemorySource(data.get("source", "interaction")),
            expires_at=_dt(data.get("expires_at")),
            sensitivity=Sensitivity(data.get("sensitivity", "public")),
            origin_id=data.get("origin_id"),
            reliability=data.get("reliability"),
            has_pii=bool(data.get("has_pii", False)),
            metadata=data.get("metadata"),
        )


@dataclass
class Preference:
    """Learned user preference, one per key."""

    id: str
    key: str
    value: Any  # JSON-compatible
    learned_from: str
    confidence: float
    updated_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "key": self.key,
            "value": self.value,
            "learned_from": self.learned_from,
            "confidence": self.confidence,
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Preference":
        return cls(
            id=data["id"],
            key=data["key"],
            value=data.get("value"),
            learned_from=data.get("learned_from", ""),
            confidence=clamp(data.get("confidence", 0.7)),
            updated_at=datetime.fromisoformat(data["updated_at"]),
        )


@dataclass
class Pattern:
    """Trigger -> response pattern learned from successful interactions."""

    id: str
    trigger: str  # Lowercased lookup key
    response: str
    examples: list[str] = field(default_factory=list)
    success_count: int = 1
    fail_count: int = 0
    last_used: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "trigger": self.trigger,
            "response": self.response,
            "examples": self.examples,
            "success_count": self.success_count,
            "fail_count": self.fail_count,
            "last_used": self.last_used.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Pattern":
        return cls(
            id=data["id"],
            trigger=data["trigger"].lower(),
            response=data.get("response", ""),
            examples=list(data.get("examples") or []),
            success_count=data.get("success_count", 0),
            fail_count=data.get("fail_count", 0),
            last_used=datetime.fromisoformat(data["last_used"]),
        )


@dataclass
class TaskKnowledge:
    """Best known approach for a task type."""

    id: str
    task_type: str
    description: str = ""
    successful_approach: str = ""
    tools: list[str] = field(default_factory=list)
    steps: list[str] = field(default_factory=list)  # Latest successful sequence
    tips: list[str] = field(default_factory=list)
    error_handling: dict[str, str] = field(default_factory=dict)
    success_count: int = 1
    avg_duration: float = 0.0  # Seconds
    created_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "task_type": self.task_type,
            "description": self.description,
            "successful_approach": self.successful_approach,
            "tools": self.tools,
            "steps": self.steps,
            "tips": self.tips,
            "error_handling": self.error_handling,
            "success_count": self.success_count,
            "avg_duration": self.avg_duration,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TaskKnowledge":
        return cls(
            id=data["id"],
            task_type=data["task_type"],
            description=data.get("description", ""),
            successful_approach=data.get("successful_approach", ""),
            tools=list(data.get("tools") or []),
            steps=list(data.get("steps") or []),
            tips=list(data.get("tips") or []),
            error_handling=dict(data.get("error_handling") or {}),
            success_count=data.get("success_count", 1),
            avg_duration=data.get("avg_duration", 0.0),
            created_at=datetime.fromisoformat(data["created_at"]),
        )


@dataclass
class Reflection:
    """Self-assessment of a single interaction."""

    id: str
    interaction: str
    outcome: Outcome
    what_worked: list[str] = field(default_factory=list)
    what_failed: list[str] = field(default_factory=list)
    improvement: str = ""
    created_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "interaction": self.interaction,
            "outcome": self.outcome.value,
            "what_worked": self.what_worked,
            "what_failed": self.what_failed,
            "improvement": self.improvement,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Reflection":
        return cls(
            id=data["id"],
            interaction=data.get("interaction", ""),
            outcome=Outcome(data["outcome"]),
            what_worked=list(data.get("what_worked") or []),
            what_failed=list(data.get("what_failed") or []),
            improvement=data.get("improvement", ""),
            created_at=datetime.fromisoformat(data["created_at"]),
        )
