"""Semantic index - embedding storage with cosine-similarity search.

Linear scan over every stored vector; fine for a personal knowledge base,
not meant for large-scale search.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import numpy as np

from mnemo.core.logging import get_logger
from mnemo.core.typing import Vector
from mnemo.memory.base import new_id
from mnemo.memory.embeddings import EmbeddingError, EmbeddingProvider
from mnemo.memory.snapshots import PersistenceError, SnapshotStore

logger = get_logger("memory.vectors")

COLLECTION = "vectors"


@dataclass
class VectorEntry:
    id: str
    text: str
    embedding: Vector
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "embedding": self.embedding,
            "metadata": self.metadata,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "VectorEntry":
        return cls(
            id=data["id"],
            text=data.get("text", ""),
            embedding=[float(x) for x in data["embedding"]],
            metadata=dict(data.get("metadata") or {}),
            created_at=datetime.fromisoformat(data["created_at"]),
        )


@dataclass
class SearchHit:
    id: str
    score: float
    metadata: dict[str, Any]


def cosine_similarity(a: Vector, b: Vector) -> float:
    """Cosine similarity; mismatched or zero vectors score 0."""
    va = np.asarray(a, dtype=float)
    vb = np.asarray(b, dtype=float)
    if va.shape != vb.shape or va.size == 0:
        return 0.0
    denom = np.linalg.norm(va) * np.linalg.norm(vb)
    if denom == 0:
        return 0.0
    return float(np.dot(va, vb) / denom)


class SemanticIndex:
    """Stores (text, embedding, metadata) entries and answers similarity queries."""

    def __init__(
        self,
        snapshots: SnapshotStore,
        provider: EmbeddingProvider | None,
        timeout: float = 10.0,
    ):
        self.snapshots = snapshots
        self.provider = provider
        self.timeout = timeout
        self._entries: list[VectorEntry] = []
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def enabled(self) -> bool:
        return self.provider is not None

    async def load(self) -> None:
        data = await self.snapshots.load(COLLECTION)
        entries = []
        for item in data or []:
            try:
                entries.append(VectorEntry.from_dict(item))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping unreadable vector entry: {e}")
        self._entries = entries
        logger.info(f"Semantic index loaded with {len(self._entries)} vectors")

    async def _embed(self, text: str) -> Vector | None:
        if self.provider is None:
            logger.debug("No embedding provider, semantic step skipped")
            return None
        try:
            return await asyncio.wait_for(self.provider.embed(text), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Embedding timed out after {self.timeout}s")
        except EmbeddingError as e:
            logger.warning(f"Embedding failed: {e}")
        return None

    async def index(
        self,
        text: str,
        metadata: dict[str, Any] | None = None,
        entry_id: str | None = None,
    ) -> str | None:
        """Embed and store text. Returns the entry id, or None if indexing was skipped."""
        embedding = await self._embed(text)
        if embedding is None:
            return None

        entry = VectorEntry(
            id=entry_id or new_id(),
            text=text,
            embedding=embedding,
            metadata=dict(metadata or {}),
        )
        async with self._lock:
            self._entries.append(entry)
            try:
                await self._save()
            except PersistenceError as e:
                self._entries.remove(entry)
                logger.warning(f"Vector not persisted, indexing skipped: {e}")
                return None
        return entry.id

    async def query(
        self,
        text: str,
        limit: int = 5,
        threshold: float = 0.3,
    ) -> list[SearchHit]:
        """Top `limit` entries with cosine similarity >= threshold, best first."""
        if not self._entries:
            return []
        query_vec = await self._embed(text)
        if query_vec is None:
            return []

        entries = list(self._entries)
        hits = []
        for entry in entries:
            score = cosine_similarity(query_vec, entry.embedding)
            if score >= threshold:
                hits.append(SearchHit(id=entry.id, score=score, metadata=entry.metadata))

        hits.sort(key=lambda h: h.score, reverse=True)
        return hits[:limit]

    async def remove(self, entry_id: str) -> bool:
        """Remove every entry with this id."""
        async with self._lock:
            before = len(self._entries)
            self._entries = [e for e in self._entries if e.id != entry_id]
            if len(self._entries) == before:
                return False
            await self._save()
        return True

    def get(self, entry_id: str) -> VectorEntry | None:
        for entry in self._entries:
            if entry.id == entry_id:
                return entry
        return None

    def stats(self) -> dict[str, Any]:
        dims = len(self._entries[0].embedding) if self._entries else 0
        return {"total_vectors": len(self._entries), "dimensions": dims, "enabled": self.enabled}

    async def _save(self) -> None:
        await self.snapshots.save(COLLECTION, [e.to_dict() for e in self._entries])
