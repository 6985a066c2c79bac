"""Shared fixtures: temp snapshot database and deterministic embedders."""

import asyncio
import re
import zlib
from pathlib import Path

import pytest

from mnemo.core.config import Settings
from mnemo.core.events import EventBus
from mnemo.memory.embeddings import EmbeddingError
from mnemo.memory.snapshots import SnapshotStore
from mnemo.memory.store import MemoryStore
from mnemo.memory.vectors import SemanticIndex

WORD_RE = re.compile(r"[a-z0-9']+")


class KeywordEmbedder:
    """Bag-of-words embedder: each word hashes to one dimension."""

    def __init__(self, dims: int = 1024):
        self.dims = dims
        self.calls = 0

    async def embed(self, text: str) -> list[float]:
        self.calls += 1
        vector = [0.0] * self.dims
        for word in WORD_RE.findall(text.lower()):
            vector[zlib.crc32(word.encode()) % self.dims] += 1.0
        return vector


class ConstantEmbedder:
    """Every text maps to the same vector, so everything is a semantic match."""

    async def embed(self, text: str) -> list[float]:
        return [1.0, 0.0, 0.0]


class FailingEmbedder:
    async def embed(self, text: str) -> list[float]:
        raise EmbeddingError("backend down")


class SlowEmbedder:
    async def embed(self, text: str) -> list[float]:
        await asyncio.sleep(5)
        return [1.0]


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(data_dir=tmp_path, db_name="test.db", _env_file=None)


@pytest.fixture
async def snapshots(tmp_path: Path):
    """Connected snapshot store on a temp database."""
    store = SnapshotStore(tmp_path / "test.db")
    await store.connect()
    yield store
    await store.close()


@pytest.fixture
def embedder() -> KeywordEmbedder:
    return KeywordEmbedder()


@pytest.fixture
async def index(snapshots: SnapshotStore, embedder: KeywordEmbedder) -> SemanticIndex:
    index = SemanticIndex(snapshots, embedder, timeout=1.0)
    await index.load()
    return index


@pytest.fixture
async def store(snapshots: SnapshotStore, index: SemanticIndex, settings: Settings):
    """Memory store with keyword-embedder semantic index."""
    store = MemoryStore(snapshots, index, settings=settings)
    await store.load()
    yield store
    await store.wait_for_indexing()


@pytest.fixture
def events() -> EventBus:
    return EventBus()
