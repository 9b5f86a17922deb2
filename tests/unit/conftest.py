"""
Shared fixtures for memory engine unit tests.
"""
import re
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

import pytest

from rag_memory.config.settings import EmbeddingCfg, Settings
from rag_memory.embedding.chain import ProviderChain
from rag_memory.embedding.providers import BaseEmbeddingProvider
from rag_memory.engine import MemoryEngine
from rag_memory.errors import ProviderHTTPError
from rag_memory.generation.generator import MockGenerator
from rag_memory.memory.compressor import ContextCompressor
from rag_memory.memory.distiller import FactDistiller
from rag_memory.memory.schemas import MemoryRecord
from rag_memory.persist.memory_store import InMemoryMemoryStore, SQLiteMemoryStore


VOCAB = ["jazz", "music", "synth", "project", "python", "coffee", "hiking", "cat"]


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeProvider(BaseEmbeddingProvider):
    """Provider that fails on demand and counts calls."""

    def __init__(self, name: str, dimensions: int, fail: bool = False, delay: float = 0.0,
                 vector: Optional[Callable[[str], List[float]]] = None):
        self.name = name
        self.dimensions = dimensions
        self.fail = fail
        self.delay = delay
        self.vector = vector
        self.calls = 0

    def embed(self, text):
        self.calls += 1
        if self.delay:
            time.sleep(self.delay)
        if self.fail:
            raise ProviderHTTPError(self.name, 503, "unavailable")
        if self.vector is not None:
            return self.vector(text)
        return [1.0] + [0.0] * (self.dimensions - 1)


class KeywordProvider(BaseEmbeddingProvider):
    """One axis per vocabulary word; makes similarities easy to reason about."""

    name = "keywords"

    def __init__(self, vocab=VOCAB):
        self.vocab = list(vocab)

    def embed(self, text):
        tokens = re.split(r"\W+", text.lower())
        return [float(tokens.count(word)) for word in self.vocab]


def make_record(memory_id: str, embedding, content: Optional[str] = None, **kwargs) -> MemoryRecord:
    return MemoryRecord(
        id=memory_id,
        owner=kwargs.pop("owner", "user1"),
        content=content or f"memory content {memory_id}",
        embedding=list(embedding),
        **kwargs
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def now():
    return datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def yesterday(now):
    return now - timedelta(days=1)


@pytest.fixture
def memory_store():
    return InMemoryMemoryStore(dimensions=len(VOCAB))


@pytest.fixture
def sqlite_store(tmp_path):
    store = SQLiteMemoryStore(tmp_path / "memory.db", dimensions=len(VOCAB))
    yield store
    store.close()


@pytest.fixture(params=["memory", "sqlite"])
def any_store(request, tmp_path):
    """Both store implementations behind the same contract."""
    if request.param == "memory":
        yield InMemoryMemoryStore(dimensions=len(VOCAB))
    else:
        store = SQLiteMemoryStore(tmp_path / "memory.db", dimensions=len(VOCAB))
        yield store
        store.close()


@pytest.fixture
def keyword_chain():
    chain = ProviderChain([KeywordProvider()], dimensions=len(VOCAB))
    yield chain
    chain.close()


@pytest.fixture
def engine_settings():
    return Settings(embedding=EmbeddingCfg(dimensions=len(VOCAB), providers=[]))


@pytest.fixture
def generator():
    return MockGenerator(responses=["[]"])


@pytest.fixture
def engine(memory_store, keyword_chain, generator, engine_settings):
    """Engine over the in-memory store with keyword embeddings and no compression model."""
    return MemoryEngine(
        store=memory_store,
        embedder=keyword_chain,
        compressor=ContextCompressor(None),
        distiller=FactDistiller(generator),
        settings=engine_settings,
    )
