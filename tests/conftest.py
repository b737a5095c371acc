"""Shared test fixtures."""

from __future__ import annotations

import math
import re
import zlib
from pathlib import Path

import pytest

# Ensure tests run from the project root so config.default.yaml is found
PROJECT_ROOT = Path(__file__).parent.parent

FAKE_DIM = 256
FAKE_MODEL = "test/fake-embed"

_WORD_RE = re.compile(r"[a-z0-9]+")


@pytest.fixture(autouse=True)
def _set_project_root(monkeypatch, tmp_path):
    """Point PROJECTBRAIN_ROOT at the project root and use tmp_path for data."""
    monkeypatch.setenv("PROJECTBRAIN_ROOT", str(PROJECT_ROOT))
    monkeypatch.setenv("PROJECTBRAIN_QDRANT__PATH", str(tmp_path / "qdrant"))
    monkeypatch.setenv("PROJECTBRAIN_DOCSTORE__PATH", str(tmp_path / "docstore.db"))

    # Reset settings cache between tests
    from projectbrain.config import reset_settings

    reset_settings()
    yield
    reset_settings()


def bag_of_words(text: str, dim: int = FAKE_DIM) -> list[float]:
    """Deterministic unit vector: hashed word counts. Shared words => similar."""
    vec = [0.0] * dim
    for word in _WORD_RE.findall(text.lower()):
        vec[zlib.crc32(word.encode()) % dim] += 1.0
    norm = math.sqrt(sum(v * v for v in vec))
    if not norm:
        vec[0] = 1.0
        return vec
    return [v / norm for v in vec]


class FakeEmbedder:
    """Async embedding callable that records every batch it receives."""

    def __init__(self, dim: int = FAKE_DIM):
        self.dim = dim
        self.calls: list[list[str]] = []

    async def __call__(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        return [bag_of_words(t, self.dim) for t in texts]


class FakeGenerator:
    """Async generate() stand-in returning queued or computed responses."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls: list[dict] = []

    async def __call__(self, prompt, *, system_prompt=None, response_schema=None, model=None):
        self.calls.append(
            {"prompt": prompt, "system_prompt": system_prompt, "response_schema": response_schema}
        )
        if not self.responses:
            raise AssertionError("FakeGenerator ran out of responses")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(prompt)
        return response


@pytest.fixture
def fake_embedder():
    return FakeEmbedder()


@pytest.fixture
def gateway(fake_embedder):
    from projectbrain.embeddings import EmbeddingGateway

    return EmbeddingGateway(fake_embedder, model=FAKE_MODEL, retry_delay=0.0)


@pytest.fixture
def docstore():
    from projectbrain.stores.docstore import DocStore

    store = DocStore(":memory:")
    yield store
    store.close()


@pytest.fixture
def vectorstore():
    from projectbrain.stores.vectorstore import VectorStore

    store = VectorStore(collection="test_memory", dim=FAKE_DIM, in_memory=True)
    yield store
    store.close()


@pytest.fixture
def memory(docstore, vectorstore, gateway):
    from projectbrain.memory.store import MemoryStore

    return MemoryStore(docstore, vectorstore, gateway, chunk_size=200, chunk_overlap=40)


@pytest.fixture
def offline_memory(docstore, vectorstore):
    """MemoryStore with no embedding provider: lexical search only."""
    from projectbrain.embeddings import EmbeddingGateway
    from projectbrain.memory.store import MemoryStore

    return MemoryStore(
        docstore, vectorstore, EmbeddingGateway(None, model=FAKE_MODEL), chunk_size=200
    )
