"""Shared fixtures: settings and hand-rolled embedding backends."""

import asyncio

import pytest
from langchain_core.embeddings import Embeddings

from quill.config.settings import Settings
from quill.src.core.embeddings import EmbeddingProvider
from quill.src.database.document_store import DocumentStore

VOCABULARY = ("alpha", "beta", "gamma", "delta")


class KeywordEmbeddings(Embeddings):
    """Bag-of-words over a four-word vocabulary; text without those words embeds to zero."""

    def __init__(self, fail_on: str | None = None, delay: float = 0.0) -> None:
        self.fail_on = fail_on
        self.delay = delay
        self.calls: list[str] = []

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        return [self.embed_query(t) for t in texts]

    def embed_query(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.fail_on and self.fail_on in text:
            raise RuntimeError("backend exploded")
        words = text.lower().split()
        return [float(words.count(w)) for w in VOCABULARY]

    async def aembed_query(self, text: str) -> list[float]:
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.embed_query(text)


@pytest.fixture
def test_settings():
    return Settings(
        EMBEDDING_BACKEND="fake",
        FAKE_EMBEDDING_SIZE=32,
        CHUNK_SIZE=300,
        CHUNK_OVERLAP=50,
        TOP_K=5,
        INIT_TIMEOUT_SECONDS=5.0,
        EMBED_TIMEOUT_SECONDS=5.0,
    )


@pytest.fixture
def small_chunk_settings(test_settings):
    """Three-word chunks without overlap, so short texts give several chunks."""
    return test_settings.model_copy(update={"CHUNK_SIZE": 3, "CHUNK_OVERLAP": 0})


@pytest.fixture
def keyword_backend():
    return KeywordEmbeddings()


@pytest.fixture
def make_backend():
    """Factory for ``KeywordEmbeddings`` with failure / latency knobs."""
    return KeywordEmbeddings


@pytest.fixture
def provider(keyword_backend, test_settings):
    return EmbeddingProvider(backend=keyword_backend, config=test_settings)


@pytest.fixture
def store(provider, test_settings):
    return DocumentStore(provider, config=test_settings)
