"""
Quill - Retrieval Engine
=========================
Context object that owns one embedding provider, one document store
and one retriever.  Construct it once per process or per session and
pass it to the handlers that ingest files or build prompts.

Architecture
------------
``EmbeddingProvider``
    Text → unit vector, lazily loaded, single-flight.
``DocumentStore``
    Chunk records per source, atomic replace / clear.
``Retriever``
    Cosine ranking and context assembly.

Lifecycle
---------
``init()`` loads the embedding backend eagerly so the first request does
not pay for it; ``dispose()`` empties the store and releases the
backend.  ``async with`` runs both.  Independent engines share nothing,
which keeps tests and sessions isolated.

Usage:
    from quill.src.core.rag_engine import RetrievalEngine
    async with RetrievalEngine() as engine:
        await engine.add_document(text, source_id="notes.pdf")
        context = await engine.retrieve("photosynthesis", k=5)
"""

from __future__ import annotations

from types import TracebackType

from langchain_core.embeddings import Embeddings

from quill.config.settings import Settings, settings
from quill.src.core.embeddings import EmbeddingProvider
from quill.src.core.retriever import Retriever, ScoredChunk
from quill.src.database.document_store import DEFAULT_SOURCE_ID, DocumentStore
from quill.src.utils.logger import get_logger

logger = get_logger(__name__)


class RetrievalEngine:
    """
    Facade over provider, store and retriever.

    Parameters
    ----------
    config
        Settings instance.  Defaults to the module-level ``settings``.
    backend
        Optional LangChain ``Embeddings`` to use instead of the backend
        named by ``config.EMBEDDING_BACKEND``.
    provider
        Optional pre-built provider (takes precedence over ``backend``).
    """

    __slots__ = ("_config", "_provider", "_store", "_retriever")

    def __init__(self, config: Settings | None = None, backend: Embeddings | None = None, provider: EmbeddingProvider | None = None) -> None:
        self._config: Settings = config or settings
        self._provider = provider or EmbeddingProvider(backend=backend, config=self._config)
        self._store = DocumentStore(self._provider, config=self._config)
        self._retriever = Retriever(self._store, self._provider, separator=self._config.CONTEXT_SEPARATOR)

    # ── Components ─────────────────────────────────────────────────────

    @property
    def provider(self) -> EmbeddingProvider:
        return self._provider

    @property
    def store(self) -> DocumentStore:
        return self._store

    @property
    def retriever(self) -> Retriever:
        return self._retriever

    # ══════════════════════════════════════════════════════════════════
    #  LIFECYCLE
    # ══════════════════════════════════════════════════════════════════

    async def init(self) -> None:
        """Load the embedding backend now.  Raises ``InitializationError``."""
        await self._provider.initialize()
        logger.info("[RAG] Engine ready (%r).", self._provider)


    async def dispose(self) -> None:
        await self._store.clear()
        await self._provider.dispose()
        logger.info("[RAG] Engine disposed.")


    async def __aenter__(self) -> RetrievalEngine:
        await self.init()
        return self


    async def __aexit__(self, exc_type: type[BaseException] | None, exc: BaseException | None, tb: TracebackType | None) -> None:
        await self.dispose()

    # ══════════════════════════════════════════════════════════════════
    #  PUBLIC API
    # ══════════════════════════════════════════════════════════════════

    async def add_document(self, text: str, source_id: str = DEFAULT_SOURCE_ID) -> int:
        return await self._store.add_document(text, source_id)


    async def search(self, query: str, k: int | None = None) -> list[ScoredChunk]:
        return await self._retriever.search(query, self._config.TOP_K if k is None else k)


    async def retrieve(self, query: str, k: int | None = None) -> str:
        """Context block for *query*; ``k`` defaults to ``settings.TOP_K``."""
        return await self._retriever.retrieve(query, self._config.TOP_K if k is None else k)


    async def clear(self) -> None:
        await self._store.clear()


    def __repr__(self) -> str:
        return f"RetrievalEngine({self._provider!r}, {self._store!r})"
