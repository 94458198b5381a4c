"""
Quill - Retriever
==================
Ranks stored chunks against a query by cosine similarity and joins the
best ones into a single context block for prompt construction.

Ranking rules:
    • Score = ``dot(q, c) / (|q| · |c|)``; a zero-magnitude vector scores
      ``0.0`` instead of ``NaN``.
    • Descending score; equal scores keep insertion order (stable sort
      over the store's generation tuple).
    • One flat pool across all sources, no per-source diversification.
    • ``k ≤ 0``, an empty store or a blank query → no results, and the
      embedding provider is not touched.
"""

from __future__ import annotations

import time
from dataclasses import dataclass

import numpy as np

from quill.config.settings import settings
from quill.src.core.embeddings import EmbeddingProvider
from quill.src.database.document_store import DocumentStore
from quill.src.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class ScoredChunk:
    source_id: str
    text: str
    score: float


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """Cosine of the angle between *a* and *b*; ``0.0`` for zero, empty or mismatched vectors."""
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    if a.size == 0 or a.shape != b.shape:
        return 0.0
    norm_a = float(np.linalg.norm(a))
    norm_b = float(np.linalg.norm(b))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return float(np.dot(a, b) / (norm_a * norm_b))


class Retriever:
    """
    Top-k similarity search over a ``DocumentStore``.

    Parameters
    ----------
    store
        Store to scan.
    provider
        Provider used to embed queries; must be the one that filled the store.
    separator
        Marker placed between chunks in ``retrieve``.
    """

    __slots__ = ("_store", "_provider", "_separator")

    def __init__(self, store: DocumentStore, provider: EmbeddingProvider, separator: str | None = None) -> None:
        self._store = store
        self._provider = provider
        self._separator: str = separator if separator is not None else settings.CONTEXT_SEPARATOR


    async def search(self, query: str, k: int = 5) -> list[ScoredChunk]:
        """Return the ``min(k, store size)`` best chunks, best first."""
        if k <= 0 or self._store.is_empty:
            return []
        if isinstance(query, str) and not query.strip():
            logger.debug("[RAG] Blank query, nothing to retrieve.")
            return []

        t_start = time.perf_counter()
        logger.info("[RAG] Retrieving context for query: '%.60s'", query)
        query_vector = await self._provider.embed(query)

        # Read the generation once; a concurrent swap cannot affect this scan
        records = self._store.snapshot()
        scored = [ScoredChunk(source_id=r.source_id, text=r.text, score=cosine_similarity(query_vector, r.embedding)) for r in records]
        scored.sort(key=lambda c: c.score, reverse=True)
        top = scored[:k]

        logger.info("[RAG] Found %d relevant chunk(s) of %d in %.1fms.", len(top), len(records), (time.perf_counter() - t_start) * 1000)
        for rank, chunk in enumerate(top, 1):
            logger.debug("  #%d %.4f [%s] %.60s…", rank, chunk.score, chunk.source_id, chunk.text.replace("\n", " "))
        return top


    async def retrieve(self, query: str, k: int = 5) -> str:
        """Texts of the top-k chunks joined by the context separator; ``""`` when none."""
        return self._separator.join(chunk.text for chunk in await self.search(query, k))
