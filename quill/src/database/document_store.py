"""
Quill - DocumentStore
======================
In-memory chunk index keyed by source identifier.

Design decisions:
  • **Generations** – the store's whole state is one immutable tuple of
    ``ChunkRecord`` objects.  Every mutation builds a new tuple and
    publishes it with a single attribute assignment, so readers always
    see a complete pre- or post-mutation generation and never need a
    lock.
  • **Replace, never merge** – ``add_document`` drops every record of the
    source and appends the new ones in one swap.  The new records are
    fully embedded *before* the swap; an embedding failure leaves the
    previous generation untouched.
  • **Serialised writers** – ``add_document`` and ``clear`` hold an
    ``asyncio.Lock`` for their whole duration.
  • **Bounded fan-out** – the chunks of one document are embedded
    concurrently, at most ``MAX_CONCURRENT_EMBEDS`` at a time.
  • **Volatile** – nothing is persisted; a restart starts empty.

Usage:
    store = DocumentStore(provider)
    await store.add_document(text, source_id="chapter-1")
    records = store.snapshot()
"""

from __future__ import annotations

import asyncio
import itertools
import time
from dataclasses import dataclass

import numpy as np

from quill.config.settings import Settings, settings
from quill.src.core.chunker import chunk_text, validate_chunking
from quill.src.core.embeddings import EmbeddingProvider
from quill.src.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_SOURCE_ID = "default"


@dataclass(frozen=True, eq=False, slots=True)
class ChunkRecord:
    """One indexed chunk.  ``sequence`` orders records by insertion."""

    source_id: str
    text: str
    embedding: np.ndarray
    sequence: int


class DocumentStore:
    """
    Per-source chunk index with atomic replace.

    Parameters
    ----------
    provider
        Embedding provider used for every chunk.
    chunk_size, overlap
        Word-window parameters.  Default to ``CHUNK_SIZE`` / ``CHUNK_OVERLAP``.
    max_concurrent_embeds
        Embedding calls in flight per document.
    config
        Settings instance.  Defaults to the module-level ``settings``.
    """

    __slots__ = ("_provider", "_chunk_size", "_overlap", "_max_concurrent", "_records", "_write_lock", "_sequence")

    def __init__(self, provider: EmbeddingProvider, chunk_size: int | None = None, overlap: int | None = None, max_concurrent_embeds: int | None = None, config: Settings | None = None) -> None:
        config = config or settings
        self._provider = provider
        self._chunk_size: int = chunk_size if chunk_size is not None else config.CHUNK_SIZE
        self._overlap: int = overlap if overlap is not None else config.CHUNK_OVERLAP
        validate_chunking(self._chunk_size, self._overlap)
        self._max_concurrent: int = max_concurrent_embeds or config.MAX_CONCURRENT_EMBEDS
        self._records: tuple[ChunkRecord, ...] = ()
        self._write_lock = asyncio.Lock()
        self._sequence = itertools.count()

    # ══════════════════════════════════════════════════════════════════
    #  MUTATIONS
    # ══════════════════════════════════════════════════════════════════

    async def add_document(self, text: str, source_id: str = DEFAULT_SOURCE_ID) -> int:
        """
        Index *text* under *source_id*, replacing any earlier generation.

        Returns
        -------
        int
            Number of chunks now indexed for the source.

        Raises
        ------
        EmbeddingError, InitializationError
            Propagated from the provider.  The store is left unchanged.
        """
        async with self._write_lock:
            t_start = time.perf_counter()
            chunks = chunk_text(text, self._chunk_size, self._overlap)
            logger.info("[STORE] Chunking document '%s' into %d part(s) …", source_id, len(chunks))

            vectors = await self._embed_all(chunks, source_id)
            new_records = tuple(ChunkRecord(source_id=source_id, text=chunk, embedding=vector, sequence=next(self._sequence)) for chunk, vector in zip(chunks, vectors))

            kept = tuple(r for r in self._records if r.source_id != source_id)
            replaced = len(self._records) - len(kept)
            self._records = kept + new_records

            logger.info("[STORE] Indexed %d chunk(s) for '%s' (replaced %d) in %.1fms — %d total.", len(new_records), source_id, replaced, (time.perf_counter() - t_start) * 1000, len(self._records))
            return len(new_records)


    async def _embed_all(self, chunks: list[str], source_id: str) -> list[np.ndarray]:
        """Embed *chunks* concurrently; the first failure cancels the rest."""
        if not chunks:
            return []

        semaphore = asyncio.Semaphore(self._max_concurrent)

        async def _embed_one(chunk: str) -> np.ndarray:
            async with semaphore:
                return await self._provider.embed(chunk)

        tasks = [asyncio.create_task(_embed_one(chunk)) for chunk in chunks]
        try:
            return await asyncio.gather(*tasks)
        except asyncio.CancelledError:
            await self._cancel_all(tasks)
            logger.info("[STORE] Indexing of '%s' cancelled — previous generation kept.", source_id)
            raise
        except Exception:
            await self._cancel_all(tasks)
            logger.error("[STORE] Embedding failed for '%s' — previous generation kept.", source_id)
            raise


    @staticmethod
    async def _cancel_all(tasks: list[asyncio.Task[np.ndarray]]) -> None:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)


    async def clear(self) -> None:
        """Drop every record of every source."""
        async with self._write_lock:
            dropped = len(self._records)
            self._records = ()
        logger.info("[STORE] Cleared %d chunk(s).", dropped)

    # ══════════════════════════════════════════════════════════════════
    #  READS (lock-free)
    # ══════════════════════════════════════════════════════════════════

    def snapshot(self) -> tuple[ChunkRecord, ...]:
        """Current generation, in insertion order."""
        return self._records


    def count(self, source_id: str | None = None) -> int:
        records = self._records
        if source_id is None:
            return len(records)
        return sum(1 for r in records if r.source_id == source_id)


    def sources(self) -> list[str]:
        """Indexed source ids, in first-insertion order."""
        return list(dict.fromkeys(r.source_id for r in self._records))


    @property
    def is_empty(self) -> bool:
        return not self._records


    def __len__(self) -> int:
        return len(self._records)


    def __repr__(self) -> str:
        return f"DocumentStore(sources={len(self.sources())}, chunks={len(self)})"
