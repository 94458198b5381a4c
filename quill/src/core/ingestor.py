"""
Quill - IngestionPipeline
==========================
Reads reference material, cleans it and indexes it into a
``RetrievalEngine``.  Each file becomes one source, identified by its
filename, so re-uploading a file replaces its previous chunks.

Key design decisions:
    • **Dependency Injection** – receives the ``RetrievalEngine``.
    • **Concurrency** – up to ``max_workers`` files are read and cleaned
      in parallel; indexing itself goes through the store's write lock,
      so embedding runs one file at a time (chunks of a file still embed
      concurrently).
    • **Failure isolation** – a file that fails to read or embed is
      logged and counted; the others still complete.
    • **Extensible** – text extraction for other formats (PDF, audio
      transcripts) happens upstream; hand the text to ``ingest_text``.

Usage:
    from quill.src.core.ingestor import IngestionPipeline
    pipeline = IngestionPipeline(engine)
    summary  = await pipeline.run()
"""

from __future__ import annotations

import asyncio
import time
from pathlib import Path
from typing import Any

from quill.config.settings import settings
from quill.src.core.rag_engine import RetrievalEngine
from quill.src.utils.logger import get_logger
from quill.src.utils.text_utils import clean_text, source_id_from_filename

logger = get_logger(__name__)

# File extensions the pipeline knows how to read
_SUPPORTED_EXTENSIONS = {".txt", ".md"}


class IngestionPipeline:
    """
    Document ingestion: read → clean → chunk → embed → store.

    Parameters
    ----------
    engine
        The ``RetrievalEngine`` to index into (injected).
    source_dir
        Override the source directory. Defaults to ``settings.DATA_RAW_DIR``.
    max_workers
        Files processed concurrently. Defaults to ``settings.MAX_WORKERS``.
    """

    def __init__(self, engine: RetrievalEngine, source_dir: Path | None = None, max_workers: int | None = None) -> None:
        self._engine = engine
        self._source_dir = Path(source_dir or settings.DATA_RAW_DIR)
        self._max_workers = max_workers or settings.MAX_WORKERS

    # ══════════════════════════════════════════════════════════════════
    #  PUBLIC ENTRY POINTS
    # ══════════════════════════════════════════════════════════════════

    async def ingest_text(self, text: str, source_id: str) -> int:
        """
        Clean and index already-extracted text.

        Blank text is skipped and leaves the store untouched.

        Returns
        -------
        int
            Number of chunks indexed.
        """
        cleaned = clean_text(text)
        if not cleaned:
            logger.warning("[INGEST] Skipping empty document: %s", source_id)
            return 0
        return await self._engine.add_document(cleaned, source_id)


    async def run(self) -> dict[str, Any]:
        """
        Index every supported file in the source directory.

        Returns
        -------
        dict
            Execution summary with keys:
            ``total_files``, ``files_processed``, ``files_failed``,
            ``total_chunks``, ``elapsed_seconds``.
        """
        t_start = time.perf_counter()
        source = self._source_dir

        if not source.exists():
            logger.warning("[INGEST] Source directory does not exist: %s", source)
            return self._summary(0, 0, 0, 0, time.perf_counter() - t_start)

        files = sorted(f for f in source.iterdir() if f.is_file() and f.suffix.lower() in _SUPPORTED_EXTENSIONS)

        if not files:
            logger.warning("[INGEST] No supported files found in %s", source)
            return self._summary(0, 0, 0, 0, time.perf_counter() - t_start)

        logger.info("[INGEST] Starting ingestion — %d file(s) found in %s", len(files), source)

        semaphore = asyncio.Semaphore(self._max_workers)

        async def _bounded(filepath: Path) -> int:
            async with semaphore:
                return await self._ingest_file(filepath)

        results = await asyncio.gather(*(_bounded(fp) for fp in files), return_exceptions=True)

        total_chunks = 0
        files_processed = 0
        files_failed = 0
        for filepath, result in zip(files, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                logger.error("[INGEST] Failed to ingest file %s: %s", filepath.name, result, exc_info=result)
                files_failed += 1
            else:
                total_chunks += result
                files_processed += 1

        elapsed = time.perf_counter() - t_start
        logger.info("[INGEST] Ingestion complete — %d file(s) processed, %d failed, %d chunk(s) indexed in %.2fs.", files_processed, files_failed, total_chunks, elapsed)
        return self._summary(len(files), files_processed, files_failed, total_chunks, elapsed)

    # ══════════════════════════════════════════════════════════════════
    #  PER-FILE PROCESSING
    # ══════════════════════════════════════════════════════════════════

    async def _ingest_file(self, filepath: Path) -> int:
        t_file = time.perf_counter()
        logger.info("[INGEST] Processing file: %s", filepath.name)

        raw_text = await asyncio.to_thread(self._read_file, filepath)
        added = await self.ingest_text(raw_text, source_id_from_filename(filepath.name))

        logger.info("[INGEST] File '%s' complete — %d chunk(s) in %.1fms.", filepath.name, added, (time.perf_counter() - t_file) * 1000)
        return added


    @staticmethod
    def _read_file(filepath: Path) -> str:
        """Read a text file (UTF-8 with a cp1252 fallback)."""
        try:
            return filepath.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            return filepath.read_text(encoding="cp1252")

    # ── Summary helper ─────────────────────────────────────────────────

    @staticmethod
    def _summary(total: int, processed: int, failed: int, chunks: int, elapsed: float) -> dict[str, Any]:
        return {
            "total_files": total,
            "files_processed": processed,
            "files_failed": failed,
            "total_chunks": chunks,
            "elapsed_seconds": round(elapsed, 2),
        }
