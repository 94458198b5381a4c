"""
Quill - Context Builder Script
===============================
CLI entry point that orchestrates:
    1. Load settings (fail-fast on configuration errors).
    2. Initialise the ``RetrievalEngine`` (embedding backend load, timed).
    3. Run the ``IngestionPipeline`` over the source directory.
    4. Retrieve the context block for ``--query`` and print it with a
       structured execution summary.

Everything lives in memory: each run re-indexes the directory.

Usage:
    python -m quill.scripts.build_context --query "photosynthesis"
    python -m quill.scripts.build_context --query "cell walls" --source-dir notes/ --k 3
    python -m quill.scripts.build_context --query "demo" --backend fake --env prod
"""

from __future__ import annotations

import argparse
import asyncio
import sys
import time
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from quill.config.settings import Settings


# ── CLI Argument Parsing ───────────────────────────────────────────────

def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="build_context", description="Quill — Index reference files and print the retrieved context for a query.")
    parser.add_argument("--query", required=True, help="Topic or question to retrieve context for.")
    parser.add_argument("--source-dir", type=Path, default=None, help="Directory of .txt / .md files (defaults to DATA_RAW_DIR).")
    parser.add_argument("--k", type=int, default=None, help="Number of chunks to retrieve (defaults to TOP_K).")
    parser.add_argument("--backend", choices=["huggingface", "google", "fake"], default=None, help="Override EMBEDDING_BACKEND for this run.")
    parser.add_argument("--env", choices=["dev", "prod"], default=None, help="Override ENV (logging verbosity) for this run.")
    return parser.parse_args(argv)


# ── Main Orchestration ─────────────────────────────────────────────────

def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    t_settings = time.perf_counter()
    try:
        from quill.config.settings import Settings, settings

        overrides = {key: value for key, value in (("EMBEDDING_BACKEND", args.backend), ("ENV", args.env)) if value}
        if overrides:
            settings = Settings(**overrides)
    except Exception as exc:
        print("\n[FATAL] Configuration error — check your .env file:\n")
        print(f"  {exc}")
        print()
        return 1
    settings_ms = (time.perf_counter() - t_settings) * 1000

    return asyncio.run(_run(args, settings, settings_ms))


async def _run(args: argparse.Namespace, settings: Settings, settings_ms: float) -> int:
    from quill.src.core.exceptions import InitializationError
    from quill.src.core.ingestor import IngestionPipeline
    from quill.src.core.rag_engine import RetrievalEngine
    from quill.src.utils.logger import configure_logging, get_logger

    configure_logging(settings)
    logger = get_logger(__name__)
    logger.info("Settings loaded in %.1fms", settings_ms)
    t_start = time.perf_counter()

    source_dir = args.source_dir or settings.DATA_RAW_DIR
    _print_header(settings, source_dir)

    engine = RetrievalEngine(config=settings)

    # ── 1. Load embedding backend (timed) ─────────────────────────────
    t_embedder = time.perf_counter()
    try:
        await engine.init()
    except InitializationError:
        logger.exception("Failed to initialise embedding backend.")
        return 1
    embedder_ms = (time.perf_counter() - t_embedder) * 1000

    try:
        # ── 2. Ingest ──────────────────────────────────────────────────
        pipeline = IngestionPipeline(engine, source_dir=source_dir)
        summary = await pipeline.run()

        # ── 3. Retrieve ────────────────────────────────────────────────
        t_retrieve = time.perf_counter()
        context = await engine.retrieve(args.query, args.k)
        retrieve_ms = (time.perf_counter() - t_retrieve) * 1000

        _print_context(args.query, context)
        _print_footer(summary, len(engine.store), time.perf_counter() - t_start, settings_ms, embedder_ms, retrieve_ms)
    finally:
        await engine.dispose()

    return 0


# ── Pretty-print helpers ──────────────────────────────────────────────

def _print_header(settings: Settings, source_dir: Path) -> None:
    print()
    print("=" * 60)
    print("  QUILL — Context Builder")
    print("=" * 60)
    print(f"  Environment  : {settings.ENV}")
    print(f"  Backend      : {settings.EMBEDDING_BACKEND}")
    print(f"  Source dir   : {source_dir}")
    print(f"  Chunk size   : {settings.CHUNK_SIZE} words (overlap {settings.CHUNK_OVERLAP})")
    print(f"  Top-k        : {settings.TOP_K}")
    print("=" * 60)
    print()


def _print_context(query: str, context: str) -> None:
    print()
    print(f"Query: {query}")
    print("-" * 60)
    print(context if context else "(no indexed content)")
    print("-" * 60)


def _print_footer(summary: dict, store_size: int, elapsed: float, settings_ms: float, embedder_ms: float, retrieve_ms: float) -> None:
    print()
    print("=" * 60)
    print("  EXECUTION SUMMARY")
    print("-" * 60)
    print(f"  Total files scanned  : {summary['total_files']}")
    print(f"  Files ingested       : {summary['files_processed']}")
    print(f"  Files failed         : {summary['files_failed']}")
    print(f"  Chunks in store      : {store_size}")
    print("-" * 60)
    print("  TIMING BREAKDOWN")
    print("-" * 60)
    print(f"  Settings + .env load : {settings_ms:>8.1f}ms")
    print(f"  Embedder init        : {embedder_ms:>8.1f}ms")
    print(f"  Ingestion            : {summary['elapsed_seconds']:>8.2f}s")
    print(f"  Retrieval            : {retrieve_ms:>8.1f}ms")
    print(f"  Total elapsed        : {elapsed:>8.2f}s")
    print("=" * 60)
    print()


# ── Entry point ────────────────────────────────────────────────────────

if __name__ == "__main__":
    sys.exit(main())
