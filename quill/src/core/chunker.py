"""
Quill - Word-Window Chunker
============================
Splits a document into overlapping windows of whitespace-delimited
words.  A document that already fits in one window is returned
unchanged (original spacing and newlines preserved); longer documents
are re-joined with single spaces.  The last window may be shorter than
``S`` words.

For ``N`` words, window ``S`` and overlap ``O`` (``N > S``) the number of
chunks is ``ceil((N - S) / (S - O)) + 1``.
"""

from __future__ import annotations

from quill.src.core.exceptions import ChunkingConfigError

DEFAULT_CHUNK_SIZE = 300
DEFAULT_OVERLAP = 50


def validate_chunking(chunk_size: int, overlap: int) -> None:
    """Raise ``ChunkingConfigError`` unless the window can advance."""
    if chunk_size < 1:
        raise ChunkingConfigError(f"chunk_size must be ≥ 1, got {chunk_size}")
    if overlap < 0:
        raise ChunkingConfigError(f"overlap must be ≥ 0, got {overlap}")
    if overlap >= chunk_size:
        raise ChunkingConfigError(f"overlap ({overlap}) must be smaller than chunk_size ({chunk_size})")


def chunk_text(text: str, chunk_size: int = DEFAULT_CHUNK_SIZE, overlap: int = DEFAULT_OVERLAP) -> list[str]:
    """
    Split *text* into overlapping word windows.

    Args:
        text:       Document text.
        chunk_size: Words per window.
        overlap:    Words shared by consecutive windows.

    Returns:
        Ordered list of non-empty chunks.  Blank text yields ``[]``.

    Raises:
        ChunkingConfigError: ``overlap >= chunk_size`` or a negative value.
    """
    validate_chunking(chunk_size, overlap)

    words = text.split()
    if not words:
        return []
    if len(words) <= chunk_size:
        return [text]

    stride = chunk_size - overlap
    chunks: list[str] = []
    for start in range(0, len(words), stride):
        chunks.append(" ".join(words[start : start + chunk_size]))
        # The window that reaches the last word ends the document; later
        # starts would only repeat its tail.
        if start + chunk_size >= len(words):
            break
    return chunks
