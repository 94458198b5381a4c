"""
Quill - Exception Hierarchy
============================
``InitializationError`` is fatal for the provider instance that raised
it; ``EmbeddingError`` is retryable and never leaves the document store
half-updated.
"""


class QuillError(Exception):
    """Base class for every error raised by the retrieval core."""


class InitializationError(QuillError):
    """The embedding backend could not be loaded."""


class EmbeddingError(QuillError):
    """A specific text could not be embedded."""


class ChunkingConfigError(QuillError, ValueError):
    """Chunk size / overlap combination that cannot make progress."""
