"""
Quill - Centralized Configuration
==================================
Uses ``pydantic-settings`` (``BaseSettings``) to load *all* configuration
from environment variables and the project-level ``.env`` file.

Embedding backend
-----------------
``EMBEDDING_BACKEND`` selects the adapter built by the embedding
provider:
  • ``"huggingface"`` → local sentence-transformers model (default).
  • ``"google"``      → Gemini embeddings, requires ``GOOGLE_API_KEY``.
  • ``"fake"``        → deterministic hash-seeded vectors (tests / demos).

Security
--------
``GOOGLE_API_KEY`` is typed as ``SecretStr``.  The raw value is never
exposed in repr, logs, or tracebacks.  It is only *required* when the
Google backend is selected.

Chunking
--------
``CHUNK_SIZE`` and ``CHUNK_OVERLAP`` are measured in **words**.  The
overlap must be strictly smaller than the chunk size, otherwise the
sliding window would never advance.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application-wide settings.

    Every field is loaded from environment variables (or ``.env``).

    Attributes
    ----------
    ENV : Literal["dev", "prod"]
        Environment mode controlling logging verbosity.
    EMBEDDING_BACKEND : Literal["huggingface", "google", "fake"]
        Which embedding adapter the provider builds on first use.
    EMBEDDING_MODEL : str
        Sentence-transformers model used by the ``huggingface`` backend.
    GOOGLE_EMBEDDING_MODEL : str
        Model identifier passed to ``GoogleGenerativeAIEmbeddings``.
    GOOGLE_API_KEY : SecretStr | None
        API key for Google AI Studio.  Required for the ``google`` backend.
    MODEL_CACHE_DIR : Path
        Where local model weights are cached.
    FAKE_EMBEDDING_SIZE : int
        Vector dimension produced by the ``fake`` backend.
    CHUNK_SIZE : int
        Words per chunk.
    CHUNK_OVERLAP : int
        Words shared by consecutive chunks.
    TOP_K : int
        Default number of chunks returned by a retrieval.
    CONTEXT_SEPARATOR : str
        Marker inserted between retrieved chunks.
    INIT_TIMEOUT_SECONDS : float
        Upper bound on loading the embedding backend.
    EMBED_TIMEOUT_SECONDS : float
        Upper bound on a single embedding call.
    MAX_EMBED_CHARS : int
        Inputs longer than this are rejected before reaching the backend.
    MAX_CONCURRENT_EMBEDS : int
        Embedding calls allowed in flight per document.
    MAX_WORKERS : int
        Files ingested concurrently by the ingestion pipeline.
    """

    # ── Resolved Absolute Paths ────────────────────────────────────────
    BASE_DIR: Path = Path(__file__).resolve().parent.parent
    DATA_RAW_DIR: Path = BASE_DIR / "data" / "raw"
    MODEL_CACHE_DIR: Path = Path("/tmp/.cache")

    # ── Environment Mode ───────────────────────────────────────────────
    ENV: Literal["dev", "prod"] = "dev"

    # ── Embedding Backend ──────────────────────────────────────────────
    EMBEDDING_BACKEND: Literal["huggingface", "google", "fake"] = "huggingface"
    EMBEDDING_MODEL: str = "sentence-transformers/all-MiniLM-L6-v2"
    GOOGLE_EMBEDDING_MODEL: str = "models/gemini-embedding-001"
    GOOGLE_API_KEY: SecretStr | None = None
    FAKE_EMBEDDING_SIZE: int = 384

    # ── Chunking Parameters (words) ────────────────────────────────────
    CHUNK_SIZE: int = 300
    CHUNK_OVERLAP: int = 50

    # ── Retrieval ──────────────────────────────────────────────────────
    TOP_K: int = 5
    CONTEXT_SEPARATOR: str = "\n\n...[Context Break]...\n\n"

    # ── Timeouts & Limits ──────────────────────────────────────────────
    INIT_TIMEOUT_SECONDS: float = 120.0
    EMBED_TIMEOUT_SECONDS: float = 30.0
    MAX_EMBED_CHARS: int = 20_000

    # ── Concurrency ────────────────────────────────────────────────────
    MAX_CONCURRENT_EMBEDS: int = 4
    MAX_WORKERS: int = 4

    # ── Validators ─────────────────────────────────────────────────────

    @field_validator("CHUNK_SIZE")
    @classmethod
    def _chunk_size_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"CHUNK_SIZE must be ≥ 1, got {v}")
        return v


    @field_validator("CHUNK_OVERLAP")
    @classmethod
    def _overlap_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"CHUNK_OVERLAP must be ≥ 0, got {v}")
        return v


    @field_validator("FAKE_EMBEDDING_SIZE", "MAX_EMBED_CHARS")
    @classmethod
    def _positive_int(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"value must be ≥ 1, got {v}")
        return v


    @field_validator("INIT_TIMEOUT_SECONDS", "EMBED_TIMEOUT_SECONDS")
    @classmethod
    def _timeout_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"timeouts must be > 0, got {v}")
        return v


    @field_validator("MAX_CONCURRENT_EMBEDS")
    @classmethod
    def _embeds_range(cls, v: int) -> int:
        if not 1 <= v <= 32:
            raise ValueError(f"MAX_CONCURRENT_EMBEDS must be 1–32, got {v}")
        return v


    @field_validator("MAX_WORKERS")
    @classmethod
    def _workers_range(cls, v: int) -> int:
        if not 1 <= v <= 16:
            raise ValueError(f"MAX_WORKERS must be 1–16, got {v}")
        return v


    @model_validator(mode="after")
    def _check_cross_field(self) -> Settings:
        if self.CHUNK_OVERLAP >= self.CHUNK_SIZE:
            raise ValueError(f"CHUNK_OVERLAP ({self.CHUNK_OVERLAP}) must be smaller than CHUNK_SIZE ({self.CHUNK_SIZE})")
        if self.EMBEDDING_BACKEND == "google" and self.GOOGLE_API_KEY is None:
            raise ValueError("GOOGLE_API_KEY is required when EMBEDDING_BACKEND='google'")
        return self

    # ── Pydantic Settings Configuration ────────────────────────────────
    model_config = SettingsConfigDict(env_file=Path(__file__).resolve().parent.parent / ".env", env_file_encoding="utf-8", extra="ignore")


# ── Singleton Instance ─────────────────────────────────────────────────
# Import this throughout the project:
#     from quill.config.settings import settings
settings = Settings()
