"""
Quill - Embedding Provider
===========================
Lifecycle wrapper around a LangChain ``Embeddings`` backend.

State machine::

    UNINITIALIZED ──► LOADING ──► READY    (terminal)
                         └──────► FAILED   (terminal until dispose())

Key design decisions:
    • **Pluggable backend** – any LangChain ``Embeddings`` object can be
      injected; otherwise ``build_embedding_backend`` picks one from
      ``settings.EMBEDDING_BACKEND``.  Backend imports are lazy so a
      deployment only needs the package of the backend it uses.
    • **Single-flight load** – concurrent ``initialize()`` / ``embed()``
      callers during LOADING await one shared task.  The task is shielded,
      so a cancelled caller does not abort the load for the others.
    • **Off-loop work** – weights are loaded in a worker thread and
      embeddings go through ``aembed_query``; the event loop never blocks.
    • **Bounded latency** – ``INIT_TIMEOUT_SECONDS`` caps the load,
      ``EMBED_TIMEOUT_SECONDS`` caps every embedding call.
    • **Unit vectors** – every vector is L2-normalised and read-only, and
      must match the dimension learned from the warm-up probe.

Usage:
    from quill.src.core.embeddings import EmbeddingProvider
    provider = EmbeddingProvider()
    vector = await provider.embed("photosynthesis converts light")
"""

from __future__ import annotations

import asyncio
import time
from enum import Enum
from typing import Callable

import numpy as np
from langchain_core.embeddings import Embeddings

from quill.config.settings import Settings, settings
from quill.src.core.exceptions import EmbeddingError, InitializationError
from quill.src.utils.logger import get_logger

logger = get_logger(__name__)

BackendFactory = Callable[[], Embeddings]

# Embedded once during loading to learn the vector dimension
_PROBE_TEXT = "embedding warm-up probe"


class ProviderState(str, Enum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


# ══════════════════════════════════════════════════════════════════════
#  BACKEND FACTORY
# ══════════════════════════════════════════════════════════════════════


def build_embedding_backend(config: Settings | None = None) -> Embeddings:
    """
    Construct the LangChain embedding backend named by the configuration.

    Runs in a worker thread: the ``huggingface`` backend downloads and
    loads model weights synchronously.
    """
    config = config or settings
    backend = config.EMBEDDING_BACKEND

    if backend == "huggingface":
        from langchain_huggingface import HuggingFaceEmbeddings

        config.MODEL_CACHE_DIR.mkdir(parents=True, exist_ok=True)
        logger.info("[EMBED] Loading local model '%s' (cache: %s).", config.EMBEDDING_MODEL, config.MODEL_CACHE_DIR)
        # sentence-transformers applies the model's mean pooling; normalisation is repeated by the provider
        return HuggingFaceEmbeddings(model_name=config.EMBEDDING_MODEL, cache_folder=str(config.MODEL_CACHE_DIR), encode_kwargs={"normalize_embeddings": True})

    if backend == "google":
        from langchain_google_genai import GoogleGenerativeAIEmbeddings

        if config.GOOGLE_API_KEY is None:
            raise ValueError("GOOGLE_API_KEY is not set.")
        logger.info("[EMBED] Using Gemini embeddings '%s'.", config.GOOGLE_EMBEDDING_MODEL)
        return GoogleGenerativeAIEmbeddings(model=config.GOOGLE_EMBEDDING_MODEL, google_api_key=config.GOOGLE_API_KEY.get_secret_value())

    if backend == "fake":
        from langchain_core.embeddings import DeterministicFakeEmbedding

        logger.info("[EMBED] Using deterministic fake embeddings (size=%d).", config.FAKE_EMBEDDING_SIZE)
        return DeterministicFakeEmbedding(size=config.FAKE_EMBEDDING_SIZE)

    raise ValueError(f"Unknown embedding backend: {backend!r}")


# ══════════════════════════════════════════════════════════════════════
#  PROVIDER
# ══════════════════════════════════════════════════════════════════════


class EmbeddingProvider:
    """
    Maps text to fixed-dimension unit vectors.

    Parameters
    ----------
    backend
        Ready-made LangChain ``Embeddings`` instance.  Takes precedence
        over ``backend_factory``.
    backend_factory
        Zero-argument callable building the backend on first use.
        Defaults to ``build_embedding_backend(config)``.
    config
        Settings instance.  Defaults to the module-level ``settings``.
    """

    __slots__ = ("_config", "_factory", "_backend", "_state", "_dimension", "_load_task", "_init_lock", "_failure")

    def __init__(self, backend: Embeddings | None = None, backend_factory: BackendFactory | None = None, config: Settings | None = None) -> None:
        self._config: Settings = config or settings
        if backend is not None:
            self._factory: BackendFactory = lambda: backend
        else:
            self._factory = backend_factory or (lambda: build_embedding_backend(self._config))
        self._backend: Embeddings | None = None
        self._state = ProviderState.UNINITIALIZED
        self._dimension: int | None = None
        self._load_task: asyncio.Task[None] | None = None
        self._init_lock = asyncio.Lock()
        self._failure: InitializationError | None = None

    # ── Introspection ──────────────────────────────────────────────────

    @property
    def state(self) -> ProviderState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state is ProviderState.READY

    @property
    def dimension(self) -> int | None:
        """Vector length, known once the provider is READY."""
        return self._dimension

    # ══════════════════════════════════════════════════════════════════
    #  LIFECYCLE
    # ══════════════════════════════════════════════════════════════════

    async def initialize(self) -> None:
        """
        Bring the backend up, at most once.

        Raises
        ------
        InitializationError
            The load failed now or on an earlier attempt.  A FAILED
            provider is not retried; call ``dispose()`` first.
        """
        if self._state is ProviderState.READY:
            return

        async with self._init_lock:
            if self._state is ProviderState.FAILED:
                raise InitializationError("Embedding backend failed to load earlier; dispose the provider before retrying.") from self._failure
            if self._load_task is None:
                self._state = ProviderState.LOADING
                self._load_task = asyncio.create_task(self._load())
                self._load_task.add_done_callback(_consume_task_result)
            task = self._load_task

        await asyncio.shield(task)


    async def _load(self) -> None:
        t_start = time.perf_counter()
        timeout = self._config.INIT_TIMEOUT_SECONDS
        logger.info("[EMBED] Initialising embedding backend (timeout=%.0fs) …", timeout)

        try:
            backend, dimension = await asyncio.wait_for(self._build_and_probe(), timeout=timeout)
        except asyncio.TimeoutError as exc:
            self._fail(f"Embedding backend did not load within {timeout:.0f}s.", exc)
        except Exception as exc:
            self._fail(f"Embedding backend failed to load: {exc}", exc)
        else:
            self._backend = backend
            self._dimension = dimension
            self._state = ProviderState.READY
            logger.info("[EMBED] Backend ready — dimension=%d, loaded in %.1fms.", dimension, (time.perf_counter() - t_start) * 1000)


    async def _build_and_probe(self) -> tuple[Embeddings, int]:
        backend = await asyncio.to_thread(self._factory)
        probe = _to_unit_vector(await backend.aembed_query(_PROBE_TEXT), expected_dim=None)
        return backend, int(probe.shape[0])


    def _fail(self, message: str, cause: BaseException) -> None:
        error = InitializationError(message)
        error.__cause__ = cause
        self._state = ProviderState.FAILED
        self._failure = error
        logger.error("[EMBED] %s", message)
        raise error


    async def dispose(self) -> None:
        """Release the backend and return to UNINITIALIZED."""
        async with self._init_lock:
            task = self._load_task
            if task is not None and not task.done():
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)
            self._load_task = None
            self._backend = None
            self._dimension = None
            self._failure = None
            self._state = ProviderState.UNINITIALIZED
        logger.info("[EMBED] Provider disposed.")

    # ══════════════════════════════════════════════════════════════════
    #  EMBEDDING
    # ══════════════════════════════════════════════════════════════════

    async def embed(self, text: str) -> np.ndarray:
        """
        Embed *text* into a read-only unit vector.

        Raises
        ------
        EmbeddingError
            Blank, non-string or oversized input, a backend fault, a
            timeout, or a vector of the wrong shape.  Retryable.
        InitializationError
            The backend cannot be brought up.
        """
        self._validate_input(text)
        await self.initialize()

        backend = self._backend
        if backend is None:
            raise EmbeddingError("Embedding provider was disposed during the call.")

        timeout = self._config.EMBED_TIMEOUT_SECONDS
        try:
            raw = await asyncio.wait_for(backend.aembed_query(text), timeout=timeout)
        except asyncio.TimeoutError as exc:
            logger.error("[EMBED] Embedding timed out after %.1fs (%d chars).", timeout, len(text))
            raise EmbeddingError(f"Embedding timed out after {timeout:.1f}s.") from exc
        except Exception as exc:
            logger.error("[EMBED] Backend failed to embed %d chars: %s", len(text), exc)
            raise EmbeddingError(f"Embedding backend error: {exc}") from exc

        vector = _to_unit_vector(raw, expected_dim=self._dimension)
        logger.debug("[EMBED] Embedded %d chars → %d dims.", len(text), vector.shape[0])
        return vector


    def _validate_input(self, text: str) -> None:
        if not isinstance(text, str):
            raise EmbeddingError(f"Expected str, got {type(text).__name__}.")
        if not text.strip():
            raise EmbeddingError("Cannot embed blank text.")
        if len(text) > self._config.MAX_EMBED_CHARS:
            raise EmbeddingError(f"Text of {len(text)} chars exceeds MAX_EMBED_CHARS={self._config.MAX_EMBED_CHARS}.")


    def __repr__(self) -> str:
        return f"EmbeddingProvider(state={self._state.value}, dimension={self._dimension})"


# ── Helpers ───────────────────────────────────────────────────────────


def _to_unit_vector(raw: list[float], expected_dim: int | None) -> np.ndarray:
    """Validate a backend vector and scale it to unit length (zero stays zero)."""
    vector = np.asarray(raw, dtype=np.float64)
    if vector.ndim != 1 or vector.size == 0:
        raise EmbeddingError(f"Backend returned a malformed vector of shape {vector.shape}.")
    if expected_dim is not None and vector.shape[0] != expected_dim:
        raise EmbeddingError(f"Backend returned {vector.shape[0]} dims, expected {expected_dim}.")
    if not np.all(np.isfinite(vector)):
        raise EmbeddingError("Backend returned non-finite values.")

    norm = float(np.linalg.norm(vector))
    if norm > 0.0:
        vector = vector / norm
    vector.setflags(write=False)
    return vector


def _consume_task_result(task: asyncio.Task[None]) -> None:
    # The failure is surfaced to awaiting callers; mark it retrieved for
    # loads whose every caller was cancelled.
    if not task.cancelled():
        task.exception()
