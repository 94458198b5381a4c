"""End-to-end tests for the retrieval engine facade."""

from unittest.mock import MagicMock

import pytest

from quill.src.core.embeddings import EmbeddingProvider, ProviderState
from quill.src.core.exceptions import InitializationError
from quill.src.core.rag_engine import RetrievalEngine


@pytest.mark.asyncio
async def test_async_context_manager_loads_and_disposes(small_chunk_settings, keyword_backend):
    async with RetrievalEngine(config=small_chunk_settings, backend=keyword_backend) as engine:
        assert engine.provider.state is ProviderState.READY
        await engine.add_document("alpha alpha alpha beta beta beta", source_id="notes")
        assert len(engine.store) == 2

    assert engine.store.is_empty
    assert engine.provider.state is ProviderState.UNINITIALIZED


@pytest.mark.asyncio
async def test_retrieve_defaults_to_configured_top_k(small_chunk_settings, keyword_backend):
    config = small_chunk_settings.model_copy(update={"TOP_K": 2})
    engine = RetrievalEngine(config=config, backend=keyword_backend)
    await engine.add_document("alpha alpha alpha beta beta beta gamma gamma gamma delta delta delta", source_id="s1")

    results = await engine.search("alpha")
    context = await engine.retrieve("alpha")

    assert len(results) == 2
    assert context.count(config.CONTEXT_SEPARATOR) == 1
    assert context.startswith("alpha alpha alpha")


@pytest.mark.asyncio
async def test_engines_are_independent(small_chunk_settings, make_backend):
    first = RetrievalEngine(config=small_chunk_settings, backend=make_backend())
    second = RetrievalEngine(config=small_chunk_settings, backend=make_backend())

    await first.add_document("alpha alpha alpha", source_id="a")

    assert len(first.store) == 1
    assert second.store.is_empty
    assert await second.retrieve("alpha") == ""


@pytest.mark.asyncio
async def test_broken_backend_only_fails_when_embedding_is_needed(test_settings):
    factory = MagicMock(side_effect=OSError("no model runtime"))
    engine = RetrievalEngine(config=test_settings, provider=EmbeddingProvider(backend_factory=factory, config=test_settings))

    # Nothing indexed, so no embedding and no failure
    assert await engine.retrieve("photosynthesis") == ""

    with pytest.raises(InitializationError):
        await engine.add_document("photosynthesis converts light", source_id="bio")
    assert engine.store.is_empty

    with pytest.raises(InitializationError):
        await engine.init()


@pytest.mark.asyncio
async def test_exact_text_scores_highest_with_fake_backend(test_settings):
    async with RetrievalEngine(config=test_settings) as engine:
        await engine.add_document("The mitochondria is the powerhouse of the cell.", source_id="bio")
        await engine.add_document("Rivers erode valleys over thousands of years.", source_id="geo")

        results = await engine.search("The mitochondria is the powerhouse of the cell.", k=2)

    assert results[0].source_id == "bio"
    assert results[0].score == pytest.approx(1.0)
    assert results[1].score < results[0].score


@pytest.mark.asyncio
async def test_clear_empties_every_source(small_chunk_settings, keyword_backend):
    engine = RetrievalEngine(config=small_chunk_settings, backend=keyword_backend)
    await engine.add_document("alpha alpha alpha", source_id="a")
    await engine.add_document("beta beta beta", source_id="b")

    await engine.clear()

    assert await engine.retrieve("alpha", k=10) == ""


@pytest.mark.asyncio
async def test_repr_mentions_components(small_chunk_settings, keyword_backend):
    engine = RetrievalEngine(config=small_chunk_settings, backend=keyword_backend)
    assert repr(engine) == "RetrievalEngine(EmbeddingProvider(state=uninitialized, dimension=None), DocumentStore(sources=0, chunks=0))"
