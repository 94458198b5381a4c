"""Tests for cosine scoring, ranking and context assembly."""

import numpy as np
import pytest

from quill.src.core.embeddings import EmbeddingProvider, ProviderState
from quill.src.core.retriever import Retriever, cosine_similarity
from quill.src.database.document_store import DocumentStore

SEPARATOR = "\n\n...[Context Break]...\n\n"


@pytest.fixture
def small_store(keyword_backend, small_chunk_settings):
    provider = EmbeddingProvider(backend=keyword_backend, config=small_chunk_settings)
    return DocumentStore(provider, config=small_chunk_settings)


@pytest.fixture
def retriever(small_store):
    return Retriever(small_store, small_store._provider)


# ── cosine_similarity ──────────────────────────────────────────────────


def test_cosine_of_vector_with_itself_is_one():
    a = np.array([0.3, -1.2, 4.0])
    assert cosine_similarity(a, a) == pytest.approx(1.0)


def test_cosine_with_zero_vector_is_zero_not_nan():
    score = cosine_similarity(np.array([1.0, 2.0]), np.zeros(2))
    assert score == 0.0
    assert not np.isnan(score)
    assert cosine_similarity(np.zeros(3), np.zeros(3)) == 0.0


def test_cosine_orthogonal_and_opposite():
    assert cosine_similarity(np.array([1.0, 0.0]), np.array([0.0, 5.0])) == pytest.approx(0.0)
    assert cosine_similarity(np.array([1.0, 1.0]), np.array([-2.0, -2.0])) == pytest.approx(-1.0)


def test_cosine_of_mismatched_or_empty_vectors_is_zero():
    assert cosine_similarity(np.array([1.0, 0.0]), np.array([1.0, 0.0, 0.0])) == 0.0
    assert cosine_similarity(np.array([]), np.array([])) == 0.0


# ── retrieve / search ──────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_empty_store_returns_empty_string_without_loading(retriever, small_store):
    assert await retriever.retrieve("anything", 5) == ""
    assert small_store._provider.state is ProviderState.UNINITIALIZED


@pytest.mark.asyncio
@pytest.mark.parametrize("k", [0, -3])
async def test_non_positive_k_returns_empty_string(retriever, small_store, k):
    await small_store.add_document("alpha alpha alpha", source_id="a")
    assert await retriever.retrieve("alpha", k) == ""
    assert await retriever.search("alpha", k) == []


@pytest.mark.asyncio
async def test_top_k_spans_all_sources(retriever, small_store):
    await small_store.add_document("alpha alpha alpha beta beta beta gamma gamma gamma", source_id="s1")
    await small_store.add_document("alpha alpha beta delta delta delta gamma delta delta", source_id="s2")

    context = await retriever.retrieve("alpha", 2)

    assert context.split(SEPARATOR) == ["alpha alpha alpha", "alpha alpha beta"]


@pytest.mark.asyncio
async def test_results_sorted_by_descending_score(retriever, small_store):
    await small_store.add_document("alpha beta beta gamma gamma gamma alpha alpha beta", source_id="s1")

    results = await retriever.search("alpha beta", 10)
    scores = [r.score for r in results]

    assert scores == sorted(scores, reverse=True)
    assert len(results) == 3


@pytest.mark.asyncio
async def test_ties_keep_insertion_order(retriever, small_store):
    await small_store.add_document("gamma gamma gamma", source_id="first")
    await small_store.add_document("gamma gamma gamma", source_id="second")

    results = await retriever.search("gamma", 2)
    assert [r.source_id for r in results] == ["first", "second"]

    # Re-indexing makes "first" the newer insertion
    await small_store.add_document("gamma gamma gamma", source_id="first")
    results = await retriever.search("gamma", 2)
    assert [r.source_id for r in results] == ["second", "first"]


@pytest.mark.asyncio
async def test_k_larger_than_store_returns_everything(retriever, small_store):
    await small_store.add_document("alpha alpha alpha beta beta beta", source_id="s1")

    results = await retriever.search("beta", 50)

    assert [r.text for r in results] == ["beta beta beta", "alpha alpha alpha"]
    assert results[0].score == pytest.approx(1.0)
    assert results[1].score == pytest.approx(0.0)


@pytest.mark.asyncio
async def test_replaced_chunks_are_unreachable(retriever, small_store):
    await small_store.add_document("alpha alpha alpha beta beta beta", source_id="doc1")
    await small_store.add_document("delta delta delta", source_id="doc1")

    context = await retriever.retrieve("alpha beta", 10)

    assert context == "delta delta delta"


@pytest.mark.asyncio
async def test_clear_then_retrieve_is_empty(retriever, small_store):
    await small_store.add_document("alpha alpha alpha", source_id="a")
    await small_store.clear()

    assert await retriever.retrieve("alpha", 5) == ""


@pytest.mark.asyncio
async def test_custom_separator(small_store):
    retriever = Retriever(small_store, small_store._provider, separator=" | ")
    await small_store.add_document("alpha alpha alpha beta beta beta", source_id="s1")

    assert await retriever.retrieve("alpha", 2) == "alpha alpha alpha | beta beta beta"


@pytest.mark.asyncio
@pytest.mark.parametrize("query", ["", "   \n\t"])
async def test_blank_query_returns_empty_context(retriever, small_store, keyword_backend, query):
    await small_store.add_document("alpha alpha alpha", source_id="a")
    calls_before = len(keyword_backend.calls)

    assert await retriever.retrieve(query, 5) == ""
    assert len(keyword_backend.calls) == calls_before
