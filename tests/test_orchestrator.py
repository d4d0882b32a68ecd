"""
Tests for the retrieval orchestrator: rewrite, embed, search and filter.
"""

from unittest.mock import Mock

import pytest

from newschat.models import EmbeddingResult, SearchResult
from newschat.query.query_rewriter import QueryRewriter
from newschat.retrieval.orchestrator import RetrievalOrchestrator
from newschat.retrieval.relevance_filter import RelevanceFilter
from newschat.storage.vector_store import ArticleStore

from conftest import TEST_DIMENSION, axis_vector, make_article


@pytest.fixture
def store():
    return ArticleStore(dimension=TEST_DIMENSION)


def build(embedder, store, **filter_kwargs):
    return RetrievalOrchestrator(
        embedding_service=embedder,
        store=store,
        relevance_filter=RelevanceFilter(store, **filter_kwargs),
        rewriter=QueryRewriter(),
        default_limit=5
    )


class TestRetrieve:
    """Test the full retrieval pipeline."""

    def test_results_unique_and_bounded(self, fake_embedder, store):
        for i in range(6):
            store.upsert(make_article(url="https://x.example/same"), axis_vector(i))
        for i in range(6):
            store.upsert(make_article(), axis_vector(i))

        results = build(fake_embedder, store).retrieve("interest rates", limit=4)

        urls = [r.url for r in results]
        assert len(results) <= 4
        assert len(urls) == len(set(urls)), "Each URL must appear at most once"

    def test_results_exclude_denylisted(self, fake_embedder, store):
        store.upsert(make_article(title="Wildlife rescue"), axis_vector(0))
        store.upsert(make_article(title="Senate passes budget"), axis_vector(1))
        store.upsert(make_article(title="Fed decision"), axis_vector(2))

        results = build(fake_embedder, store, denylist=['wildlife']).retrieve("news")

        assert "Wildlife rescue" not in [r.article.title for r in results]

    def test_ranked_by_similarity(self, fake_embedder, store):
        store.upsert(make_article(title="far"), axis_vector(3))
        store.upsert(make_article(title="near"), axis_vector(0))

        results = build(fake_embedder, store).retrieve("query")

        assert results[0].article.title == "near"

    def test_empty_store_returns_empty(self, fake_embedder, store):
        assert build(fake_embedder, store).retrieve("anything at all") == []

    def test_blank_query_skips_embedding(self, fake_embedder, store):
        assert build(fake_embedder, store).retrieve("   ") == []
        fake_embedder.embed.assert_not_called()

    def test_zero_limit(self, fake_embedder, store):
        store.upsert(make_article(), axis_vector(0))
        assert build(fake_embedder, store).retrieve("query", limit=0) == []

    def test_unavailable_store_returns_empty(self, fake_embedder, store):
        store.index = None
        assert build(fake_embedder, store).retrieve("query") == []

    def test_degraded_embedding_still_answers(self, store):
        embedder = Mock()
        embedder.embed.return_value = EmbeddingResult.fallback(axis_vector(1))
        store.upsert(make_article(title="Senate vote"), axis_vector(1))
        store.upsert(make_article(title="Market rally"), axis_vector(2))

        results, trace = build(embedder, store).retrieve_with_trace("query")

        assert trace.degraded is True
        assert len(results) == 2

    def test_retrieve_articles(self, fake_embedder, store):
        article = make_article()
        store.upsert(article, axis_vector(0))

        assert build(fake_embedder, store).retrieve_articles("query") == [article]


class TestEscalation:
    """Sparse vector results fall back to keyword search."""

    def test_keyword_results_replace_single_vector_hit(self, fake_embedder):
        lone = make_article(title="Unrelated story")
        keyword_hits = [make_article(title=f"Budget debate {i}") for i in range(3)]

        store = Mock()
        store.vector_search.return_value = [SearchResult(article=lone, score=0.6)]
        store.scan_all.return_value = keyword_hits

        orchestrator = RetrievalOrchestrator(
            embedding_service=fake_embedder,
            store=store,
            relevance_filter=RelevanceFilter(store)
        )
        results, trace = orchestrator.retrieve_with_trace("budget")

        assert [r.article for r in results] == keyword_hits
        assert trace.keyword_fallback is True
        assert trace.raw_count == 1
        assert trace.result_count == 3


class TestConversationalRetrieval:
    """Follow-up questions search with the rewritten query."""

    def test_followup_embeds_rewritten_query(self, fake_embedder, store):
        history = [
            {'role': 'user', 'content': 'Tell me about the election'},
            {'role': 'assistant', 'content': '...'},
            {'role': 'user', 'content': 'who won?'},
        ]

        _, trace = build(fake_embedder, store).retrieve_with_trace("who won?", history)

        assert trace.effective_query == "Tell me about the election who won?"
        fake_embedder.embed.assert_called_once_with("Tell me about the election who won?")

    def test_first_message_used_verbatim(self, fake_embedder, store):
        history = [{'role': 'user', 'content': 'who won?'}]

        _, trace = build(fake_embedder, store).retrieve_with_trace("who won?", history)

        assert trace.effective_query == "who won?"
