"""
Integration Tests for NewsChatSystem

Wires the real store, filter, rewriter and session manager together. The
embedding client and chat model are mocked so no Ollama server is needed.
"""

import os
import shutil
import tempfile
from unittest.mock import Mock, patch

import pytest

from newschat.config import Config
from newschat.errors import OllamaConnectionError
from newschat.main_pipeline import NewsChatSystem
from newschat.models import EmbeddingResult

from conftest import TEST_DIMENSION, axis_vector, make_article


@pytest.fixture
def temp_dir():
    temp_dir = tempfile.mkdtemp()
    yield temp_dir
    shutil.rmtree(temp_dir)


@pytest.fixture
def config(temp_dir):
    config = Config()
    config.update(
        embedding_dimension=TEST_DIMENSION,
        enable_disk_cache=False,
        cache_dir=os.path.join(temp_dir, 'cache'),
        vector_index_path=os.path.join(temp_dir, 'articles.index'),
    )
    return config


@pytest.fixture
def embedder():
    service = Mock()
    service.embed.return_value = EmbeddingResult.ok(axis_vector(0))
    service.get_cache_stats.return_value = {'cache_size': 0, 'hit_rate': 0.0, 'degraded': 0}
    return service


@pytest.fixture
def chat_model():
    with patch('newschat.query.rag_service.ChatOllama') as mock_cls:
        mock_cls.return_value.invoke.return_value = Mock(content="Candidate A won the election.")
        yield mock_cls


@pytest.fixture
def system(config, embedder):
    return NewsChatSystem(config=config, embedding_service=embedder)


@pytest.fixture
def system_with_data(system):
    for i, title in enumerate(["Election results announced", "Senate budget vote", "Fed holds rates"]):
        system.store.upsert(make_article(title=title), axis_vector(i))
    return system


class TestSystemInitialization:
    """Test system construction."""

    def test_components_built_from_config(self, system, config):
        assert system.store.dimension == TEST_DIMENSION
        assert system.store.index_path == config.vector_index_path
        assert system.relevance_filter.sparse_threshold == config.sparse_result_threshold
        assert system.retriever.default_limit == config.top_k_default
        assert system.conversation_manager.max_history_turns == config.max_history_turns

    def test_rag_service_built_lazily(self, system, chat_model):
        chat_model.assert_not_called()

        assert system.rag_service is system.rag_service
        chat_model.assert_called_once()


class TestQueryPipeline:
    """Test search and chat."""

    def test_search(self, system_with_data):
        results = system_with_data.search("election")

        assert results
        assert results[0].article.title == "Election results announced"

    def test_search_empty_store(self, system):
        assert system.search("anything") == []

    def test_ask_creates_session(self, system_with_data, chat_model):
        result = system_with_data.ask("Who won the election?")

        assert result['answer'] == "Candidate A won the election."
        assert result['session_id']
        history = system_with_data.conversation_manager.get_history(result['session_id'])
        assert [m['role'] for m in history] == ['user', 'assistant']

    def test_multi_turn_rewrites_followup(self, system_with_data, chat_model):
        first = system_with_data.ask("Tell me about the election")
        second = system_with_data.ask("who won?", session_id=first['session_id'])

        assert second['session_id'] == first['session_id']
        assert second['effective_query'] == "Tell me about the election who won?"

    def test_unknown_session_replaced(self, system_with_data, chat_model):
        result = system_with_data.ask("Fed news", session_id="stale-session")

        assert result['session_id'] != "stale-session"

    def test_expired_session_evicted(self, system_with_data, chat_model):
        manager = system_with_data.conversation_manager
        first = system_with_data.ask("Fed news")
        manager._last_active[first['session_id']] = 0.0

        second = system_with_data.ask("Fed news", session_id=first['session_id'])

        assert second['session_id'] != first['session_id']
        assert first['session_id'] not in manager.sessions
        assert list(manager.sessions) == [second['session_id']]

    def test_ask_empty_store(self, system, chat_model):
        result = system.ask("Anything new?")

        assert "couldn't find any relevant news articles" in result['answer']
        chat_model.return_value.invoke.assert_not_called()


class TestServicesAndPersistence:
    """Test startup checks, persistence and statistics."""

    def test_check_services_ok(self, system, embedder):
        assert system.check_services() == {'ok': True}

    def test_check_services_failure(self, system, embedder):
        embedder.verify_connection.side_effect = OllamaConnectionError("Unable to connect to Ollama")

        status = system.check_services()

        assert status['ok'] is False
        assert "Unable to connect" in status['error']

    def test_refresh_news_saves_index(self, system, config):
        system.news_service.refresh = Mock(return_value={'stored': 1, 'total': 1})
        system.store.upsert(make_article(), axis_vector(0))

        system.refresh_news(['https://feeds.example.com/rss'], show_progress=False)

        assert os.path.exists(config.vector_index_path)

    def test_saved_index_reloaded(self, system_with_data, config, embedder):
        system_with_data.save()

        reloaded = NewsChatSystem(config=config, embedding_service=embedder)

        assert reloaded.store.count() == 3

    def test_clear(self, system_with_data):
        system_with_data.clear()

        assert system_with_data.store.count() == 0

    def test_get_stats(self, system_with_data):
        stats = system_with_data.get_stats()

        assert stats['store_stats']['total_articles'] == 3
        assert stats['active_sessions'] == 0
        assert 'categories' in stats['retrieval_config']
