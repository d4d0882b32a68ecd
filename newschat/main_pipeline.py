"""
Main Pipeline System

Wires all components into one system for news ingestion and chat:
- Embedding client and article store
- Relevance filter, query rewriter and retrieval orchestrator
- Conversation sessions
- RAG answering
- Index persistence and statistics
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from .config import Config, get_config
from .embeddings.ollama_service import OllamaEmbeddingService
from .errors import EmbeddingServiceError
from .ingestion.article_extractor import ArticleExtractor
from .ingestion.news_service import NewsService
from .models import SearchResult
from .query.conversation_manager import ConversationManager
from .query.query_rewriter import QueryRewriter
from .query.rag_service import RAGService
from .retrieval.orchestrator import RetrievalOrchestrator
from .retrieval.relevance_filter import RelevanceFilter
from .storage.vector_store import ArticleStore

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


class NewsChatSystem:
    """
    Main system that builds and holds every component.

    Every component can be injected; anything not supplied is built from
    the configuration.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        embedding_service: Optional[OllamaEmbeddingService] = None,
        store: Optional[ArticleStore] = None,
        relevance_filter: Optional[RelevanceFilter] = None,
        rewriter: Optional[QueryRewriter] = None,
        conversation_manager: Optional[ConversationManager] = None,
        rag_service: Optional[RAGService] = None,
        news_service: Optional[NewsService] = None,
        log_level: int = logging.INFO
    ):
        """
        Initialize the news chat system.

        Args:
            config: Configuration (default: the process-wide config)
            embedding_service: Embedding client
            store: Article store
            relevance_filter: Relevance filter over the store
            rewriter: Follow-up query rewriter
            conversation_manager: Session history store
            rag_service: Answer generator
            news_service: Feed ingestion service
            log_level: Logging level
        """
        self._setup_logging(log_level)
        self.config = config or get_config()
        cfg = self.config

        self.embedding_service = embedding_service or OllamaEmbeddingService(
            model=cfg.ollama_model,
            base_url=cfg.ollama_base_url,
            dimensions=cfg.embedding_dimension,
            enable_disk_cache=cfg.enable_disk_cache,
            cache_dir=cfg.cache_dir,
            timeout=cfg.ollama_timeout
        )
        self.store = store or ArticleStore(
            index_path=cfg.vector_index_path,
            dimension=cfg.embedding_dimension
        )
        self.relevance_filter = relevance_filter or RelevanceFilter(
            self.store,
            denylist=cfg.relevance_denylist,
            category_terms=cfg.category_terms,
            sparse_threshold=cfg.sparse_result_threshold,
            scan_limit=cfg.keyword_scan_limit,
            normalization=cfg.keyword_score_normalization
        )
        self.rewriter = rewriter or QueryRewriter(cfg.followup_reference_words)
        self.retriever = RetrievalOrchestrator(
            embedding_service=self.embedding_service,
            store=self.store,
            relevance_filter=self.relevance_filter,
            rewriter=self.rewriter,
            default_limit=cfg.top_k_default
        )
        self.conversation_manager = conversation_manager or ConversationManager(
            max_history_turns=cfg.max_history_turns
        )
        self._rag_service = rag_service
        self.news_service = news_service or NewsService(
            embedding_service=self.embedding_service,
            store=self.store,
            extractor=ArticleExtractor(
                timeout=cfg.article_timeout,
                min_text_length=cfg.article_min_text_length
            ),
            feeds=cfg.news_feeds,
            min_content_length=cfg.article_min_text_length,
            summary_length=cfg.summary_length
        )

        self.logger.info("NewsChatSystem initialized successfully")

    def _setup_logging(self, log_level: int):
        """Configure logging for the system."""
        self.logger = logging.getLogger(__name__)
        self.logger.setLevel(log_level)

        if not self.logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(logging.Formatter(LOG_FORMAT))
            self.logger.addHandler(handler)

    @property
    def rag_service(self) -> RAGService:
        """Answer generator, built on first use so search works without an LLM."""
        if self._rag_service is None:
            self._rag_service = RAGService(
                retriever=self.retriever,
                llm_model=self.config.llm_model,
                top_k=self.config.top_k_default,
                temperature=self.config.llm_temperature,
                ollama_base_url=self.config.ollama_base_url
            )
        return self._rag_service

    def check_services(self) -> Dict[str, Any]:
        """
        Verify Ollama connectivity and model availability.

        Meant for startup; query handling degrades instead of failing.

        Returns:
            Dictionary with 'ok' and, on failure, 'error'
        """
        try:
            self.embedding_service.verify_connection()
            self.embedding_service.verify_model_available()
        except EmbeddingServiceError as e:
            self.logger.error(f"Embedding service check failed: {e}")
            return {'ok': False, 'error': str(e)}
        return {'ok': True}

    def refresh_news(
        self,
        feeds: Optional[Iterable[str]] = None,
        show_progress: bool = True,
        save: bool = True
    ) -> Dict[str, Any]:
        """
        Fetch feeds, store new articles and optionally persist the index.

        Returns:
            Ingestion summary
        """
        summary = self.news_service.refresh(feeds, show_progress=show_progress)
        if save and self.store.index_path and summary['stored']:
            self.store.save_index()
        return summary

    def search(
        self,
        query: str,
        top_k: Optional[int] = None,
        session_id: Optional[str] = None
    ) -> List[SearchResult]:
        """
        Retrieve relevant articles without generating an answer.

        Args:
            query: Query text
            top_k: Number of results
            session_id: Optional session whose history is used for rewriting
        """
        history = None
        if session_id:
            history = self.conversation_manager.get_history(session_id) + [
                {'role': 'user', 'content': query}
            ]
        return self.retriever.retrieve(query, history, limit=top_k)

    def ask(
        self,
        question: str,
        session_id: Optional[str] = None,
        top_k: Optional[int] = None
    ) -> Dict[str, Any]:
        """
        Answer a chat message within a session.

        The question is recorded before retrieval so follow-ups resolve
        against the previous user message; the answer is recorded after.

        Returns:
            RAG result plus the session_id
        """
        if not session_id or not self.conversation_manager.has_session(session_id):
            session_id = self.conversation_manager.create_session()

        self.conversation_manager.add_message(session_id, 'user', question)
        history = self.conversation_manager.get_history(session_id)

        result = self.rag_service.answer(question, history, top_k=top_k)

        self.conversation_manager.add_message(session_id, 'assistant', result['answer'])
        result['session_id'] = session_id
        return result

    def save(self) -> None:
        """Persist the article store to its configured path."""
        self.store.save_index()

    def clear(self) -> None:
        """Drop every stored article (administrative rebuild)."""
        self.store.clear()
        if self.store.index_path:
            self.store.save_index()

    def get_stats(self) -> Dict[str, Any]:
        """
        Get system statistics.

        Returns:
            Dictionary with store, cache and session statistics
        """
        return {
            'store_stats': self.store.get_stats(),
            'cache_stats': self.embedding_service.get_cache_stats(),
            'active_sessions': len(self.conversation_manager.sessions),
            'retrieval_config': self.config.get_retrieval_config(),
        }
