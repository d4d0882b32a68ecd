"""
Retrieval Orchestrator

Answers "given a query and the conversation so far, which articles are
relevant?" by chaining the query rewriter, the embedding client, the
article store and the relevance filter. Every step degrades instead of
raising, so the worst outcome is an empty list.
"""

import logging
import time
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from ..embeddings.ollama_service import OllamaEmbeddingService
from ..models import Article, HistoryEntry, SearchResult
from ..query.query_rewriter import QueryRewriter
from ..storage.vector_store import ArticleStore
from .relevance_filter import RelevanceFilter

logger = logging.getLogger(__name__)


@dataclass
class RetrievalTrace:
    """What happened during one retrieval call."""
    query: str
    effective_query: str
    degraded: bool = False
    raw_count: int = 0
    result_count: int = 0
    keyword_fallback: bool = False
    elapsed: float = 0.0


class RetrievalOrchestrator:
    """Composes rewrite -> embed -> vector search -> relevance filter."""

    def __init__(
        self,
        embedding_service: OllamaEmbeddingService,
        store: ArticleStore,
        relevance_filter: RelevanceFilter,
        rewriter: Optional[QueryRewriter] = None,
        default_limit: int = 5
    ):
        self.embedding_service = embedding_service
        self.store = store
        self.relevance_filter = relevance_filter
        self.rewriter = rewriter or QueryRewriter()
        self.default_limit = default_limit

    def retrieve_with_trace(
        self,
        query: str,
        history: Optional[Sequence[HistoryEntry]] = None,
        limit: Optional[int] = None
    ) -> Tuple[List[SearchResult], RetrievalTrace]:
        """
        Run the pipeline and return `(results, trace)`.

        Args:
            query: Raw user query
            history: Conversation turns, oldest first
            limit: Maximum number of results (default: default_limit)
        """
        start_time = time.time()
        k = self.default_limit if limit is None else limit

        if not query or not query.strip() or k <= 0:
            return [], RetrievalTrace(query=query or '', effective_query=query or '')

        effective_query = self.rewriter.rewrite(query, history)
        trace = RetrievalTrace(query=query, effective_query=effective_query)

        embedding = self.embedding_service.embed(effective_query)
        trace.degraded = embedding.degraded
        if embedding.degraded:
            logger.warning("Searching with a fallback embedding; ranking quality is reduced")

        raw = self.store.vector_search(embedding.vector, k)
        trace.raw_count = len(raw)

        results, escalated = self.relevance_filter.rank(raw, effective_query, k)
        trace.keyword_fallback = escalated
        trace.result_count = len(results)
        trace.elapsed = time.time() - start_time

        logger.info(
            f"Retrieved {len(results)} articles for '{effective_query[:80]}' "
            f"(raw={len(raw)}, keyword_fallback={escalated}, degraded={embedding.degraded})"
        )
        return results, trace

    def retrieve(
        self,
        query: str,
        history: Optional[Sequence[HistoryEntry]] = None,
        limit: Optional[int] = None
    ) -> List[SearchResult]:
        """
        Return the top relevant articles for a query and history.

        Never raises for missing results; an empty list means nothing relevant
        was found or the backing services are unavailable.
        """
        results, _ = self.retrieve_with_trace(query, history, limit)
        return results

    def retrieve_articles(
        self,
        query: str,
        history: Optional[Sequence[HistoryEntry]] = None,
        limit: Optional[int] = None
    ) -> List[Article]:
        """Like retrieve(), returning bare articles."""
        return [result.article for result in self.retrieve(query, history, limit)]
