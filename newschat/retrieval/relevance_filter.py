"""
Relevance Filter

Post-processes raw similarity results into the answer set:
1. Deduplicate by URL (normalised title when the URL is missing)
2. Drop articles containing any denylist term
3. Escalate to keyword search when too few results survive

Keyword search scores every stored article by literal token hits in the
title, summary and content, with category expansion for queries that name
a topic ("tech", "economy") instead of the words used in the articles.
"""

import logging
import re
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from ..models import Article, SearchResult
from ..storage.vector_store import ArticleStore

logger = logging.getLogger(__name__)

TITLE_WEIGHT = 5
SUMMARY_WEIGHT = 3
CONTENT_WEIGHT = 1
CATEGORY_TITLE_WEIGHT = 2
CATEGORY_SUMMARY_WEIGHT = 1


def normalize_title(title: str) -> str:
    """Lowercase and collapse whitespace for title-based dedupe."""
    return re.sub(r'\s+', ' ', (title or '').lower()).strip()


def dedupe_key(article: Article) -> str:
    """URL when present, otherwise the normalised title."""
    if article.url:
        return f"url:{article.url}"
    return f"title:{normalize_title(article.title)}"


def _published_sort_key(article: Article) -> float:
    if article.published_date is None:
        return float('-inf')
    try:
        return article.published_date.timestamp()
    except (OverflowError, OSError, ValueError):
        return float('-inf')


class RelevanceFilter:
    """
    Turns raw vector search output into a unique, denylist-clean ranking.

    All vocabularies are injected so alternate tables can be used in tests
    or per deployment.
    """

    def __init__(
        self,
        store: ArticleStore,
        denylist: Iterable[str] = (),
        category_terms: Optional[Dict[str, Sequence[str]]] = None,
        sparse_threshold: int = 2,
        scan_limit: int = 1000,
        normalization: float = 10.0
    ):
        """
        Initialize the relevance filter.

        Args:
            store: Article store used for the keyword fallback scan
            denylist: Terms that disqualify an article (matched lowercase)
            category_terms: Category key -> expansion terms
            sparse_threshold: Escalate to keyword search below this many results
            scan_limit: Maximum number of articles read by keyword search
            normalization: Divisor applied to raw keyword scores
        """
        self.store = store
        self.denylist = tuple(term.lower() for term in denylist if term)
        self.category_terms = {
            key.lower(): tuple(term.lower() for term in terms)
            for key, terms in (category_terms or {}).items()
        }
        self.sparse_threshold = sparse_threshold
        self.scan_limit = scan_limit
        self.normalization = normalization

    def is_denied(self, article: Article) -> bool:
        """True when title, summary or content contains a denylist term."""
        if not self.denylist:
            return False

        title = (article.title or '').lower()
        summary = (article.summary or '').lower()
        content = (article.content or '').lower()

        return any(
            term in title or term in summary or term in content
            for term in self.denylist
        )

    def deduplicate(self, results: Sequence[SearchResult]) -> List[SearchResult]:
        """Keep the first result per URL; input is already ranked."""
        seen = set()
        unique = []
        for result in results:
            key = dedupe_key(result.article)
            if key in seen:
                continue
            seen.add(key)
            unique.append(result)
        return unique

    def filter_denied(self, results: Sequence[SearchResult]) -> List[SearchResult]:
        """Drop results whose article matches the denylist."""
        kept = [result for result in results if not self.is_denied(result.article)]
        dropped = len(results) - len(kept)
        if dropped:
            logger.debug(f"Denylist removed {dropped} results")
        return kept

    def apply(
        self,
        results: Sequence[SearchResult],
        query: str,
        limit: int = 5
    ) -> List[SearchResult]:
        """
        Deduplicate, filter and, if needed, escalate to keyword search.

        Args:
            results: Raw vector search results, best first
            query: Effective query text (used for keyword search)
            limit: Maximum number of results to return

        Returns:
            Ranked list of unique, denylist-clean results (at most `limit`)
        """
        ranked, _ = self.rank(results, query, limit)
        return ranked

    def rank(
        self,
        results: Sequence[SearchResult],
        query: str,
        limit: int = 5
    ) -> Tuple[List[SearchResult], bool]:
        """Same as apply(), also reporting whether keyword search replaced the results."""
        if limit <= 0:
            return [], False

        unique = self.filter_denied(self.deduplicate(results))
        logger.info(f"After deduplication and filtering: {len(unique)} unique articles")

        if len(unique) < self.sparse_threshold:
            logger.info("Few unique results, trying keyword search")
            keyword_results = self.keyword_search(query, limit)
            if len(keyword_results) > len(unique):
                logger.info(f"Keyword search found {len(keyword_results)} results")
                return keyword_results[:limit], True

        return unique[:limit], False

    def _matched_categories(self, tokens: Sequence[str]) -> List[str]:
        """Category keys that any query token contains."""
        return [
            key for key in self.category_terms
            if any(key in token for token in tokens)
        ]

    def score_article(
        self,
        article: Article,
        tokens: Sequence[str],
        categories: Sequence[str] = ()
    ) -> int:
        """
        Raw keyword score of one article.

        +5 per token in the title, +3 in the summary, +1 in the content, and
        for each matched category +2/+1 per expansion term in title/summary.
        """
        title = (article.title or '').lower()
        summary = (article.summary or '').lower()
        content = (article.content or '').lower()

        score = 0
        for token in tokens:
            if token in title:
                score += TITLE_WEIGHT
            if token in summary:
                score += SUMMARY_WEIGHT
            if token in content:
                score += CONTENT_WEIGHT

        for key in categories:
            for term in self.category_terms[key]:
                if term in title:
                    score += CATEGORY_TITLE_WEIGHT
                if term in summary:
                    score += CATEGORY_SUMMARY_WEIGHT

        return score

    def keyword_search(self, query: str, limit: int = 5) -> List[SearchResult]:
        """
        Score stored articles by literal keyword matches.

        Ties are broken by published date (newest first), then by scan order.

        Args:
            query: Query text
            limit: Maximum number of results

        Returns:
            Keyword results with normalised scores, best first
        """
        tokens = [token for token in (query or '').lower().split() if token]
        if not tokens or limit <= 0:
            return []

        categories = self._matched_categories(tokens)
        articles = self.store.scan_all(self.scan_limit)

        scored = []
        seen = set()
        for article in articles:
            key = dedupe_key(article)
            if key in seen:
                continue

            score = self.score_article(article, tokens, categories)
            if score <= 0 or self.is_denied(article):
                continue

            seen.add(key)
            scored.append(SearchResult(
                article=article,
                score=score / self.normalization,
                origin='keyword'
            ))

        # Stable sorts: secondary key first, primary key last
        scored.sort(key=lambda r: _published_sort_key(r.article), reverse=True)
        scored.sort(key=lambda r: r.score, reverse=True)

        logger.debug(f"Keyword search scored {len(scored)} of {len(articles)} articles")
        return scored[:limit]
