"""
News Ingestion Service

Fetches RSS/Atom feeds, turns entries into articles, embeds them and
writes them to the article store. One failing feed or article is logged
and skipped; it never aborts the batch.
"""

import logging
import re
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import urlparse

import feedparser
from tqdm import tqdm

from ..embeddings.ollama_service import OllamaEmbeddingService
from ..errors import StoreUnavailable
from ..models import Article
from ..storage.vector_store import ArticleStore
from .article_extractor import ArticleExtractor

logger = logging.getLogger(__name__)

# Feed text shorter than this triggers a page scrape
SCRAPE_BELOW_CHARS = 200


def extract_source(url: str) -> str:
    """Short source label from the URL host, e.g. 'bbc' for feeds.bbc.co.uk."""
    try:
        host = urlparse(url).hostname or ''
    except ValueError:
        return 'unknown'
    if not host:
        return 'unknown'
    if host.startswith('www.'):
        host = host[4:]
    return host.split('.')[0] or 'unknown'


def make_summary(content: str, length: int = 200) -> str:
    """First `length` characters, cut back to a word boundary, plus '...'."""
    excerpt = content[:length]
    if len(content) > length:
        excerpt = re.sub(r'\s+\S*$', '', excerpt)
    return excerpt + '...'


def _entry_date(entry: Any) -> datetime:
    parsed = entry.get('published_parsed') or entry.get('updated_parsed')
    if parsed:
        return datetime(*parsed[:6], tzinfo=timezone.utc)
    return datetime.now(timezone.utc)


class NewsService:
    """
    Feed ingestion into the article store.

    Articles get a fresh UUID id; URLs already present in the store are
    skipped so each URL is stored at most once.
    """

    def __init__(
        self,
        embedding_service: OllamaEmbeddingService,
        store: ArticleStore,
        extractor: Optional[ArticleExtractor] = None,
        feeds: Optional[Iterable[str]] = None,
        items_per_feed: int = 10,
        min_content_length: int = 50,
        summary_length: int = 200
    ):
        """
        Initialize the news service.

        Args:
            embedding_service: Client used to embed articles
            store: Destination article store
            extractor: Page extractor for entries with short feed text
            feeds: Default feed URLs for refresh()
            items_per_feed: Maximum entries taken from each feed
            min_content_length: Articles with less content are skipped
            summary_length: Characters kept in the derived summary
        """
        self.embedding_service = embedding_service
        self.store = store
        self.extractor = extractor or ArticleExtractor(min_text_length=min_content_length)
        self.feeds = list(feeds or [])
        self.items_per_feed = items_per_feed
        self.min_content_length = min_content_length
        self.summary_length = summary_length

    def fetch_feed(self, feed_url: str) -> List[Dict[str, Any]]:
        """
        Parse one feed.

        Returns:
            Feed entries (at most items_per_feed); empty on failure
        """
        logger.info(f"Fetching from {feed_url}")
        try:
            feed = feedparser.parse(feed_url)
        except Exception as e:
            logger.error(f"Error fetching from {feed_url}: {e}")
            return []

        if feed.bozo and not feed.entries:
            logger.warning(f"Feed {feed_url} has parsing issues and no entries")
            return []

        return list(feed.entries[:self.items_per_feed])

    def build_article(self, entry: Dict[str, Any]) -> Optional[Article]:
        """
        Turn a feed entry into an article.

        Uses the feed text, scraping the page when the feed text is short.

        Returns:
            The article, or None if it has no link or too little content
        """
        link = entry.get('link', '')
        if not link:
            return None

        content = ''
        if entry.get('content'):
            content = entry['content'][0].get('value', '')
        content = self.extractor.clean_text(content or entry.get('summary', ''))

        if len(content) < SCRAPE_BELOW_CHARS:
            scraped = self.extractor.extract_text(link)
            if scraped and len(scraped) > len(content):
                content = scraped

        if len(content) < self.min_content_length:
            logger.debug(f"Skipping {link}: insufficient content")
            return None

        return Article(
            id=str(uuid.uuid4()),
            title=self.extractor.clean_text(entry.get('title', '')) or 'Untitled',
            content=content,
            url=link,
            published_date=_entry_date(entry),
            source=extract_source(link),
            summary=make_summary(content, self.summary_length),
        )

    def ingest(self, articles: List[Article], show_progress: bool = False) -> Dict[str, Any]:
        """
        Embed and store articles.

        Args:
            articles: Articles to store
            show_progress: Show a progress bar

        Returns:
            Summary with total, stored, skipped, failed, degraded and
            processing_time
        """
        start_time = time.time()
        summary = {'total': len(articles), 'stored': 0, 'skipped': 0, 'failed': 0, 'degraded': 0}
        seen_urls = set()

        iterator = tqdm(articles, desc="Storing articles") if show_progress else articles
        for article in iterator:
            if article.url in seen_urls or self.store.contains_url(article.url):
                summary['skipped'] += 1
                continue

            embedding = self.embedding_service.embed(f"{article.title}\n\n{article.content}")
            if embedding.degraded:
                # Fallback vectors are not stored; the URL stays eligible for the next refresh
                logger.warning(f"Skipping {article.url}: embedding service unavailable")
                summary['degraded'] += 1
                summary['failed'] += 1
                continue

            try:
                self.store.upsert(article, embedding.vector)
                summary['stored'] += 1
                seen_urls.add(article.url)
            except (StoreUnavailable, ValueError) as e:
                logger.error(f"Error storing article {article.url}: {e}")
                summary['failed'] += 1

        summary['processing_time'] = time.time() - start_time
        logger.info(
            f"Stored {summary['stored']} of {summary['total']} articles "
            f"({summary['skipped']} skipped, {summary['failed']} failed)"
        )
        return summary

    def refresh(
        self,
        feeds: Optional[Iterable[str]] = None,
        show_progress: bool = False
    ) -> Dict[str, Any]:
        """
        Fetch all feeds and ingest their articles.

        Args:
            feeds: Feed URLs (default: the configured feeds)
            show_progress: Show a progress bar while storing

        Returns:
            Ingestion summary plus the number of feeds processed
        """
        feed_urls = list(feeds) if feeds is not None else self.feeds
        articles = []

        for feed_url in feed_urls:
            for entry in self.fetch_feed(feed_url):
                try:
                    article = self.build_article(entry)
                except Exception as e:
                    logger.error(f"Error processing entry from {feed_url}: {e}")
                    continue
                if article:
                    articles.append(article)

        logger.info(f"Collected {len(articles)} articles from {len(feed_urls)} feeds")
        summary = self.ingest(articles, show_progress=show_progress)
        summary['feeds'] = len(feed_urls)
        return summary
