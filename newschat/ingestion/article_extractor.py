"""
Article Extractor Module

Fetches the full text of a news article page. Tries newspaper3k first and
falls back to a requests + BeautifulSoup scrape of common article body
selectors. Retries with exponential backoff on network errors.
"""

import re
import time
import logging
from typing import Optional
from urllib.parse import urlparse

import requests
from bs4 import BeautifulSoup
from newspaper import Article as NewspaperArticle

logger = logging.getLogger(__name__)

CONTENT_SELECTORS = [
    'article .story-body',
    'article .article-body',
    '.article-content',
    '.entry-content',
    'main article',
    '.story-content',
]


class ArticleExtractor:
    """
    Extracts article body text from news URLs.

    Features:
    - newspaper3k extraction with selector-based fallback
    - Retry logic with exponential backoff
    - User agent rotation
    - Text cleaning and normalization
    """

    def __init__(
        self,
        timeout: int = 30,
        max_retries: int = 2,
        min_text_length: int = 50
    ):
        """
        Initialize the article extractor.

        Args:
            timeout: Request timeout in seconds
            max_retries: Maximum attempts per URL
            min_text_length: Extracted text shorter than this is discarded
        """
        self.timeout = timeout
        self.max_retries = max_retries
        self.min_text_length = min_text_length

        # User agents for rotation
        self.user_agents = [
            'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36',
            'Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36',
            'Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36',
        ]
        self.current_user_agent_idx = 0

    def _get_user_agent(self) -> str:
        """Get next user agent from rotation."""
        user_agent = self.user_agents[self.current_user_agent_idx]
        self.current_user_agent_idx = (self.current_user_agent_idx + 1) % len(self.user_agents)
        return user_agent

    @staticmethod
    def validate_url(url: str) -> bool:
        """Check that a URL has a scheme and host."""
        try:
            result = urlparse(url)
        except ValueError:
            return False
        return bool(result.scheme and result.netloc)

    @staticmethod
    def clean_text(text: str) -> str:
        """
        Strip markup and normalize whitespace.

        Args:
            text: Raw text, possibly containing HTML

        Returns:
            Cleaned text
        """
        if not text:
            return ""

        text = BeautifulSoup(text, 'html.parser').get_text(' ')
        text = re.sub(r'\s+', ' ', text)
        return text.strip()

    def _extract_with_newspaper(self, url: str) -> str:
        """Extract article text using newspaper3k."""
        article = NewspaperArticle(url, request_timeout=self.timeout)
        article.download()
        article.parse()
        return article.text or ""

    def _extract_with_selectors(self, url: str) -> str:
        """Scrape the page and take the longest matching article body."""
        response = requests.get(
            url,
            timeout=self.timeout,
            headers={'User-Agent': self._get_user_agent()}
        )
        response.raise_for_status()

        soup = BeautifulSoup(response.text, 'html.parser')
        best = ""
        for selector in CONTENT_SELECTORS:
            for element in soup.select(selector):
                text = element.get_text(' ', strip=True)
                if len(text) > len(best):
                    best = text
        return best

    def extract_text(self, url: str) -> Optional[str]:
        """
        Extract the article body from a URL.

        Args:
            url: Article URL

        Returns:
            Cleaned article text, or None if extraction failed
        """
        if not self.validate_url(url):
            logger.warning(f"Invalid URL format: {url}")
            return None

        for attempt in range(self.max_retries):
            try:
                text = self.clean_text(self._extract_with_newspaper(url))
                if len(text) < self.min_text_length:
                    text = self.clean_text(self._extract_with_selectors(url))

                if len(text) >= self.min_text_length:
                    logger.debug(f"Extracted {len(text)} chars from {url}")
                    return text

                logger.info(f"No usable article body found at {url}")
                return None

            except requests.exceptions.HTTPError as e:
                logger.warning(f"HTTP error extracting {url}: {e}")
                return None

            except Exception as e:
                logger.warning(f"Extraction error on attempt {attempt + 1}/{self.max_retries} for {url}: {e}")
                if attempt < self.max_retries - 1:
                    time.sleep(2 ** attempt)

        logger.error(f"Failed to extract article from {url} after {self.max_retries} attempts")
        return None
