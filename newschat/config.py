"""
Centralized Configuration Module

Provides a single source of truth for all system configuration parameters.
Loads settings from environment variables with sensible defaults and validation.
Vocabulary tables (denylist, category expansions, follow-up reference words)
live here too so they can be swapped without touching the retrieval code.
"""

import os
from dataclasses import dataclass, field, asdict
from typing import Dict, Any, List, Optional
from urllib.parse import urlparse
from dotenv import load_dotenv

from .errors import ConfigValidationError

# Load environment variables
load_dotenv()


DEFAULT_DENYLIST: List[str] = [
    'bird', 'conservation', 'wildlife', 'nature', 'environment', 'climate',
    'animal', 'species', 'trapper', 'predator', 'nest', 'egg', 'feather',
    'wing', 'beak', 'new zealand', 'rare birds', 'backyard trappers',
    'invasive predators', 'save its rare', 'nation of backyard',
]

DEFAULT_CATEGORY_TERMS: Dict[str, List[str]] = {
    'tech': [
        'technology', 'nvidia', 'tiktok', 'ai', 'artificial intelligence',
        'software', 'digital', 'computer', 'startup', 'innovation',
        'tech companies', 'smartphone', 'app', 'platform', 'cyber', 'data',
        'cloud', 'blockchain', 'crypto', 'gaming', 'mobile', 'internet',
        'web', 'coding', 'programming', 'developer', 'engineer',
    ],
    'indian': [
        'india', 'indian', 'delhi', 'mumbai', 'bangalore', 'hyderabad',
        'chennai', 'pune', 'gurgaon', 'noida', 'indian companies',
        'indian startups', 'bharat', 'hindustan',
    ],
    'economy': [
        'business', 'financial', 'economic', 'fed', 'unemployment', 'trade',
        'market', 'economy', 'finance', 'investment', 'revenue', 'profit',
        'stock', 'banking',
    ],
    'politics': [
        'government', 'election', 'trump', 'biden', 'congress', 'senate',
        'political', 'policy', 'administration', 'democrat', 'republican',
        'vote', 'campaign',
    ],
}

DEFAULT_REFERENCE_WORDS: List[str] = [
    'he', 'she', 'it', 'they', 'why', 'how', 'when', 'where', 'what', 'who',
]

DEFAULT_NEWS_FEEDS: List[str] = [
    'https://feeds.bbci.co.uk/news/rss.xml',
    'https://rss.nytimes.com/services/xml/rss/nyt/HomePage.xml',
    'https://feeds.washingtonpost.com/rss/world',
    'https://timesofindia.indiatimes.com/rssfeedstopstories.cms',
    'https://economictimes.indiatimes.com/tech/rssfeeds/13357270.cms',
]


@dataclass
class Config:
    """
    Centralized configuration for the news chat system.

    All configuration parameters are loaded from environment variables
    with sensible defaults. Validation is performed on initialization.
    """

    # Ollama Settings
    ollama_model: str = field(default="nomic-embed-text")
    ollama_base_url: str = field(default="http://localhost:11434")
    ollama_timeout: int = field(default=30)
    llm_model: str = field(default="llama3.1:latest")
    llm_temperature: float = field(default=0.7)

    # Embedding Parameters
    embedding_dimension: int = field(default=768)
    enable_disk_cache: bool = field(default=True)
    cache_dir: str = field(default="data/embeddings/cache")

    # Retrieval Settings
    top_k_default: int = field(default=5)
    keyword_scan_limit: int = field(default=1000)
    keyword_score_normalization: float = field(default=10.0)
    sparse_result_threshold: int = field(default=2)
    relevance_denylist: List[str] = field(default_factory=lambda: list(DEFAULT_DENYLIST))
    category_terms: Dict[str, List[str]] = field(
        default_factory=lambda: {k: list(v) for k, v in DEFAULT_CATEGORY_TERMS.items()}
    )
    followup_reference_words: List[str] = field(default_factory=lambda: list(DEFAULT_REFERENCE_WORDS))

    # Conversation Settings
    max_history_turns: int = field(default=10)

    # Ingestion Settings
    article_timeout: int = field(default=30)
    article_min_text_length: int = field(default=50)
    summary_length: int = field(default=200)
    news_feeds: List[str] = field(default_factory=lambda: list(DEFAULT_NEWS_FEEDS))

    # Storage Paths
    vector_index_path: str = field(default="data/embeddings/articles.index")

    def __post_init__(self):
        """Load configuration from environment and validate."""
        self._load_from_environment()
        self._validate()

    def _load_from_environment(self):
        """Load configuration from environment variables."""
        # Ollama Settings
        self.ollama_model = self._get_env_str('OLLAMA_MODEL', self.ollama_model)
        self.ollama_base_url = self._get_env_str('OLLAMA_BASE_URL', self.ollama_base_url)
        self.ollama_timeout = self._get_env_int('OLLAMA_TIMEOUT', self.ollama_timeout)
        self.llm_model = self._get_env_str('LLM_MODEL', self.llm_model)
        self.llm_temperature = self._get_env_float('LLM_TEMPERATURE', self.llm_temperature)

        # Embedding Parameters
        self.embedding_dimension = self._get_env_int('EMBEDDING_DIMENSION', self.embedding_dimension)
        self.enable_disk_cache = self._get_env_bool('ENABLE_DISK_CACHE', self.enable_disk_cache)
        self.cache_dir = self._get_env_path('CACHE_DIR', self.cache_dir)

        # Retrieval Settings
        self.top_k_default = self._get_env_int('TOP_K_DEFAULT', self.top_k_default)
        self.keyword_scan_limit = self._get_env_int('KEYWORD_SCAN_LIMIT', self.keyword_scan_limit)
        self.keyword_score_normalization = self._get_env_float(
            'KEYWORD_SCORE_NORMALIZATION', self.keyword_score_normalization
        )
        self.sparse_result_threshold = self._get_env_int('SPARSE_RESULT_THRESHOLD', self.sparse_result_threshold)
        self.relevance_denylist = self._get_env_list('RELEVANCE_DENYLIST', self.relevance_denylist)
        self.followup_reference_words = self._get_env_list(
            'FOLLOWUP_REFERENCE_WORDS', self.followup_reference_words
        )

        # Conversation Settings
        self.max_history_turns = self._get_env_int('MAX_HISTORY_TURNS', self.max_history_turns)

        # Ingestion Settings
        self.article_timeout = self._get_env_int('ARTICLE_TIMEOUT', self.article_timeout)
        self.article_min_text_length = self._get_env_int('ARTICLE_MIN_TEXT_LENGTH', self.article_min_text_length)
        self.summary_length = self._get_env_int('SUMMARY_LENGTH', self.summary_length)
        self.news_feeds = self._get_env_list('NEWS_FEEDS', self.news_feeds, lowercase=False)

        # Storage Paths
        self.vector_index_path = self._get_env_path('VECTOR_INDEX_PATH', self.vector_index_path)

    def _get_env_str(self, key: str, default: str) -> str:
        """Get string value from environment."""
        value = os.getenv(key, default)
        if isinstance(value, str):
            value = value.strip()
        return value

    def _get_env_int(self, key: str, default: int) -> int:
        """Get integer value from environment."""
        value = os.getenv(key)
        if value is None:
            return default

        try:
            return int(value)
        except ValueError:
            raise ConfigValidationError(
                f"Invalid integer value for {key}: '{value}'"
            )

    def _get_env_float(self, key: str, default: float) -> float:
        """Get float value from environment."""
        value = os.getenv(key)
        if value is None:
            return default

        try:
            return float(value)
        except ValueError:
            raise ConfigValidationError(
                f"Invalid float value for {key}: '{value}'"
            )

    def _get_env_bool(self, key: str, default: bool) -> bool:
        """Get boolean value from environment."""
        value = os.getenv(key)
        if value is None:
            return default

        value = value.lower().strip()
        if value in ('true', '1', 'yes', 'on'):
            return True
        elif value in ('false', '0', 'no', 'off'):
            return False
        else:
            return default

    def _get_env_path(self, key: str, default: str) -> str:
        """Get path value from environment with expansion."""
        value = os.getenv(key, default)
        if isinstance(value, str):
            value = value.strip()
            # Expand ~ to home directory
            value = os.path.expanduser(value)
        return value

    def _get_env_list(self, key: str, default: List[str], lowercase: bool = True) -> List[str]:
        """Get comma-separated list from environment."""
        value = os.getenv(key)
        if value is None:
            return default

        items = [item.strip() for item in value.split(',')]
        if lowercase:
            items = [item.lower() for item in items]
        return [item for item in items if item]

    def _validate(self):
        """Validate configuration parameters."""
        # Validate non-empty strings
        if not self.ollama_model:
            raise ConfigValidationError("ollama_model cannot be empty")
        if not self.llm_model:
            raise ConfigValidationError("llm_model cannot be empty")

        # Validate positive integers
        positive_int_fields = [
            ('embedding_dimension', self.embedding_dimension),
            ('top_k_default', self.top_k_default),
            ('keyword_scan_limit', self.keyword_scan_limit),
            ('max_history_turns', self.max_history_turns),
            ('article_min_text_length', self.article_min_text_length),
            ('summary_length', self.summary_length),
        ]

        for field_name, value in positive_int_fields:
            if value <= 0:
                raise ConfigValidationError(
                    f"{field_name} must be positive, got {value}"
                )

        if self.sparse_result_threshold < 0:
            raise ConfigValidationError(
                f"sparse_result_threshold must be non-negative, got {self.sparse_result_threshold}"
            )

        if self.keyword_score_normalization <= 0:
            raise ConfigValidationError(
                f"keyword_score_normalization must be positive, got {self.keyword_score_normalization}"
            )

        if not 0.0 <= self.llm_temperature <= 2.0:
            raise ConfigValidationError(
                f"llm_temperature must be between 0 and 2, got {self.llm_temperature}"
            )

        # Validate timeouts (at least 1 second)
        if self.ollama_timeout < 1:
            raise ConfigValidationError(
                f"ollama_timeout must be at least 1, got {self.ollama_timeout}"
            )
        if self.article_timeout < 1:
            raise ConfigValidationError(
                f"article_timeout must be at least 1, got {self.article_timeout}"
            )

        # Vocabulary tables are matched in lowercase
        for term in self.relevance_denylist:
            if term != term.lower():
                raise ConfigValidationError(
                    f"relevance_denylist terms must be lowercase, got '{term}'"
                )

        # Validate URL format
        try:
            parsed = urlparse(self.ollama_base_url)
            if not all([parsed.scheme, parsed.netloc]):
                raise ValueError("Missing scheme or netloc")
        except Exception:
            raise ConfigValidationError(
                f"Invalid URL for ollama_base_url: {self.ollama_base_url}"
            )

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return asdict(self)

    def update(self, **kwargs):
        """
        Update configuration values with validation.

        Args:
            **kwargs: Configuration parameters to update

        Raises:
            ConfigValidationError: If validation fails
        """
        # Store original values for rollback
        original_values = {}

        try:
            for key, value in kwargs.items():
                if not hasattr(self, key):
                    raise ConfigValidationError(f"Unknown configuration parameter: {key}")
                original_values[key] = getattr(self, key)
                setattr(self, key, value)

            self._validate()

        except Exception:
            # Rollback on validation failure
            for key, value in original_values.items():
                setattr(self, key, value)
            raise

    def get_retrieval_config(self) -> Dict[str, Any]:
        """Get retrieval-related configuration."""
        return {
            'top_k_default': self.top_k_default,
            'keyword_scan_limit': self.keyword_scan_limit,
            'keyword_score_normalization': self.keyword_score_normalization,
            'sparse_result_threshold': self.sparse_result_threshold,
            'denylist_size': len(self.relevance_denylist),
            'categories': sorted(self.category_terms),
        }


# Singleton instance
_config_instance: Optional[Config] = None


def get_config() -> Config:
    """
    Get the global configuration instance (singleton pattern).

    Returns:
        Config: Global configuration instance
    """
    global _config_instance
    if _config_instance is None:
        _config_instance = Config()
    return _config_instance


def reset_config():
    """Reset the global configuration instance."""
    global _config_instance
    _config_instance = None
