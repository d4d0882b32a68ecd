"""
Data Model

Records shared by the ingestion, storage and retrieval layers:
articles, embedding results, conversation turns and search results.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Union

import numpy as np


@dataclass(frozen=True)
class Article:
    """
    A news article as stored in the vector index.

    Immutable once created. `url` is the deduplication key and `id` is an
    opaque token that is never reused.
    """
    id: str
    title: str
    content: str
    url: str
    published_date: Optional[datetime] = None
    source: str = "unknown"
    summary: str = ""

    def to_payload(self) -> Dict[str, Any]:
        """Convert to the payload dictionary kept next to the vector."""
        return {
            'title': self.title,
            'content': self.content,
            'url': self.url,
            'published_date': self.published_date.isoformat() if self.published_date else None,
            'source': self.source,
            'summary': self.summary,
        }

    @classmethod
    def from_payload(cls, article_id: str, payload: Dict[str, Any]) -> 'Article':
        """Rebuild an article from a stored payload."""
        published = payload.get('published_date')
        if isinstance(published, str):
            try:
                published = datetime.fromisoformat(published)
            except ValueError:
                published = None

        return cls(
            id=article_id,
            title=payload.get('title') or '',
            content=payload.get('content') or '',
            url=payload.get('url') or '',
            published_date=published,
            source=payload.get('source') or 'unknown',
            summary=payload.get('summary') or '',
        )


@dataclass(frozen=True)
class EmbeddingResult:
    """
    Outcome of an embedding request.

    `degraded` is True when the remote service failed and the vector was
    derived locally from the text hash. Such vectors are stable for the
    same text but carry no semantic meaning.
    """
    vector: np.ndarray
    degraded: bool = False

    @classmethod
    def ok(cls, vector: np.ndarray) -> 'EmbeddingResult':
        return cls(vector=vector, degraded=False)

    @classmethod
    def fallback(cls, vector: np.ndarray) -> 'EmbeddingResult':
        return cls(vector=vector, degraded=True)


@dataclass(frozen=True)
class ConversationTurn:
    """One message of a chat session."""
    role: str
    content: str
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())

    @classmethod
    def from_dict(cls, data: Dict[str, str]) -> 'ConversationTurn':
        return cls(
            role=data.get('role', ''),
            content=data.get('content', ''),
            timestamp=data.get('timestamp', ''),
        )


# History entries may be turns or the plain dicts the session manager keeps
HistoryEntry = Union[ConversationTurn, Dict[str, str]]


def as_turn(entry: HistoryEntry) -> ConversationTurn:
    if isinstance(entry, ConversationTurn):
        return entry
    return ConversationTurn.from_dict(entry)


@dataclass(frozen=True)
class SearchResult:
    """A ranked candidate article for a single retrieval call."""
    article: Article
    score: float
    origin: str = "vector"

    @property
    def url(self) -> str:
        return self.article.url
