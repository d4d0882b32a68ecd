"""
Shared fixtures and factories for the test suite.
"""

import itertools
from datetime import datetime, timezone
from unittest.mock import Mock

import numpy as np
import pytest

from newschat.models import Article, EmbeddingResult

TEST_DIMENSION = 8

_ids = itertools.count(1)


def make_article(
    title="Fed holds interest rates steady",
    content="The Federal Reserve kept its benchmark rate unchanged on Wednesday.",
    url=None,
    summary=None,
    published_date=None,
    source="bbc",
    article_id=None
):
    """Build an article with unique defaults for id and url."""
    n = next(_ids)
    return Article(
        id=article_id or f"article-{n}",
        title=title,
        content=content,
        url=f"https://news.example.com/{n}" if url is None else url,
        published_date=published_date or datetime(2024, 5, 1, tzinfo=timezone.utc),
        source=source,
        summary=content[:200] if summary is None else summary,
    )


def axis_vector(index, dimension=TEST_DIMENSION):
    """Unit vector along one axis."""
    vector = np.zeros(dimension, dtype=np.float32)
    vector[index % dimension] = 1.0
    return vector


@pytest.fixture
def article_factory():
    return make_article


@pytest.fixture
def fake_embedder():
    """Embedding client stub returning a fixed, non-degraded vector."""
    embedder = Mock()
    embedder.embed.return_value = EmbeddingResult.ok(axis_vector(0))
    return embedder
