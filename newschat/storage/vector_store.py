"""
Article Store with FAISS Indexing

Vector index holding one entry per ingested article: the article vector plus
its full metadata payload. Vectors are L2-normalised and kept in an inner
product index, so search scores are cosine similarities, reported on a 0..1
scale (higher = more similar).

Searches degrade to an empty result set when the index is missing or broken;
writes raise StoreUnavailable so ingestion can decide whether to skip.
"""

import os
import pickle
import logging
import threading
from typing import List, Dict, Optional, Any

import faiss
import numpy as np

from ..errors import StoreUnavailable
from ..models import Article, SearchResult

logger = logging.getLogger(__name__)


class ArticleStore:
    """
    Article vector store using an exact FAISS inner product index.

    Features:
    - Idempotent upsert keyed by article id (last write wins)
    - Cosine similarity search converted to a 0..1 score
    - Bounded full scan for keyword fallback search
    - Atomic save/load of index and payloads
    - Reentrant lock so concurrent queries and ingestion are safe
    """

    def __init__(
        self,
        index_path: Optional[str] = None,
        dimension: int = 768
    ):
        """
        Initialize the article store.

        Args:
            index_path: Path to save/load the FAISS index (None = memory only)
            dimension: Dimension of embedding vectors (default: 768)
        """
        self.index_path = index_path
        self.dimension = dimension

        self._lock = threading.RLock()

        # Payload storage keyed by internal integer id, in insertion order
        self._entries: Dict[int, Dict[str, Any]] = {}
        self._id_map: Dict[str, int] = {}
        self._next_id = 0

        self.index = None
        self._initialize_index()

        # Try to load existing index
        if self.index_path and os.path.exists(self.index_path):
            self.load_index()

    def _initialize_index(self) -> None:
        """Initialize a new, empty inner product index with id mapping."""
        self.index = faiss.IndexIDMap2(faiss.IndexFlatIP(self.dimension))
        self._entries = {}
        self._id_map = {}
        self._next_id = 0

    def _prepare_vector(self, vector) -> np.ndarray:
        """Convert to a (1, dimension) float32 row normalised to unit length."""
        array = np.asarray(vector, dtype=np.float32).reshape(1, -1)
        if array.shape[1] != self.dimension:
            raise ValueError(
                f"Vector dimension ({array.shape[1]}) must match "
                f"index dimension ({self.dimension})"
            )
        norm = np.linalg.norm(array)
        if norm > 0:
            array = array / norm
        return np.ascontiguousarray(array, dtype=np.float32)

    def upsert(self, article: Article, vector) -> None:
        """
        Insert or replace the entry for `article.id`.

        Args:
            article: Article to store
            vector: Embedding vector for the article

        Raises:
            ValueError: If the vector dimension doesn't match the index
            StoreUnavailable: If the index cannot be written
        """
        row = self._prepare_vector(vector)

        with self._lock:
            if self.index is None:
                raise StoreUnavailable("Article store is not initialized")

            internal_id = self._id_map.get(article.id)
            try:
                if internal_id is None:
                    internal_id = self._next_id
                    self._next_id += 1
                else:
                    self.index.remove_ids(np.array([internal_id], dtype=np.int64))

                self.index.add_with_ids(row, np.array([internal_id], dtype=np.int64))
            except RuntimeError as e:
                raise StoreUnavailable(f"Failed to write article {article.id}: {e}")

            self._id_map[article.id] = internal_id
            self._entries[internal_id] = {
                'id': article.id,
                'payload': article.to_payload(),
            }

            assert self.index.ntotal == len(self._entries), \
                "CRITICAL: Payloads out of sync with index"

        logger.debug(f"Upserted article {article.id}: {article.title[:60]}")

    def vector_search(self, query_vector, limit: int = 5) -> List[SearchResult]:
        """
        Find the articles most similar to a query vector.

        Args:
            query_vector: Query embedding
            limit: Maximum number of results

        Returns:
            Search results ordered by descending score. Empty when the store
            is empty, unavailable, or the query cannot be used.
        """
        if limit <= 0:
            return []

        try:
            query = self._prepare_vector(query_vector)
        except ValueError as e:
            logger.warning(f"Rejected query vector: {e}")
            return []

        with self._lock:
            if self.index is None:
                logger.warning("Article store unavailable, returning no results")
                return []

            if self.index.ntotal == 0:
                return []

            try:
                actual_k = min(limit, self.index.ntotal)
                similarities, ids = self.index.search(query, actual_k)
            except RuntimeError as e:
                logger.warning(f"Vector search failed, returning no results: {e}")
                return []

            results = []
            for similarity, internal_id in zip(similarities[0], ids[0]):
                entry = self._entries.get(int(internal_id))
                if internal_id < 0 or entry is None:
                    continue
                score = min(1.0, max(0.0, (float(similarity) + 1.0) / 2.0))
                results.append(SearchResult(
                    article=Article.from_payload(entry['id'], entry['payload']),
                    score=score,
                    origin='vector'
                ))

        logger.debug(f"Vector search returned {len(results)} results")
        return results

    def scan_all(self, limit: int = 1000) -> List[Article]:
        """
        Read stored articles without ranking, in insertion order.

        Args:
            limit: Maximum number of articles to read

        Returns:
            Up to `limit` articles; empty when the store is unavailable
        """
        with self._lock:
            if self.index is None:
                logger.warning("Article store unavailable, scan returns nothing")
                return []

            articles = []
            for entry in self._entries.values():
                if len(articles) >= limit:
                    break
                articles.append(Article.from_payload(entry['id'], entry['payload']))

        return articles

    def get(self, article_id: str) -> Optional[Article]:
        """Fetch a stored article by id."""
        with self._lock:
            internal_id = self._id_map.get(article_id)
            if internal_id is None:
                return None
            entry = self._entries[internal_id]
            return Article.from_payload(entry['id'], entry['payload'])

    def contains_url(self, url: str) -> bool:
        """Check whether an article with this URL is already stored."""
        with self._lock:
            return any(entry['payload'].get('url') == url for entry in self._entries.values())

    def clear(self) -> None:
        """
        Drop all vectors and payloads, resetting to empty state.
        """
        with self._lock:
            self._initialize_index()
        logger.info("Cleared article store")

    def count(self) -> int:
        """
        Get the total number of stored articles.

        Returns:
            Number of vectors
        """
        with self._lock:
            return self.index.ntotal if self.index is not None else 0

    def save_index(self, path: Optional[str] = None) -> None:
        """
        Save FAISS index and payloads to disk with atomic write.

        Args:
            path: Path to save index (default: self.index_path)

        Raises:
            StoreUnavailable: If there is no index or no path to save to
        """
        save_path = path or self.index_path
        if not save_path:
            raise StoreUnavailable("No index path configured")

        directory = os.path.dirname(save_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        with self._lock:
            if self.index is None:
                raise StoreUnavailable("Article store is not initialized")

            faiss.write_index(self.index, save_path)

            metadata_path = save_path + '.metadata'
            temp_metadata_path = metadata_path + '.tmp'
            state = {
                'entries': self._entries,
                'id_map': self._id_map,
                'next_id': self._next_id,
            }

            try:
                with open(temp_metadata_path, 'wb') as f:
                    pickle.dump(state, f, protocol=pickle.HIGHEST_PROTOCOL)

                # Atomic rename
                os.replace(temp_metadata_path, metadata_path)

            except Exception:
                if os.path.exists(temp_metadata_path):
                    os.remove(temp_metadata_path)
                raise

        logger.info(f"Saved {self.count()} articles to {save_path}")

    def load_index(self, path: Optional[str] = None) -> bool:
        """
        Load FAISS index and payloads from disk.

        Args:
            path: Path to load index from (default: self.index_path)

        Returns:
            True if successful, False otherwise
        """
        load_path = path or self.index_path
        if not load_path or not os.path.exists(load_path):
            return False

        with self._lock:
            try:
                loaded_index = faiss.read_index(load_path)

                metadata_path = load_path + '.metadata'
                if os.path.exists(metadata_path):
                    with open(metadata_path, 'rb') as f:
                        state = pickle.load(f)
                else:
                    state = {'entries': {}, 'id_map': {}, 'next_id': 0}

                if loaded_index.ntotal != len(state['entries']):
                    raise ValueError(
                        f"Index has {loaded_index.ntotal} vectors but "
                        f"payloads have {len(state['entries'])} entries"
                    )

                if loaded_index.d != self.dimension:
                    raise ValueError(
                        f"Index dimension {loaded_index.d} does not match {self.dimension}"
                    )

                self.index = loaded_index
                self._entries = state['entries']
                self._id_map = state['id_map']
                self._next_id = state['next_id']

            except Exception as e:
                logger.error(f"Failed to load index from {load_path}: {e}")
                self._initialize_index()
                return False

        logger.info(f"Loaded {self.count()} articles from {load_path}")
        return True

    def get_stats(self) -> Dict:
        """
        Get statistics about the article store.

        Returns:
            Dictionary with statistics
        """
        return {
            'total_articles': self.count(),
            'dimension': self.dimension,
            'index_type': 'IndexIDMap2(IndexFlatIP)',
            'index_path': self.index_path,
            'available': self.index is not None,
        }

    def __repr__(self) -> str:
        """String representation of the article store."""
        return f"ArticleStore(articles={self.count()}, dimension={self.dimension})"
