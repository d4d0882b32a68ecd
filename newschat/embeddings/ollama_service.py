"""
Ollama Embedding Service

Turns text into fixed-length vectors through Ollama's embeddings API.
Provides:
- Connection and model verification for startup checks
- A per-model embedding cache (in-memory, optionally mirrored to disk)
- A deterministic local fallback when the remote service fails, so callers
  always receive a usable vector of the right dimensionality
"""

import json
import hashlib
import logging
import threading
import time
from pathlib import Path
from typing import List, Dict, Optional, Callable
from dataclasses import dataclass, asdict
from datetime import datetime

import numpy as np
import requests

from ..errors import (
    EmbeddingDimensionError,
    OllamaConnectionError,
    OllamaModelError,
)
from ..models import EmbeddingResult

logger = logging.getLogger(__name__)

CACHE_INDEX_FILE = 'cache_index.json'


@dataclass
class CacheStats:
    """Request counters for the embedding client."""
    hits: int = 0
    misses: int = 0
    total_requests: int = 0
    cache_size: int = 0
    degraded: int = 0

    @property
    def hit_rate(self) -> float:
        return self.hits / self.total_requests if self.total_requests > 0 else 0.0

    def to_dict(self) -> Dict:
        return {**asdict(self), 'hit_rate': self.hit_rate}


def fallback_embedding(text: str, dimensions: int = 768) -> np.ndarray:
    """
    Derive a unit vector from the SHA-256 of the text.

    The same text always maps to the same vector. The vector has no semantic
    meaning; it only keeps the retrieval pipeline running in degraded mode.
    """
    digest = hashlib.sha256(text.encode('utf-8')).digest()
    rng = np.random.default_rng(int.from_bytes(digest[:8], 'big'))
    vector = rng.standard_normal(dimensions).astype(np.float32)
    norm = np.linalg.norm(vector)
    if norm > 0:
        vector /= norm
    return vector


class EmbeddingCache:
    """
    Embeddings keyed by model and text hash.

    With a directory, every entry is also written as `<key>.npy` and listed
    in a JSON index, so vectors survive restarts. Entries recorded for a
    different model or dimension are ignored on load.
    """

    def __init__(self, model: str, dimensions: int, directory: Optional[Path] = None):
        self.model = model
        self.dimensions = dimensions
        self.directory = directory
        self._vectors: Dict[str, np.ndarray] = {}
        self._lock = threading.Lock()

        if self.directory is not None:
            self.directory.mkdir(parents=True, exist_ok=True)
            self._load()

    def key(self, text: str) -> str:
        return hashlib.sha256(f"{self.model}\0{text}".encode('utf-8')).hexdigest()

    def __len__(self) -> int:
        return len(self._vectors)

    def get(self, key: str) -> Optional[np.ndarray]:
        with self._lock:
            return self._vectors.get(key)

    def put(self, key: str, vector: np.ndarray) -> None:
        with self._lock:
            self._vectors[key] = vector
        if self.directory is not None:
            self._persist(key, vector)

    def clear(self, disk: bool = False) -> None:
        with self._lock:
            self._vectors.clear()

        if disk and self.directory is not None:
            for cache_file in self.directory.glob('*.npy'):
                cache_file.unlink()
            index_path = self.directory / CACHE_INDEX_FILE
            if index_path.exists():
                index_path.unlink()
            logger.info("Cleared disk cache")

    def _read_index(self) -> Dict[str, Dict]:
        index_path = self.directory / CACHE_INDEX_FILE
        if not index_path.exists():
            return {}
        with open(index_path, 'r') as f:
            return json.load(f)

    def _load(self) -> None:
        try:
            index = self._read_index()
        except (OSError, ValueError) as e:
            logger.error(f"Error loading disk cache: {e}")
            return

        for key, entry in index.items():
            if entry.get('model') != self.model or entry.get('dimensions') != self.dimensions:
                continue
            vector_path = self.directory / f"{key}.npy"
            if vector_path.exists():
                self._vectors[key] = np.load(vector_path)

        logger.info(f"Loaded {len(self._vectors)} embeddings from disk cache")

    def _persist(self, key: str, vector: np.ndarray) -> None:
        try:
            np.save(self.directory / f"{key}.npy", vector)
            with self._lock:
                index = self._read_index()
                index[key] = {
                    'model': self.model,
                    'dimensions': int(vector.shape[0]),
                    'created': datetime.now().isoformat(),
                }
                with open(self.directory / CACHE_INDEX_FILE, 'w') as f:
                    json.dump(index, f, indent=2)
        except (OSError, ValueError) as e:
            logger.error(f"Error saving to disk cache: {e}")


class OllamaEmbeddingService:
    """
    Embedding client backed by a local or remote Ollama server.

    `embed()` never raises for remote failures: timeouts, connection errors,
    non-2xx statuses, malformed payloads and wrong dimensions all produce a
    degraded `EmbeddingResult` built from `fallback_embedding()`.
    """

    def __init__(
        self,
        model: str = "nomic-embed-text",
        base_url: str = "http://localhost:11434",
        dimensions: int = 768,
        batch_size: int = 10,
        enable_disk_cache: bool = False,
        cache_dir: Optional[str] = None,
        timeout: int = 30
    ):
        """
        Initialize the Ollama embedding service.

        Args:
            model: Ollama model name (default: nomic-embed-text)
            base_url: Ollama base URL
            dimensions: Expected vector length
            batch_size: Number of texts between progress reports
            enable_disk_cache: Mirror the cache to disk
            cache_dir: Directory for cache files (default: data/embeddings/cache)
            timeout: Request timeout in seconds
        """
        self.model = model
        self.base_url = base_url.rstrip('/')
        self.dimensions = dimensions
        self.batch_size = batch_size
        self.timeout = timeout
        self.enable_disk_cache = enable_disk_cache
        self.cache_dir = Path(cache_dir) if cache_dir else Path('data') / 'embeddings' / 'cache'

        self.cache = EmbeddingCache(
            model,
            dimensions,
            directory=self.cache_dir if enable_disk_cache else None
        )
        self._stats = CacheStats(cache_size=len(self.cache))
        self._stats_lock = threading.Lock()

        logger.info(f"Initialized OllamaEmbeddingService with model: {self.model}")

    @property
    def degraded_count(self) -> int:
        """Number of requests answered with a fallback vector."""
        return self._stats.degraded

    def _model_names(self) -> List[str]:
        """Models installed on the server, from /api/tags."""
        try:
            response = requests.get(f"{self.base_url}/api/tags", timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.ConnectionError:
            raise OllamaConnectionError(
                f"Unable to connect to Ollama at {self.base_url}. "
                "Please ensure Ollama is running (try: ollama serve)"
            )
        except requests.exceptions.Timeout:
            raise OllamaConnectionError(f"Connection to Ollama timed out after {self.timeout}s")
        except requests.exceptions.RequestException as e:
            raise OllamaConnectionError(f"Error connecting to Ollama: {e}")

        try:
            return [m['name'] for m in response.json().get('models', [])]
        except (ValueError, KeyError, TypeError, AttributeError):
            return []

    def verify_connection(self) -> bool:
        """
        Check that the Ollama server answers.

        Raises:
            OllamaConnectionError: If the server cannot be reached
        """
        self._model_names()
        logger.info("Connected to Ollama service")
        return True

    def verify_model_available(self) -> bool:
        """
        Check that the embedding model is installed.

        Raises:
            OllamaConnectionError: If the server cannot be reached
            OllamaModelError: If the model is missing
        """
        available = self._model_names()
        if self.model not in available and f"{self.model}:latest" not in available:
            raise OllamaModelError(
                f"Model '{self.model}' not found. Available models: {available}. "
                f"Try: ollama pull {self.model}"
            )

        logger.info(f"Model '{self.model}' is available")
        return True

    def _request_embedding(self, text: str) -> np.ndarray:
        """
        POST the text to /api/embeddings.

        Raises:
            requests.exceptions.RequestException: Network errors and non-2xx responses
            ValueError: If the body is not the expected JSON shape
            EmbeddingDimensionError: If the vector has the wrong length
        """
        response = requests.post(
            f"{self.base_url}/api/embeddings",
            json={"model": self.model, "prompt": text},
            timeout=self.timeout
        )
        response.raise_for_status()

        try:
            embedding = np.asarray(response.json()['embedding'], dtype=np.float32)
        except (KeyError, TypeError) as e:
            raise ValueError(f"Unexpected API response format: {e}")

        if embedding.ndim != 1 or embedding.shape[0] != self.dimensions:
            raise EmbeddingDimensionError(
                f"Expected {self.dimensions} dimensions, got {embedding.size}"
            )
        return embedding

    def _count(self, hit: bool) -> None:
        with self._stats_lock:
            self._stats.total_requests += 1
            if hit:
                self._stats.hits += 1
            else:
                self._stats.misses += 1

    def embed(self, text: str, use_cache: bool = True) -> EmbeddingResult:
        """
        Embed a single text.

        Args:
            text: Input text
            use_cache: Whether to read and write the cache

        Returns:
            EmbeddingResult tagged degraded when the fallback vector was used
        """
        text = text or ""
        key = self.cache.key(text)

        cached = self.cache.get(key) if use_cache else None
        self._count(hit=cached is not None)
        if cached is not None:
            return EmbeddingResult.ok(cached)

        try:
            embedding = self._request_embedding(text)
        except (requests.exceptions.RequestException, ValueError, EmbeddingDimensionError) as e:
            logger.warning(f"Embedding request failed, using fallback vector: {e}")
            with self._stats_lock:
                self._stats.degraded += 1
            return EmbeddingResult.fallback(fallback_embedding(text, self.dimensions))

        if use_cache:
            self.cache.put(key, embedding)
            with self._stats_lock:
                self._stats.cache_size = len(self.cache)

        return EmbeddingResult.ok(embedding)

    def embed_vector(self, text: str) -> np.ndarray:
        """Embed a text and return only the vector."""
        return self.embed(text).vector

    def embed_batch(
        self,
        texts: List[str],
        use_cache: bool = True,
        progress_callback: Optional[Callable[[int, int], None]] = None
    ) -> List[EmbeddingResult]:
        """
        Embed texts one after another, reporting progress every batch_size texts.

        Returns:
            One EmbeddingResult per text, in order
        """
        results = []
        total = len(texts)
        start_time = time.time()

        for i, text in enumerate(texts, 1):
            results.append(self.embed(text, use_cache=use_cache))
            if progress_callback and (i % self.batch_size == 0 or i == total):
                progress_callback(i, total)

        if total:
            elapsed = time.time() - start_time
            logger.info(f"Embedded {total} texts in {elapsed:.2f}s")
        return results

    def get_cache_stats(self) -> Dict:
        """Cache and degraded-mode counters."""
        return self._stats.to_dict()

    def clear_cache(self, clear_disk: bool = False) -> None:
        """Drop cached vectors and reset the counters."""
        self.cache.clear(disk=clear_disk)
        with self._stats_lock:
            self._stats = CacheStats()
        logger.info("Cleared embedding cache")
