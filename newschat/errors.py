"""
Exception hierarchy for the news chat system.

Transient failures of external services are normally absorbed by the
component that talks to them; these exceptions surface only where the
caller has to decide (ingestion, startup checks, configuration).
"""


class NewsChatError(Exception):
    """Base error for the news chat system."""
    pass


class ConfigValidationError(NewsChatError):
    """Raised when configuration validation fails."""
    pass


class StoreUnavailable(NewsChatError):
    """Raised when the article store cannot be reached or written."""
    pass


class EmbeddingServiceError(NewsChatError):
    """Base error for the embedding service."""
    pass


class OllamaConnectionError(EmbeddingServiceError):
    """Raised when unable to connect to Ollama service."""
    pass


class OllamaModelError(EmbeddingServiceError):
    """Raised when specified model is not available."""
    pass


class EmbeddingDimensionError(EmbeddingServiceError):
    """Raised when embedding dimensions don't match expected value."""
    pass


class GenerationError(NewsChatError):
    """Raised when the LLM fails to produce an answer."""
    pass
