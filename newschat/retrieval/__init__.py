"""Retrieval and ranking of articles for chat queries."""

from .orchestrator import RetrievalOrchestrator, RetrievalTrace
from .relevance_filter import RelevanceFilter

__all__ = ['RetrievalOrchestrator', 'RetrievalTrace', 'RelevanceFilter']
