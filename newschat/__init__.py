"""
News Chat

Conversational question answering over a refreshed corpus of news articles.
Articles are embedded into a vector index; each chat message is rewritten
against the conversation, matched against the index, filtered for relevance
and handed to an LLM for the final answer.
"""

__version__ = "0.1.0"
