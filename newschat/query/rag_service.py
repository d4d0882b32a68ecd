"""
RAG Service for News Question Answering

Orchestrates the answer for one chat message:
1. Article retrieval (query rewrite, embedding, vector search, filtering)
2. Context formatting from the ranked articles
3. Prompt construction
4. LLM-based answer generation, with an extractive fallback
"""

import time
import logging
from typing import List, Dict, Optional, Any, Sequence

from langchain_ollama import ChatOllama

from ..errors import GenerationError
from ..models import HistoryEntry, SearchResult, as_turn
from ..retrieval.orchestrator import RetrievalOrchestrator
from .conversation_manager import format_history

logger = logging.getLogger(__name__)

NO_ARTICLES_ANSWER = (
    "I apologize, but I couldn't find any relevant news articles to answer your "
    "question. Please try asking about recent news topics or rephrase your question."
)

CONTENT_PREVIEW_CHARS = 500

TOPIC_KEYWORDS = {
    'Economy & Business': ('economy', 'business', 'financial'),
    'Politics': ('politics', 'government', 'election'),
    'Technology': ('technology', 'tech', 'ai'),
    'Environment': ('environment', 'climate', 'weather'),
    'Crime & Justice': ('crime', 'police', 'arrest'),
    'Entertainment': ('entertainment', 'movie', 'music'),
    'Sports': ('sports', 'football', 'olympics'),
    'Health': ('health', 'medical', 'covid'),
}


class RAGService:
    """
    Retrieval-augmented answering over the news corpus.

    Retrieval never fails the request; when the LLM fails the answer is
    built from the retrieved article titles and summaries instead.
    """

    def __init__(
        self,
        retriever: RetrievalOrchestrator,
        llm_model: str = "llama3.1:latest",
        top_k: int = 5,
        temperature: float = 0.7,
        max_tokens: int = 1000,
        ollama_base_url: str = "http://localhost:11434",
        llm: Optional[Any] = None
    ):
        """
        Initialize the RAG service.

        Args:
            retriever: Retrieval orchestrator producing ranked articles
            llm_model: Ollama model name for answer generation
            top_k: Default number of articles to retrieve
            temperature: LLM temperature
            max_tokens: Maximum tokens in generated answer
            ollama_base_url: Base URL for Ollama service
            llm: Pre-built chat model (anything with `invoke`)
        """
        self.retriever = retriever
        self.llm_model = llm_model
        self.top_k = top_k
        self.temperature = temperature
        self.max_tokens = max_tokens

        self.llm = llm or ChatOllama(
            model=llm_model,
            temperature=temperature,
            base_url=ollama_base_url,
            num_predict=max_tokens
        )

    def format_context(self, results: Sequence[SearchResult]) -> str:
        """
        Format retrieved articles for inclusion in the prompt.

        Args:
            results: Ranked search results

        Returns:
            Numbered article listing, or a note that nothing was found
        """
        if not results:
            return "No relevant news articles found."

        parts = ["RELEVANT NEWS ARTICLES:\n"]
        for i, result in enumerate(results, 1):
            article = result.article
            published = article.published_date.strftime('%Y-%m-%d') if article.published_date else 'Unknown'
            lines = [
                f"{i}. **{article.title}**",
                f"   Source: {article.source}",
                f"   Published: {published}",
                f"   Summary: {article.summary}",
            ]
            if article.content and len(article.content) > 100:
                lines.append(f"   Content: {article.content[:CONTENT_PREVIEW_CHARS]}...")
            lines.append(f"   URL: {article.url}")
            parts.append("\n".join(lines) + "\n")

        return "\n".join(parts)

    def build_prompt(
        self,
        question: str,
        context: str,
        history: Optional[Sequence[HistoryEntry]] = None
    ) -> str:
        """
        Build the complete prompt for the LLM.

        Args:
            question: User's question
            context: Formatted article context
            history: Conversation turns, oldest first

        Returns:
            Complete prompt string
        """
        history_text = ""
        if history:
            history_text = "\nPREVIOUS CONVERSATION:\n" + format_history(history) + "\n"

        return f"""You are a knowledgeable news assistant with access to recent news articles. Answer the user's question using the provided news content.
{history_text}
NEWS ARTICLES CONTEXT:
{context}

USER QUESTION: {question}

INSTRUCTIONS:
1. Use ONLY the information from the provided news articles above
2. Provide specific details, facts, and quotes from the articles
3. Mention the source (e.g., "According to BBC News..." or "The Washington Post reports...")
4. If multiple articles cover the same topic, combine the information
5. If the articles don't contain relevant information, say: "The available news articles don't contain information about [topic]. The articles focus on [list main topics from articles]."
6. Be specific and detailed - avoid vague responses
7. Include relevant dates, numbers, and specific facts when available
8. If asking about economy, look for business, financial, or economic news specifically

RESPONSE:"""

    @staticmethod
    def _prior_turns(
        question: str,
        history: Optional[Sequence[HistoryEntry]]
    ) -> List[HistoryEntry]:
        """History without the trailing copy of the current question."""
        turns = list(history or [])
        if turns:
            last = as_turn(turns[-1])
            if last.role == 'user' and last.content == question:
                turns = turns[:-1]
        return turns

    def generate_answer(self, prompt: str) -> str:
        """
        Generate answer using LLM.

        Raises:
            GenerationError: If LLM generation fails
        """
        try:
            response = self.llm.invoke(prompt)
        except Exception as e:
            raise GenerationError(f"Error generating answer with LLM: {str(e)}") from e

        if hasattr(response, 'content'):
            return response.content
        return str(response)

    def fallback_answer(self, results: Sequence[SearchResult]) -> str:
        """Extractive answer listing the retrieved articles."""
        if not results:
            return NO_ARTICLES_ANSWER

        lines = ["Based on the available news articles, here's what I found:\n"]
        for i, result in enumerate(results, 1):
            article = result.article
            lines.append(f"{i}. **{article.title}**")
            lines.append(f"   {article.summary}")
            lines.append(f"   Source: {article.source}\n")

        lines.append("For more detailed information, please check the full articles using the provided links.")
        return "\n".join(lines)

    @staticmethod
    def format_sources(results: Sequence[SearchResult]) -> List[Dict[str, Any]]:
        """Source list returned alongside the answer."""
        return [
            {
                'title': result.article.title,
                'url': result.article.url,
                'source': result.article.source,
                'score': round(result.score, 4),
                'origin': result.origin,
            }
            for result in results
        ]

    def answer(
        self,
        question: str,
        conversation_history: Optional[Sequence[HistoryEntry]] = None,
        top_k: Optional[int] = None
    ) -> Dict[str, Any]:
        """
        Answer a question from the news corpus.

        Args:
            question: User's question
            conversation_history: Conversation turns including this question
            top_k: Number of articles to retrieve (overrides default)

        Returns:
            Dictionary with question, effective_query, answer, sources,
            degraded, used_fallback and response_time

        Raises:
            ValueError: If question is empty
        """
        if not question or not question.strip():
            raise ValueError("Question cannot be empty")

        start_time = time.time()
        k = top_k if top_k is not None else self.top_k

        results, trace = self.retriever.retrieve_with_trace(
            question,
            conversation_history,
            limit=k
        )

        used_fallback = False
        if not results:
            answer = NO_ARTICLES_ANSWER
        else:
            prompt = self.build_prompt(
                question,
                self.format_context(results),
                self._prior_turns(question, conversation_history)
            )
            try:
                answer = self.generate_answer(prompt)
            except GenerationError as e:
                logger.error(f"{e}; answering from article summaries")
                answer = self.fallback_answer(results)
                used_fallback = True

        return {
            'question': question,
            'effective_query': trace.effective_query,
            'answer': answer,
            'sources': self.format_sources(results),
            'degraded': trace.degraded,
            'used_fallback': used_fallback,
            'response_time': time.time() - start_time
        }

    def available_topics(self, sample_size: int = 20) -> List[str]:
        """
        Topic labels present in a sample of the corpus.

        Returns:
            Sorted topic names, or ['General News'] if none are detected
        """
        results = self.retriever.retrieve("news topics", limit=sample_size)

        topics = set()
        for result in results:
            text = f"{result.article.title} {result.article.summary}".lower()
            for topic, keywords in TOPIC_KEYWORDS.items():
                if any(keyword in text for keyword in keywords):
                    topics.add(topic)

        return sorted(topics) or ['General News']
