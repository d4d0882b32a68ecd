"""
Conversational Query Rewriter

Resolves follow-up questions ("when was he shot?") by prepending the
previous user message to the current query before retrieval. No
coreference resolution is attempted: any query containing a reference word
(pronoun or interrogative) is treated as a follow-up.
"""

import logging
import re
from typing import Iterable, List, Optional, Sequence

from ..config import DEFAULT_REFERENCE_WORDS
from ..models import ConversationTurn, HistoryEntry, as_turn

logger = logging.getLogger(__name__)


class QueryRewriter:
    """
    Builds the effective search string for a chat message.

    The reference-word set is the sensitivity knob: interrogatives appear in
    almost every question, so with the default vocabulary nearly every
    message after the first is rewritten.
    """

    def __init__(
        self,
        reference_words: Iterable[str] = DEFAULT_REFERENCE_WORDS,
        word_boundaries: bool = False
    ):
        """
        Initialize the rewriter.

        Args:
            reference_words: Words that mark a query as a follow-up
            word_boundaries: Match whole words only instead of substrings
        """
        self.reference_words = tuple(word.lower() for word in reference_words if word)
        self.word_boundaries = word_boundaries
        self._pattern = None
        if word_boundaries and self.reference_words:
            alternatives = '|'.join(re.escape(word) for word in self.reference_words)
            self._pattern = re.compile(rf'\b(?:{alternatives})\b', re.IGNORECASE)

    @staticmethod
    def user_turns(history: Optional[Sequence[HistoryEntry]]) -> List[ConversationTurn]:
        """User-authored turns of the history, in order."""
        turns = [as_turn(entry) for entry in (history or [])]
        return [turn for turn in turns if turn.role == 'user']

    def is_followup(self, query: str) -> bool:
        """True when the query contains any reference word."""
        if not query:
            return False
        if self._pattern is not None:
            return bool(self._pattern.search(query))
        lowered = query.lower()
        return any(word in lowered for word in self.reference_words)

    def rewrite(
        self,
        current_query: str,
        history: Optional[Sequence[HistoryEntry]] = None
    ) -> str:
        """
        Produce the effective query for the current message.

        `history` is expected to already contain the current user message as
        its last user turn, so the previous topic is the second-to-last one.

        Args:
            current_query: The message being answered
            history: Conversation turns, oldest first

        Returns:
            `previous + " " + current_query` for follow-ups, otherwise
            `current_query` unchanged
        """
        user_turns = self.user_turns(history)
        if len(user_turns) < 2:
            return current_query

        previous_topic = user_turns[-2]
        if not self.is_followup(current_query):
            return current_query

        effective = f"{previous_topic.content} {current_query}"
        logger.debug(f"Rewrote follow-up query: '{current_query}' -> '{effective}'")
        return effective
