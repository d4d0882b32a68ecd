"""
Conversation Manager for Multi-turn Chat

Keeps per-session message history for the chat front end and hands the
retrieval core read-only copies of it. Sessions expire after a TTL of
inactivity and can optionally be persisted to JSON files.
"""

import json
import logging
import threading
import time
import uuid
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from ..models import HistoryEntry, as_turn

logger = logging.getLogger(__name__)

VALID_ROLES = ('user', 'assistant')


def format_history(history: Sequence[HistoryEntry]) -> str:
    """Render history as 'Role: content' lines for LLM prompts."""
    return "\n".join(
        f"{turn.role.capitalize()}: {turn.content}"
        for turn in map(as_turn, history)
    )


class ConversationManager:
    """
    Manages chat sessions and their message history.

    Features:
    - Session creation, expiry and deletion
    - Per-message history with a sliding window
    - Optional persistence to JSON files
    - Safe for concurrent sessions
    """

    def __init__(
        self,
        max_history_turns: int = 10,
        session_ttl: Optional[float] = 86400,
        enable_persistence: bool = False,
        storage_dir: Optional[str] = None
    ):
        """
        Initialize the conversation manager.

        Args:
            max_history_turns: Maximum number of question/answer turns to keep
            session_ttl: Seconds of inactivity before a session expires (None = never)
            enable_persistence: Whether to enable session persistence
            storage_dir: Directory for storing session files
        """
        self.max_history_turns = max_history_turns
        self.session_ttl = session_ttl
        self.enable_persistence = enable_persistence

        # Session storage: {session_id: [messages]}
        self.sessions: Dict[str, List[Dict[str, str]]] = {}
        self._last_active: Dict[str, float] = {}
        self._lock = threading.Lock()

        self.storage_dir = Path(storage_dir) if storage_dir else Path('data') / 'conversations'

        if self.enable_persistence:
            self.storage_dir.mkdir(parents=True, exist_ok=True)

    def create_session(self) -> str:
        """
        Create a new conversation session.

        Returns:
            Unique session ID
        """
        self.cleanup_expired()

        session_id = str(uuid.uuid4())
        with self._lock:
            self.sessions[session_id] = []
            self._last_active[session_id] = time.time()

        logger.info(f"Created new session: {session_id}")
        return session_id

    def has_session(self, session_id: str) -> bool:
        """Check whether a live session exists."""
        with self._lock:
            return session_id in self.sessions and not self._is_expired(session_id)

    def _is_expired(self, session_id: str) -> bool:
        if self.session_ttl is None:
            return False
        last_active = self._last_active.get(session_id, 0.0)
        return time.time() - last_active > self.session_ttl

    def add_message(self, session_id: str, role: str, content: str) -> Dict[str, str]:
        """
        Append a single message to a session.

        Args:
            session_id: Session identifier
            role: 'user' or 'assistant'
            content: Message text

        Returns:
            The stored message dictionary

        Raises:
            ValueError: If the role is not recognised
        """
        if role not in VALID_ROLES:
            raise ValueError(f"Invalid role '{role}', expected one of {VALID_ROLES}")

        message = {
            'role': role,
            'content': content,
            'timestamp': datetime.now().isoformat()
        }

        with self._lock:
            if session_id not in self.sessions:
                logger.warning(f"Session {session_id} not found, creating new session")
                self.sessions[session_id] = []

            self.sessions[session_id].append(message)
            self._last_active[session_id] = time.time()

            # Enforce max history limit (keep last N turns = 2N messages)
            max_messages = self.max_history_turns * 2
            if len(self.sessions[session_id]) > max_messages:
                self.sessions[session_id] = self.sessions[session_id][-max_messages:]

        logger.debug(f"Added {role} message to session {session_id}")
        return message

    def get_history(
        self,
        session_id: str,
        max_turns: Optional[int] = None
    ) -> List[Dict[str, str]]:
        """
        Get a copy of the conversation history for a session.

        Args:
            session_id: Session identifier
            max_turns: Maximum number of turns to return (overrides default)

        Returns:
            List of message dictionaries with 'role', 'content' and 'timestamp'
        """
        with self._lock:
            if session_id not in self.sessions or self._is_expired(session_id):
                return []
            history = [dict(message) for message in self.sessions[session_id]]

        if max_turns is not None:
            history = history[-(max_turns * 2):]

        return history

    def clear_session(self, session_id: str) -> None:
        """Clear all history for a session."""
        with self._lock:
            if session_id in self.sessions:
                self.sessions[session_id] = []
                logger.info(f"Cleared session {session_id}")

    def delete_session(self, session_id: str) -> bool:
        """
        Remove a session entirely.

        Returns:
            True if the session existed
        """
        with self._lock:
            existed = self.sessions.pop(session_id, None) is not None
            self._last_active.pop(session_id, None)

        if existed:
            logger.info(f"Deleted session {session_id}")
        return existed

    def cleanup_expired(self) -> int:
        """
        Drop sessions that have been inactive longer than the TTL.

        Returns:
            Number of sessions removed
        """
        with self._lock:
            expired = [sid for sid in self.sessions if self._is_expired(sid)]
            for session_id in expired:
                del self.sessions[session_id]
                self._last_active.pop(session_id, None)

        if expired:
            logger.info(f"Removed {len(expired)} expired sessions")
        return len(expired)

    def save_session(self, session_id: str) -> bool:
        """
        Save a session to disk.

        Returns:
            True if the session was written
        """
        if not self.enable_persistence:
            logger.warning("Persistence is not enabled")
            return False

        history = self.get_history(session_id)
        if session_id not in self.sessions:
            logger.warning(f"Session {session_id} not found")
            return False

        session_file = self.storage_dir / f"{session_id}.json"
        session_data = {
            'session_id': session_id,
            'saved_at': datetime.now().isoformat(),
            'messages': history
        }

        try:
            with open(session_file, 'w') as f:
                json.dump(session_data, f, indent=2)
        except OSError as e:
            logger.error(f"Error saving session {session_id}: {e}")
            return False

        logger.info(f"Saved session {session_id} to {session_file}")
        return True

    def load_session(self, session_id: str) -> bool:
        """
        Load a session from disk.

        Returns:
            True if successful, False otherwise
        """
        if not self.enable_persistence:
            logger.warning("Persistence is not enabled")
            return False

        session_file = self.storage_dir / f"{session_id}.json"
        if not session_file.exists():
            logger.warning(f"Session file not found: {session_file}")
            return False

        try:
            with open(session_file, 'r') as f:
                session_data = json.load(f)
        except json.JSONDecodeError as e:
            logger.error(f"Error decoding session file {session_id}: {e}")
            return False
        except OSError as e:
            logger.error(f"Error loading session {session_id}: {e}")
            return False

        with self._lock:
            self.sessions[session_id] = session_data.get('messages', [])
            self._last_active[session_id] = time.time()

        logger.info(f"Loaded session {session_id} from {session_file}")
        return True
