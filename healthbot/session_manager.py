"""
Session management for the Health ERP chatbot.

This module keeps the per-user conversation state in memory: menu history,
the booking stage and draft, and the bound external identity. Nothing is
persisted; sessions are evicted after an idle timeout or when the store is
full (least recently used first).
"""

from collections import OrderedDict
from datetime import datetime, timedelta
from typing import Optional
from threading import Lock

from .models import ConversationSession
from .observability import setup_logging
from .settings import settings

logger = setup_logging()


class SessionStore:
    """
    In-memory store of conversation sessions keyed by user id.

    Thread-safe for concurrent access. Entries idle for longer than the
    timeout are dropped on access; when ``max_entries`` is reached the least
    recently used session is evicted to make room.
    """

    def __init__(
        self,
        session_timeout_minutes: int = settings.SESSION_TTL_MINUTES,
        max_entries: int = settings.SESSION_MAX_ENTRIES,
    ):
        self._sessions: "OrderedDict[str, ConversationSession]" = OrderedDict()
        self._lock = Lock()
        self.session_timeout = timedelta(minutes=session_timeout_minutes)
        self.max_entries = max_entries
        self.evicted_count = 0

    def get(self, user_id: str) -> Optional[ConversationSession]:
        """Get session state by user id."""
        with self._lock:
            session = self._sessions.get(user_id)

            if session and self._is_expired(session):
                del self._sessions[user_id]
                self.evicted_count += 1
                logger.info("Conversation session expired", user_id=user_id)
                return None

            if session:
                self._sessions.move_to_end(user_id)

            return session

    def get_or_create(self, user_id: str) -> ConversationSession:
        """Get existing session or create new one."""
        session = self.get(user_id)

        if session is None:
            with self._lock:
                session = self._sessions.get(user_id)
                if session is None:
                    session = ConversationSession(user_id=user_id)
                    self._sessions[user_id] = session
                    self._evict_overflow()

        return session

    def update(self, user_id: str, session: ConversationSession) -> None:
        """Store the session and mark it as recently used."""
        with self._lock:
            session.last_activity = datetime.utcnow()
            self._sessions[user_id] = session
            self._sessions.move_to_end(user_id)
            self._evict_overflow()

    def delete(self, user_id: str) -> bool:
        """Delete a session."""
        with self._lock:
            return self._sessions.pop(user_id, None) is not None

    def cleanup_expired(self) -> int:
        """Remove expired sessions and return count of removed sessions."""
        with self._lock:
            expired = [uid for uid, session in self._sessions.items() if self._is_expired(session)]

            for user_id in expired:
                del self._sessions[user_id]

            self.evicted_count += len(expired)

        return len(expired)

    def count(self) -> int:
        """Get total number of stored sessions."""
        with self._lock:
            return len(self._sessions)

    def stats(self) -> dict:
        """Get session statistics for monitoring."""
        with self._lock:
            total = len(self._sessions)
            expired = sum(1 for session in self._sessions.values() if self._is_expired(session))
            with_drafts = sum(1 for session in self._sessions.values() if session.draft is not None)
            bound = sum(1 for session in self._sessions.values() if session.binding is not None)

            return {
                "total_sessions": total,
                "active_sessions": total - expired,
                "expired_sessions": expired,
                "sessions_with_drafts": with_drafts,
                "sessions_with_identity": bound,
                "evicted_sessions": self.evicted_count,
                "max_entries": self.max_entries,
                "timeout_minutes": int(self.session_timeout.total_seconds() // 60),
            }

    def _is_expired(self, session: ConversationSession) -> bool:
        return datetime.utcnow() - session.last_activity > self.session_timeout

    def _evict_overflow(self) -> None:
        # Caller holds the lock
        while len(self._sessions) > self.max_entries:
            user_id, _ = self._sessions.popitem(last=False)
            self.evicted_count += 1
            logger.info("Conversation session evicted (capacity)", user_id=user_id)
