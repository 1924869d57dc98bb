"""
In-Memory Conversation Persistence Layer

This module keeps the per-session conversation history that is replayed to
the model as context on every turn. A session is an append-only log of
(input, output) turns keyed by an opaque session id; it expires a fixed
window after it was created, after which it behaves as a brand-new session.

Storage is process-local and is lost on restart. Concurrent turns for the
same session are not serialized: whichever append lands last is simply the
last turn in the log.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Turn:
    """One user utterance and the system's raw reply."""
    input: str
    output: str
    created_at: datetime


@dataclass
class ConversationSession:
    id: str
    created_at: datetime
    history: List[Turn] = field(default_factory=list)


class ConversationMemory:
    """
    Per-session conversation log with a retention window.

    Args:
        ttl: How long a session lives after it was created
        max_turns: How many of the most recent turns get() returns
        clock: Returns the current timezone-aware time (injectable for tests)
    """

    def __init__(
        self,
        ttl: timedelta = timedelta(hours=24),
        max_turns: int = 10,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.ttl = ttl
        self.max_turns = max_turns
        self._clock = clock or _utcnow
        self._sessions: Dict[str, ConversationSession] = {}

    def get(self, session_id: str) -> List[Turn]:
        """
        Get the most recent turns of a session, oldest first.

        Returns an empty list for unknown or expired sessions.
        """
        session = self._live_session(session_id)
        if session is None:
            return []
        return list(session.history[-self.max_turns:])

    def append(self, session_id: str, input_turn: str, output_turn: str) -> None:
        """Append a turn, silently starting a new session if needed.

        Starting a session also drops every other session past its window.
        """
        now = self._clock()
        session = self._live_session(session_id)
        if session is None:
            purged = self.purge_expired()
            if purged:
                logger.info(f"Purged {purged} expired conversation sessions")
            session = ConversationSession(id=session_id, created_at=now)
            self._sessions[session_id] = session
            logger.info(f"Started conversation session {session_id}")
        session.history.append(Turn(input=input_turn, output=output_turn, created_at=now))

    def clear(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)

    def purge_expired(self) -> int:
        """Drop every expired session. Returns how many were removed."""
        expired = [sid for sid, s in self._sessions.items() if self._is_expired(s)]
        for sid in expired:
            del self._sessions[sid]
        return len(expired)

    def get_storage_stats(self) -> Dict[str, object]:
        return {
            "total_sessions": len(self._sessions),
            "total_turns": sum(len(s.history) for s in self._sessions.values()),
            "storage_type": "in-memory",
        }

    def _live_session(self, session_id: str) -> Optional[ConversationSession]:
        session = self._sessions.get(session_id)
        if session is None:
            return None
        if self._is_expired(session):
            logger.info(f"Conversation session {session_id} expired")
            del self._sessions[session_id]
            return None
        return session

    def _is_expired(self, session: ConversationSession) -> bool:
        return self._clock() - session.created_at >= self.ttl
