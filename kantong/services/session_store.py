"""
Chat session store — per-user conversational state.

One ChatSession per chat handle holds:
  - the last CHAT_HISTORY_LIMIT turns (user and bot), fed back to the
    decision step as context
  - the id of the business the user is logged in to, mirroring the
    business_sessions table
  - a last-seen timestamp
  - an asyncio.Lock that serializes message handling for that user, so two
    messages from the same person never interleave their ledger writes

Lifecycle:
  created   on the first message from a handle (open())
  touched   on every message
  evicted   when idle longer than SESSION_IDLE_TIMEOUT_SECONDS, either lazily
            in open() or by the periodic eviction job (evict_idle())
  ended     explicitly by the "exit" chat action (end())

The store is process-local. Callers that evict or end a session are
responsible for closing the matching business session in the database.
"""

import asyncio
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from kantong.config import settings


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ChatTurn:
    role: str  # "user" or "bot"
    text: str
    timestamp: datetime = field(default_factory=_utcnow)


@dataclass
class ChatSession:
    user_id: str
    history: deque
    business_id: uuid.UUID | None = None
    last_seen: datetime = field(default_factory=_utcnow)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    def add_turn(self, role: str, text: str) -> None:
        self.history.append(ChatTurn(role=role, text=text))

    def recent_turns(self, limit: int) -> list[ChatTurn]:
        if limit <= 0:
            return []
        return list(self.history)[-limit:]


class SessionStore:
    """In-memory registry of chat sessions keyed by user handle."""

    def __init__(
        self,
        history_limit: int | None = None,
        idle_timeout_seconds: int | None = None,
    ):
        self.history_limit = history_limit or settings.CHAT_HISTORY_LIMIT
        self.idle_timeout = timedelta(
            seconds=idle_timeout_seconds or settings.SESSION_IDLE_TIMEOUT_SECONDS
        )
        self._sessions: dict[str, ChatSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, user_id: str) -> bool:
        return user_id in self._sessions

    def get(self, user_id: str) -> ChatSession | None:
        return self._sessions.get(user_id)

    def _is_idle(self, session: ChatSession, now: datetime) -> bool:
        return now - session.last_seen > self.idle_timeout

    def open(self, user_id: str, now: datetime | None = None) -> tuple[ChatSession, bool]:
        """
        Return the user's session, creating it if needed, and mark it seen.

        Returns:
            (session, expired): expired is True when an idle session was
            dropped and replaced by a fresh one.
        """
        now = now or _utcnow()
        session = self._sessions.get(user_id)
        expired = False

        if session is not None and self._is_idle(session, now) and not session.lock.locked():
            del self._sessions[user_id]
            session = None
            expired = True

        if session is None:
            session = ChatSession(user_id=user_id, history=deque(maxlen=self.history_limit))
            self._sessions[user_id] = session

        session.last_seen = now
        return session, expired

    def end(self, user_id: str) -> bool:
        """Drop a session explicitly. Returns False if there was none."""
        return self._sessions.pop(user_id, None) is not None

    def evict_idle(self, now: datetime | None = None) -> list[str]:
        """Drop every idle session that is not handling a message. Returns the evicted handles."""
        now = now or _utcnow()
        evicted = [
            user_id
            for user_id, session in self._sessions.items()
            if self._is_idle(session, now) and not session.lock.locked()
        ]
        for user_id in evicted:
            del self._sessions[user_id]
        return evicted


# Shared by the chat router and the eviction job
session_store = SessionStore()
