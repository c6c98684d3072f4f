"""
In-memory conversation store.

Holds one Session per user. Only plain ``user`` and ``model`` turns are
stored: tool calls and tool results belong to a single orchestration run
and never enter the history.

Sessions are mutated without locks. All access happens on one asyncio
event loop and no method awaits, so every operation completes without
interleaving. Callers that share a store across OS threads must serialize
access per user themselves.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from pydantic import BaseModel, ConfigDict, Field

from relaybot.config.logging import get_logger

logger = get_logger(__name__)

HISTORY_ROLES: frozenset[str] = frozenset({"user", "model"})

HISTORY_LIMIT = 20
HISTORY_EXPIRY = timedelta(hours=24)


class Turn(BaseModel):
    """One message of a conversation."""

    role: str = Field(description="'user' or 'model'")
    text: str = Field(description="Message content")

    model_config = ConfigDict(frozen=True)


class Session(BaseModel):
    """Conversation state for one user."""

    user_id: str
    messages: list[Turn] = Field(default_factory=list)
    last_activity: datetime


class HistoryStats(BaseModel):
    total_users: int
    total_messages: int


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ConversationStore:
    """
    Per-user conversation history with a length cap and idle expiry.

    Args:
        history_limit: Maximum turns kept per user; oldest are dropped first
        history_expiry: Idle time after which sweep_expired() forgets a user
        clock: Returns the current time (injectable for tests)
    """

    def __init__(
        self,
        history_limit: int = HISTORY_LIMIT,
        history_expiry: timedelta = HISTORY_EXPIRY,
        clock: Callable[[], datetime] = _utcnow,
    ):
        if history_limit <= 0:
            raise ValueError("history_limit must be positive")
        self._history_limit = history_limit
        self._history_expiry = history_expiry
        self._clock = clock
        self._sessions: dict[str, Session] = {}

    @property
    def history_limit(self) -> int:
        return self._history_limit

    @property
    def history_expiry(self) -> timedelta:
        return self._history_expiry

    def __contains__(self, user_id: object) -> bool:
        return user_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def get_history(self, user_id: str) -> list[Turn]:
        """
        Return the user's turns, oldest first.

        This is the exact sequence replayed to the LLM. Unknown users get
        an empty list.
        """
        session = self._sessions.get(user_id)
        if session is None:
            return []
        return [turn for turn in session.messages if turn.role in HISTORY_ROLES]

    def append_turn(self, user_id: str, role: str, text: str) -> None:
        """
        Append a turn to the user's history, creating the session if needed.

        Turns with a role other than ``user`` or ``model`` are not stored,
        but still count as activity.
        """
        now = self._clock()
        session = self._sessions.get(user_id)
        if session is None:
            session = Session(user_id=user_id, last_activity=now)
            self._sessions[user_id] = session

        if role in HISTORY_ROLES:
            session.messages.append(Turn(role=role, text=text))
            if len(session.messages) > self._history_limit:
                del session.messages[: -self._history_limit]

        session.last_activity = now

    def clear(self, user_id: str) -> None:
        """Forget the user's conversation. Unknown users are ignored."""
        if self._sessions.pop(user_id, None) is not None:
            logger.info(f"Cleared conversation history for user: {user_id}")

    def stats(self) -> HistoryStats:
        return HistoryStats(
            total_users=len(self._sessions),
            total_messages=sum(len(s.messages) for s in self._sessions.values()),
        )

    def sweep_expired(self) -> int:
        """
        Delete every session idle for longer than the expiry.

        Returns:
            Number of sessions removed
        """
        cutoff = self._clock() - self._history_expiry
        expired = [
            user_id
            for user_id, session in self._sessions.items()
            if session.last_activity < cutoff
        ]
        for user_id in expired:
            del self._sessions[user_id]

        if expired:
            logger.info(f"Cleaned up {len(expired)} expired conversation(s)")
        return len(expired)
