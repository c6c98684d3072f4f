"""
Conversation memory.

Per-user chat history kept in process memory, bounded in length and
forgotten after a period of inactivity.
"""

from relaybot.conversation.store import ConversationStore, HistoryStats, Session, Turn
from relaybot.conversation.sweeper import ExpirySweeper

__all__ = [
    "ConversationStore",
    "ExpirySweeper",
    "HistoryStats",
    "Session",
    "Turn",
]
