"""
Conversation module: turns and the append-only log that owns them.
"""

from gaian_voice.conversation.log import ConversationLog
from gaian_voice.conversation.schemas import Turn, TurnRole, WireMessage

__all__ = [
    "ConversationLog",
    "Turn",
    "TurnRole",
    "WireMessage",
]
