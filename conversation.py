"""
Per-session conversation history.

The history is a plain list of {"role", "content"} dicts kept under one key
of the session mapping. Writes always assign a new list so server-side
session backends notice the change.
"""
from typing import Dict, List, MutableMapping

from models import ChatMessage, MessageRole

HISTORY_KEY = "chat_history"


class ConversationStore:
    """Append-only turn list over a session mapping"""

    def __init__(self, session: MutableMapping, key: str = HISTORY_KEY):
        self._session = session
        self._key = key

    def all(self) -> List[Dict]:
        return list(self._session.get(self._key) or [])

    def append(self, turn: ChatMessage) -> None:
        self._session[self._key] = self.all() + [turn.to_dict()]

    def append_exchange(self, user_message: str, reply: str) -> None:
        """Store a user turn and its assistant reply in a single write"""
        self._session[self._key] = self.all() + [
            ChatMessage(role=MessageRole.USER, content=user_message).to_dict(),
            ChatMessage(role=MessageRole.ASSISTANT, content=reply).to_dict(),
        ]

    def clear(self) -> None:
        self._session[self._key] = []

    def __len__(self):
        return len(self._session.get(self._key) or [])
