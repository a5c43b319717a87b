"""
In-memory conversation buffer.

Maps a chat session ID to its ordered messages. Contents are lost on restart
and nothing is evicted, so this is only suitable for short-lived sessions.
Each store is an explicit object; create one per process (or per test).
"""

import threading
from typing import Dict, Iterable, List, Union

from .enums import MessageRole
from .schemas.conversation_schemas import ChatMessage

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful software assistant. Explain technical topics clearly, "
    "start with why they matter, and add detail as needed."
)

_SPEAKER_LABELS = {
    MessageRole.USER: "Human",
    MessageRole.ASSISTANT: "Assistant",
}


class ConversationStore:
    """Thread-safe map of session ID to message history."""

    def __init__(self):
        self._conversations: Dict[str, List[ChatMessage]] = {}
        self._lock = threading.Lock()

    def get_conversation(self, session_id: str) -> List[ChatMessage]:
        """Return a copy of the session's history; empty if unknown."""
        with self._lock:
            return list(self._conversations.get(session_id, []))

    def add_message(self, session_id: str, message: Union[ChatMessage, dict]) -> None:
        """Append a message, creating the session if needed."""
        if not isinstance(message, ChatMessage):
            message = ChatMessage.model_validate(message)
        with self._lock:
            self._conversations.setdefault(session_id, []).append(message)

    def create_conversation(self, session_id: str) -> None:
        """Start (or restart) a session with an empty history."""
        with self._lock:
            self._conversations[session_id] = []

    def clear_conversation(self, session_id: str) -> None:
        """Forget a session."""
        with self._lock:
            self._conversations.pop(session_id, None)

    def session_ids(self) -> List[str]:
        with self._lock:
            return list(self._conversations)


def build_prompt_with_history(
    history: Iterable[ChatMessage], system_prompt: str = DEFAULT_SYSTEM_PROMPT
) -> str:
    """
    Render a history as a single completion prompt.

    The prompt is the system prompt, a "Conversation:" header, one
    "Human:"/"Assistant:" block per message, and a trailing "Assistant:"
    for the model to continue from.
    """
    parts = [system_prompt, "\n\n", "---\n\nConversation:\n\n"]
    for message in history:
        parts.append(f"{_SPEAKER_LABELS[message.role]}: {message.content}\n\n")
    parts.append("Assistant:")
    return "".join(parts)
