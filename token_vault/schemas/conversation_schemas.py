"""Chat message schema for the in-memory conversation buffer."""

from pydantic import BaseModel, ConfigDict

from ..enums import MessageRole


class ChatMessage(BaseModel):
    """One message in a conversation."""

    model_config = ConfigDict(frozen=True)

    role: MessageRole
    content: str
