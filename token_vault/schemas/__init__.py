"""Pydantic schemas."""

from .conversation_schemas import ChatMessage
from .integration_schemas import (
    IntegrationConnectionCreate,
    IntegrationConnectionRead,
    RepoIntegrationCreate,
    RepoIntegrationRead,
)

__all__ = [
    "ChatMessage",
    "IntegrationConnectionCreate",
    "IntegrationConnectionRead",
    "RepoIntegrationCreate",
    "RepoIntegrationRead",
]
