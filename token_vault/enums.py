"""
Enums used across the token_vault package.

Kept separate from the models and schemas to avoid circular imports.
"""

import enum


class IntegrationProvider(str, enum.Enum):
    """Third-party providers a user can connect."""

    GITHUB = "github"
    VERCEL = "vercel"
    SUPABASE_PAT = "supabase_pat"


class MessageRole(str, enum.Enum):
    """Author of a message in the conversation buffer."""

    USER = "user"
    ASSISTANT = "assistant"
