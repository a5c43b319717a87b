"""
Pydantic schemas for integration connections and repo links.

Create schemas validate input before anything is encrypted or written. Read
schemas are the non-secret view handed back to callers: they never carry
token material.
"""

import re
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..constants import Limits
from ..enums import IntegrationProvider

_REPO_FULL_NAME = re.compile(r"^[A-Za-z0-9_.-]+/[A-Za-z0-9_.-]+$")


class IntegrationConnectionCreate(BaseModel):
    """Input for saving a provider connection."""

    # Tokens must round-trip byte for byte: no whitespace stripping
    model_config = ConfigDict(extra="forbid")

    user_id: str = Field(..., min_length=1, max_length=Limits.MAX_USER_ID_LENGTH)
    provider: IntegrationProvider
    access_token: str = Field(..., min_length=1, repr=False, description="Plaintext access token")
    refresh_token: Optional[str] = Field(None, repr=False, description="Plaintext refresh token")
    expires_at: Optional[datetime] = Field(None, description="Access token expiry")
    metadata: Optional[Dict[str, Any]] = Field(None, description="Non-secret metadata")

    @field_validator("access_token")
    @classmethod
    def access_token_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("access_token must not be blank")
        return v

    @field_validator("refresh_token")
    @classmethod
    def empty_refresh_token_is_none(cls, v: Optional[str]) -> Optional[str]:
        return v or None


class IntegrationConnectionRead(BaseModel):
    """Non-secret view of a stored connection."""

    id: str
    user_id: str
    provider: IntegrationProvider
    has_access_token: bool
    has_refresh_token: bool
    token_expires_at: Optional[datetime] = None
    metadata: Optional[Dict[str, Any]] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, connection: Any) -> "IntegrationConnectionRead":
        return cls(
            id=connection.id,
            user_id=connection.user_id,
            provider=connection.provider,
            has_access_token=bool(connection.access_token),
            has_refresh_token=bool(connection.refresh_token),
            token_expires_at=connection.token_expires_at,
            metadata=connection.connection_metadata,
            created_at=connection.created_at,
            updated_at=connection.updated_at,
        )


class RepoIntegrationCreate(BaseModel):
    """Input for linking a repository to deployment and database projects."""

    model_config = ConfigDict(extra="forbid")

    user_id: str = Field(..., min_length=1, max_length=Limits.MAX_USER_ID_LENGTH)
    repo_full_name: str = Field(..., min_length=3, max_length=Limits.MAX_REPO_NAME_LENGTH)
    vercel_project_id: Optional[str] = None
    vercel_project_name: Optional[str] = None
    supabase_project_ref: Optional[str] = None

    @field_validator("repo_full_name")
    @classmethod
    def validate_repo_full_name(cls, v: str) -> str:
        if not _REPO_FULL_NAME.match(v):
            raise ValueError("repo_full_name must look like 'owner/name'")
        return v


class RepoIntegrationRead(BaseModel):
    """Stored repo link."""

    id: str
    user_id: str
    repo_full_name: str
    vercel_project_id: Optional[str] = None
    vercel_project_name: Optional[str] = None
    supabase_project_ref: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
