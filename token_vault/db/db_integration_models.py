"""
Integration models: provider connections and repo links.

Just the data structure. Token columns hold the serialized encrypted payload
produced by TokenCipher.encrypt_token(), or plaintext for records written
before encryption was enabled; encryption happens in the service layer.
"""

from sqlalchemy import Column, DateTime, Index, String, Text

from .db_base import JSON, TimestampMixin, UUIDMixin
from .db_config import Base


class IntegrationConnection(Base, UUIDMixin, TimestampMixin):
    """One connected third-party provider per user."""

    __tablename__ = "integration_connections"

    user_id = Column(String(255), nullable=False, index=True)
    provider = Column(String(50), nullable=False)

    # Serialized encrypted payloads
    access_token = Column(Text, nullable=True)
    refresh_token = Column(Text, nullable=True)
    token_expires_at = Column(DateTime(timezone=True), nullable=True)

    # "metadata" is reserved on declarative classes
    connection_metadata = Column("metadata", JSON, nullable=True)

    __table_args__ = (
        Index("ix_integration_connection_lookup", "user_id", "provider", unique=True),
    )


class RepoIntegration(Base, UUIDMixin, TimestampMixin):
    """Links a GitHub repository to its Vercel project and Supabase project."""

    __tablename__ = "repo_integrations"

    user_id = Column(String(255), nullable=False, index=True)
    repo_full_name = Column(String(255), nullable=False)
    vercel_project_id = Column(String(255), nullable=True)
    vercel_project_name = Column(String(255), nullable=True)
    supabase_project_ref = Column(String(255), nullable=True)

    __table_args__ = (
        Index("ix_repo_integration_lookup", "user_id", "repo_full_name", unique=True),
    )
