"""
Column types and mixins shared by the integration models.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON as _SAJSON
from sqlalchemy import Column, DateTime, String
from sqlalchemy.dialects.postgresql import JSONB

# JSONB on PostgreSQL, JSON text elsewhere. Python None is stored as SQL NULL.
JSON = _SAJSON(none_as_null=True).with_variant(JSONB(none_as_null=True), "postgresql")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class UUIDMixin:
    """String UUID primary key."""

    id = Column(String(36), primary_key=True, default=new_id)


class TimestampMixin:
    """created_at and updated_at, both timezone-aware UTC."""

    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )
