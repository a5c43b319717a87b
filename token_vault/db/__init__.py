"""
SQLAlchemy models and engine management for the token store.
"""

from .db_base import JSON, TimestampMixin, UUIDMixin, utc_now
from .db_config import (
    Base,
    DatabaseManager,
    close_db,
    get_db_manager,
    import_all_models,
    initialize_db,
)
from .db_integration_models import IntegrationConnection, RepoIntegration

__all__ = [
    "Base",
    "JSON",
    "TimestampMixin",
    "UUIDMixin",
    "utc_now",
    "DatabaseManager",
    "close_db",
    "get_db_manager",
    "import_all_models",
    "initialize_db",
    "IntegrationConnection",
    "RepoIntegration",
]
