"""Utility modules for the token vault."""

# Generic CRUD helpers
from .crud_helpers import (
    create_record,
    delete_record,
    get_record,
    list_records,
    update_record,
    upsert_record,
)

# Logging utilities
from .logger import (
    AzureQueueHandler,
    ContextAwareLogger,
    CorrelationIdFilter,
    configure_logging,
    get_logger,
)

__all__ = [
    # Logging utilities
    "AzureQueueHandler",
    "ContextAwareLogger",
    "CorrelationIdFilter",
    "configure_logging",
    "get_logger",
    # Generic CRUD helpers
    "create_record",
    "delete_record",
    "get_record",
    "list_records",
    "update_record",
    "upsert_record",
]
