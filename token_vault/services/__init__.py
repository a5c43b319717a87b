"""Service layer for business logic."""

from .integration_service import IntegrationConnectionService

__all__ = [
    "IntegrationConnectionService",
]
