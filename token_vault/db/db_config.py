"""
Engine and session handling for the token store.

The store is addressed by a single SQLAlchemy URL (DATABASE_URL). One
DatabaseManager is kept per process; initialize_db() builds it, registers the
integration models and creates any missing tables.
"""

from typing import Any, Dict, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import ArgumentError
from sqlalchemy.orm import Session, declarative_base, scoped_session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..config import DatabaseConfig, get_config
from ..exceptions import ConfigurationError
from ..utils.logger import get_logger

Base: Any = declarative_base()


def _build_engine(config: DatabaseConfig) -> Engine:
    try:
        url = make_url(config.connection_string)
    except ArgumentError as e:
        raise ConfigurationError("Invalid database URL", setting="DATABASE_URL", cause=e) from e

    options: Dict[str, Any] = {"echo": config.echo}
    if url.get_backend_name() == "sqlite":
        options["connect_args"] = {"check_same_thread": False}
        if url.database in (None, "", ":memory:"):
            # In-memory SQLite lives in one connection
            options["poolclass"] = StaticPool
    else:
        options.update(
            pool_size=config.pool_size,
            max_overflow=config.max_overflow,
            pool_timeout=config.pool_timeout,
        )
    return create_engine(url, **options)


class DatabaseManager:
    """Owns the engine and a thread-scoped session registry."""

    def __init__(self, config: DatabaseConfig):
        self.config = config
        self.engine = _build_engine(config)
        self.scoped_session = scoped_session(sessionmaker(bind=self.engine))

    @property
    def backend(self) -> str:
        return self.engine.url.get_backend_name()

    def create_tables(self) -> None:
        Base.metadata.create_all(self.engine)

    def get_session(self) -> Session:
        return self.scoped_session()

    def close_session(self) -> None:
        self.scoped_session.remove()

    def close(self) -> None:
        self.scoped_session.remove()
        self.engine.dispose()

    def __repr__(self) -> str:
        return f"DatabaseManager(url={self.engine.url.render_as_string(hide_password=True)!r})"


def import_all_models() -> None:
    """Register the integration tables on Base.metadata."""
    from sqlalchemy.orm import configure_mappers

    from .db_integration_models import IntegrationConnection, RepoIntegration  # noqa: F401

    configure_mappers()


_db_manager: Optional[DatabaseManager] = None


def initialize_db(config: Optional[DatabaseConfig] = None) -> DatabaseManager:
    """
    Build the process-wide DatabaseManager and create missing tables.

    Args:
        config: Engine settings; defaults to get_config().database

    Raises:
        ConfigurationError: If the database URL cannot be parsed
    """
    global _db_manager

    manager = DatabaseManager(config or get_config().database)
    get_logger().info("Initializing token store", extra={"db_backend": manager.backend})
    import_all_models()
    manager.create_tables()

    if _db_manager is not None:
        _db_manager.close()
    _db_manager = manager
    return manager


def get_db_manager() -> DatabaseManager:
    """
    Raises:
        ConfigurationError: If initialize_db() has not been called
    """
    if _db_manager is None:
        raise ConfigurationError(
            "Token store not initialized; call initialize_db() first", setting="database"
        )
    return _db_manager


def close_db() -> None:
    """Dispose of the process-wide engine, if any."""
    global _db_manager
    if _db_manager is not None:
        _db_manager.close()
        _db_manager = None
