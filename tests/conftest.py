"""
Shared test fixtures.

Provides an in-memory SQLite database, a fresh session per test, and token
ciphers with per-test keys so no key or state leaks between tests.
"""

import os

import pytest
from sqlalchemy.orm import Session

from token_vault.config import DatabaseConfig, reset_config
from token_vault.crypto import TokenCipher
from token_vault.db import Base, DatabaseManager, close_db, import_all_models, initialize_db
from token_vault.utils.logger import reset_logging


@pytest.fixture(scope="session")
def db_config() -> DatabaseConfig:
    """SQLite in-memory database configuration for testing."""
    return DatabaseConfig(connection_string="sqlite:///:memory:", echo=False)


@pytest.fixture(scope="session")
def db_manager(db_config: DatabaseConfig) -> DatabaseManager:
    """Database manager with all models registered."""
    import_all_models()
    manager = initialize_db(db_config)
    yield manager
    close_db()


@pytest.fixture(scope="function")
def db_session(db_manager: DatabaseManager) -> Session:
    """
    Fresh database session for each test.

    Tables are created before and dropped after every test.
    """
    Base.metadata.create_all(db_manager.engine)
    session = db_manager.get_session()

    yield session

    session.rollback()
    db_manager.close_session()
    Base.metadata.drop_all(db_manager.engine)


@pytest.fixture(autouse=True)
def _isolate_global_state():
    """Reset cached config and logger around every test."""
    reset_config()
    reset_logging()
    yield
    reset_config()
    reset_logging()


@pytest.fixture
def encryption_key() -> bytes:
    """Random 32-byte key, distinct per test."""
    return os.urandom(32)


@pytest.fixture
def cipher(encryption_key: bytes) -> TokenCipher:
    return TokenCipher(encryption_key)


@pytest.fixture
def other_cipher() -> TokenCipher:
    """Cipher with a different key than `cipher`."""
    return TokenCipher(os.urandom(32))


@pytest.fixture
def sample_user_id() -> str:
    """Standard owner ID for testing."""
    return "octocat"
