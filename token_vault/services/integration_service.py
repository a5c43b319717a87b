"""
Service for storing third-party integration tokens encrypted at rest.

Each user has at most one connection per provider. Tokens are encrypted with
TokenCipher before they are written and decrypted on demand when a caller
needs to present them to the provider's API.

Records written before encryption was enabled hold plaintext. Those are
recognized with looks_encrypted() and returned as-is (with a warning) while
`allow_legacy_plaintext_tokens` is on; migrate_legacy_tokens() rewrites them.
A record that looks encrypted but fails to decrypt is an error, never a
plaintext fallback.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from ..config import AppConfig, get_config
from ..constants import EnvironmentVariable
from ..crypto.token_cipher import TokenCipher
from ..db.db_integration_models import IntegrationConnection
from ..enums import IntegrationProvider
from ..exceptions import (
    ConfigurationError,
    ErrorCode,
    IntegrationNotConnectedError,
    MalformedPayloadError,
    RepositoryError,
    TokenCipherError,
    validation_failed,
)
from ..schemas.integration_schemas import IntegrationConnectionCreate, IntegrationConnectionRead
from ..utils.crud_helpers import delete_record, get_record, list_records, upsert_record
from ..utils.logger import get_logger

ProviderLike = Union[IntegrationProvider, str]

_TOKEN_FIELDS = ("access_token", "refresh_token")


class IntegrationConnectionService:
    """
    Encrypted-token store for provider connections.

    One instance per database session. The cipher is required: there is no
    plaintext write path.
    """

    def __init__(
        self,
        session: Session,
        cipher: TokenCipher,
        allow_legacy_plaintext: Optional[bool] = None,
    ):
        """
        Args:
            session: SQLAlchemy session owned by the caller
            cipher: Configured TokenCipher
            allow_legacy_plaintext: Return unencrypted legacy tokens as-is
                (default: features.allow_legacy_plaintext_tokens)

        Raises:
            ConfigurationError: If no cipher is given
        """
        if cipher is None:
            raise ConfigurationError(
                "IntegrationConnectionService requires a TokenCipher",
                setting=EnvironmentVariable.ENCRYPTION_KEY.value,
            )
        self.session = session
        self.cipher = cipher
        if allow_legacy_plaintext is None:
            allow_legacy_plaintext = get_config().features.allow_legacy_plaintext_tokens
        self.allow_legacy_plaintext = allow_legacy_plaintext
        self.logger = get_logger()

    @classmethod
    def from_config(
        cls, session: Session, config: Optional[AppConfig] = None
    ) -> "IntegrationConnectionService":
        """Build the service with a cipher keyed from configuration."""
        config = config or get_config()
        return cls(
            session,
            TokenCipher.from_config(config),
            allow_legacy_plaintext=config.features.allow_legacy_plaintext_tokens,
        )

    @staticmethod
    def _provider(provider: ProviderLike) -> IntegrationProvider:
        try:
            return IntegrationProvider(provider)
        except ValueError as e:
            raise validation_failed(
                "provider",
                provider,
                f"must be one of {[p.value for p in IntegrationProvider]}",
                cause=e,
            ) from e

    @staticmethod
    def _owner(user_id: Optional[str]) -> str:
        if not isinstance(user_id, str) or not user_id.strip():
            raise validation_failed("user_id", user_id, "an owner is required")
        return user_id

    def _get_record(
        self, user_id: str, provider: ProviderLike
    ) -> Optional[IntegrationConnection]:
        return get_record(
            self.session,
            IntegrationConnection,
            {"provider": self._provider(provider).value},
            self._owner(user_id),
        )

    def _reveal(self, stored: str, user_id: str, provider: IntegrationProvider, field: str) -> str:
        if self.cipher.looks_encrypted(stored):
            try:
                return self.cipher.decrypt_token(stored)
            except TokenCipherError as e:
                e.add_context(user_id=user_id, provider=provider.value, token_field=field)
                raise

        if not self.allow_legacy_plaintext:
            raise MalformedPayloadError(
                "Stored token is not encrypted",
                field=field,
                user_id=user_id,
                provider=provider.value,
            )

        self.logger.warning(
            "Returning legacy plaintext token",
            extra={"user_id": user_id, "provider": provider.value, "token_field": field},
        )
        return stored

    def save_connection(
        self,
        user_id: str,
        provider: ProviderLike,
        access_token: str,
        metadata: Optional[Dict[str, Any]] = None,
        refresh_token: Optional[str] = None,
        expires_at: Optional[datetime] = None,
    ) -> str:
        """
        Encrypt and store a provider's tokens, replacing any existing connection.

        Args:
            user_id: Owner identifier
            provider: Provider the tokens belong to
            access_token: Plaintext access token or PAT
            metadata: Optional non-secret metadata (account name, scopes)
            refresh_token: Optional plaintext refresh token
            expires_at: Optional access token expiry

        Returns:
            ID of the connection record

        Raises:
            ValidationError: If the input is invalid
            RepositoryError: If the write fails
        """
        self._owner(user_id)
        provider = self._provider(provider)
        try:
            connection = IntegrationConnectionCreate(
                user_id=user_id,
                provider=provider,
                access_token=access_token,
                refresh_token=refresh_token,
                expires_at=expires_at,
                metadata=metadata,
            )
        except PydanticValidationError as e:
            first = e.errors()[0]
            field = str(first["loc"][0]) if first.get("loc") else "connection"
            # Never echo token input into the error
            value = "***" if field in _TOKEN_FIELDS else first.get("input")
            raise validation_failed(field, value, first["msg"], cause=e) from e

        self.logger.info(
            "Storing integration connection",
            extra={
                "user_id": connection.user_id,
                "provider": provider.value,
                "has_refresh_token": connection.refresh_token is not None,
                "expires_at": expires_at.isoformat() if expires_at else None,
            },
        )

        record = upsert_record(
            self.session,
            IntegrationConnection,
            lookup={"provider": provider.value},
            data={
                "access_token": self.cipher.encrypt_token(connection.access_token),
                "refresh_token": (
                    self.cipher.encrypt_token(connection.refresh_token)
                    if connection.refresh_token
                    else None
                ),
                "token_expires_at": connection.expires_at,
                "connection_metadata": connection.metadata,
            },
            user_id=connection.user_id,
        )
        return record.id  # type: ignore[return-value]

    def get_connection(
        self, user_id: str, provider: ProviderLike
    ) -> Optional[IntegrationConnectionRead]:
        """Non-secret view of a connection, or None."""
        record = self._get_record(user_id, provider)
        if record is None:
            return None
        return IntegrationConnectionRead.from_model(record)

    def list_connections(self, user_id: str) -> List[IntegrationConnectionRead]:
        """All of a user's connections, ordered by provider."""
        records = list_records(
            self.session, IntegrationConnection, user_id=self._owner(user_id), order_by="provider"
        )
        return [IntegrationConnectionRead.from_model(record) for record in records]

    def get_decrypted_token(self, user_id: str, provider: ProviderLike) -> Optional[str]:
        """
        Get the plaintext access token for a provider.

        Returns:
            The token, or None if there is no connection or no token

        Raises:
            MalformedPayloadError: If the stored payload cannot be parsed
            AuthenticationFailureError: If the stored payload fails authentication
        """
        provider = self._provider(provider)
        record = self._get_record(user_id, provider)
        if record is None or not record.access_token:
            return None
        return self._reveal(record.access_token, user_id, provider, "access_token")  # type: ignore[arg-type]

    def get_refresh_token(self, user_id: str, provider: ProviderLike) -> Optional[str]:
        """Same as get_decrypted_token() for the refresh token."""
        provider = self._provider(provider)
        record = self._get_record(user_id, provider)
        if record is None or not record.refresh_token:
            return None
        return self._reveal(record.refresh_token, user_id, provider, "refresh_token")  # type: ignore[arg-type]

    def require_token(self, user_id: str, provider: ProviderLike) -> str:
        """
        Get the access token or fail with IntegrationNotConnectedError.

        Crypto failures are reported as "not connected" so the user is asked
        to reconnect; the original error is kept as the cause.
        """
        provider = self._provider(provider)
        try:
            token = self.get_decrypted_token(user_id, provider)
        except TokenCipherError as e:
            raise IntegrationNotConnectedError(
                f"Stored {provider.value} token is unusable; reconnect required",
                cause=e,
                user_id=user_id,
                provider=provider.value,
            ) from e
        if token is None:
            raise IntegrationNotConnectedError(
                f"{provider.value} is not connected", user_id=user_id, provider=provider.value
            )
        return token

    def get_metadata(self, user_id: str, provider: ProviderLike) -> Optional[Dict[str, Any]]:
        """Stored connection metadata; None if not connected or none was saved."""
        record = self._get_record(user_id, provider)
        if record is None:
            return None
        return record.connection_metadata  # type: ignore[return-value]

    def is_connected(self, user_id: str, provider: ProviderLike) -> bool:
        """True if a usable access token is stored. Crypto failures count as not connected."""
        provider = self._provider(provider)
        try:
            return bool(self.get_decrypted_token(user_id, provider))
        except TokenCipherError as e:
            self.logger.warning(
                "Stored token unusable; reporting integration as not connected",
                extra={
                    "user_id": user_id,
                    "provider": provider.value,
                    "error_code": e.error_code.value,
                    "error_id": e.error_id,
                },
            )
            return False

    def delete_connection(self, user_id: str, provider: ProviderLike) -> bool:
        """
        Disconnect a provider, deleting its stored tokens.

        Returns:
            True if a connection was deleted, False if none existed
        """
        provider = self._provider(provider)
        record = self._get_record(user_id, provider)
        if record is None:
            self.logger.debug(
                "No integration connection to delete",
                extra={"user_id": user_id, "provider": provider.value},
            )
            return False
        return delete_record(self.session, IntegrationConnection, record.id, user_id)  # type: ignore[arg-type]

    def migrate_legacy_tokens(self) -> int:
        """
        Encrypt every plaintext token left from before encryption was enabled.

        Returns:
            Number of connection records rewritten

        Raises:
            RepositoryError: If the write fails; nothing is committed
        """
        migrated = 0
        try:
            for record in self.session.query(IntegrationConnection).all():
                changed = False
                for field in _TOKEN_FIELDS:
                    stored = getattr(record, field)
                    if stored and not self.cipher.looks_encrypted(stored):
                        setattr(record, field, self.cipher.encrypt_token(stored))
                        changed = True
                if changed:
                    migrated += 1
            self.session.commit()
        except Exception as e:
            self.session.rollback()
            raise RepositoryError(
                "Failed to migrate legacy plaintext tokens",
                error_code=ErrorCode.DATABASE_ERROR,
                cause=e,
                migrated_before_failure=migrated,
            ) from e

        self.logger.info("Legacy token migration finished", extra={"migrated": migrated})
        return migrated
