"""
Unit tests for IntegrationConnectionService.

Uses the SQLite test database. Tokens must be encrypted at rest, decrypted on
read, and legacy plaintext records handled by the looks_encrypted path.
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.orm import Session

from token_vault.config import AppConfig, FeatureFlags, SecurityConfig
from token_vault.db import IntegrationConnection
from token_vault.enums import IntegrationProvider
from token_vault.exceptions import (
    AuthenticationFailureError,
    ConfigurationError,
    IntegrationNotConnectedError,
    MalformedPayloadError,
    ValidationError,
)
from token_vault.services.integration_service import IntegrationConnectionService


@pytest.fixture
def service(db_session: Session, cipher) -> IntegrationConnectionService:
    return IntegrationConnectionService(db_session, cipher, allow_legacy_plaintext=True)


def _insert_raw(session: Session, user_id: str, provider: str, access_token, refresh_token=None):
    record = IntegrationConnection(
        user_id=user_id,
        provider=provider,
        access_token=access_token,
        refresh_token=refresh_token,
        connection_metadata={},
    )
    session.add(record)
    session.commit()
    return record


def _stored_row(session: Session, user_id: str, provider: str) -> IntegrationConnection:
    return (
        session.query(IntegrationConnection)
        .filter_by(user_id=user_id, provider=provider)
        .one()
    )


class TestConstruction:
    """The service refuses to run without a cipher."""

    def test_requires_cipher(self, db_session):
        with pytest.raises(ConfigurationError):
            IntegrationConnectionService(db_session, None)  # type: ignore[arg-type]

    def test_from_config(self, db_session):
        config = AppConfig(
            security=SecurityConfig(encryption_key="k" * 32),
            features=FeatureFlags(allow_legacy_plaintext_tokens=False),
        )
        service = IntegrationConnectionService.from_config(db_session, config)
        assert service.allow_legacy_plaintext is False

    def test_from_config_without_key_is_fatal(self, db_session):
        config = AppConfig(security=SecurityConfig(encryption_key=None))
        with pytest.raises(ConfigurationError):
            IntegrationConnectionService.from_config(db_session, config)


class TestSaveConnection:
    """Tokens are encrypted before they reach the database."""

    def test_access_token_is_encrypted_at_rest(self, service, db_session, cipher, sample_user_id):
        service.save_connection(sample_user_id, "github", "ghp_exampleToken1234")

        row = _stored_row(db_session, sample_user_id, "github")
        assert "ghp_exampleToken1234" not in row.access_token
        assert cipher.looks_encrypted(row.access_token)
        assert cipher.decrypt_token(row.access_token) == "ghp_exampleToken1234"

    def test_refresh_token_is_encrypted_at_rest(self, service, db_session, cipher, sample_user_id):
        service.save_connection(
            sample_user_id, IntegrationProvider.VERCEL, "vercel-access", refresh_token="vercel-refresh"
        )

        row = _stored_row(db_session, sample_user_id, "vercel")
        assert cipher.decrypt_token(row.refresh_token) == "vercel-refresh"

    def test_without_refresh_token(self, service, db_session, sample_user_id):
        service.save_connection(sample_user_id, "github", "ghp_exampleToken1234")
        assert _stored_row(db_session, sample_user_id, "github").refresh_token is None

    def test_returns_record_id(self, service, db_session, sample_user_id):
        record_id = service.save_connection(sample_user_id, "github", "ghp_exampleToken1234")
        assert _stored_row(db_session, sample_user_id, "github").id == record_id

    def test_upsert_replaces_existing_connection(self, service, db_session, sample_user_id):
        first_id = service.save_connection(sample_user_id, "github", "ghp_old", metadata={"login": "a"})
        second_id = service.save_connection(sample_user_id, "github", "ghp_new", metadata={"login": "b"})

        assert first_id == second_id
        assert db_session.query(IntegrationConnection).count() == 1
        assert service.get_decrypted_token(sample_user_id, "github") == "ghp_new"
        assert service.get_metadata(sample_user_id, "github") == {"login": "b"}

    def test_upsert_clears_refresh_token(self, service, sample_user_id):
        service.save_connection(sample_user_id, "vercel", "access", refresh_token="refresh")
        service.save_connection(sample_user_id, "vercel", "access-2")
        assert service.get_refresh_token(sample_user_id, "vercel") is None

    def test_stores_expiry_and_metadata(self, service, sample_user_id):
        expires_at = datetime.now(timezone.utc) + timedelta(hours=8)
        service.save_connection(
            sample_user_id,
            "supabase_pat",
            "sbp_token",
            metadata={"organization": "acme"},
            expires_at=expires_at,
        )

        connection = service.get_connection(sample_user_id, "supabase_pat")
        assert connection.token_expires_at is not None
        assert connection.metadata == {"organization": "acme"}

    def test_unknown_provider(self, service, sample_user_id):
        with pytest.raises(ValidationError) as exc_info:
            service.save_connection(sample_user_id, "gitlab", "token")
        assert exc_info.value.context["field"] == "provider"

    def test_empty_access_token(self, service, sample_user_id):
        with pytest.raises(ValidationError) as exc_info:
            service.save_connection(sample_user_id, "github", "")
        assert exc_info.value.context["field"] == "access_token"
        assert exc_info.value.context["value"] == "***"

    @pytest.mark.parametrize("user_id", [None, "", "   "])
    def test_missing_user_id(self, service, user_id):
        with pytest.raises(ValidationError) as exc_info:
            service.save_connection(user_id, "github", "ghp_exampleToken1234")
        assert exc_info.value.context["field"] == "user_id"

    def test_tokens_are_stored_exactly_as_given(self, service, sample_user_id):
        service.save_connection(
            sample_user_id, "vercel", " tok-with-space\n", refresh_token="\trefresh "
        )

        assert service.get_decrypted_token(sample_user_id, "vercel") == " tok-with-space\n"
        assert service.get_refresh_token(sample_user_id, "vercel") == "\trefresh "

    def test_metadata_is_none_when_not_given(self, service, sample_user_id):
        service.save_connection(sample_user_id, "github", "ghp_exampleToken1234")

        assert service.get_metadata(sample_user_id, "github") is None
        assert service.get_connection(sample_user_id, "github").metadata is None


class TestReadConnection:
    """Reading decrypted tokens and the non-secret view."""

    def test_end_to_end(self, service, sample_user_id):
        service.save_connection(sample_user_id, "github", "ghp_exampleToken1234")
        assert service.get_decrypted_token(sample_user_id, "github") == "ghp_exampleToken1234"

    def test_missing_connection(self, service, sample_user_id):
        assert service.get_decrypted_token(sample_user_id, "github") is None
        assert service.get_refresh_token(sample_user_id, "github") is None
        assert service.get_connection(sample_user_id, "github") is None
        assert service.get_metadata(sample_user_id, "github") is None

    def test_connection_view_has_no_secrets(self, service, sample_user_id):
        service.save_connection(
            sample_user_id, "vercel", "vercel-access", refresh_token="vercel-refresh"
        )

        connection = service.get_connection(sample_user_id, "vercel")
        dumped = connection.model_dump_json()
        assert connection.provider == IntegrationProvider.VERCEL
        assert connection.has_access_token is True
        assert connection.has_refresh_token is True
        assert "vercel-access" not in dumped
        assert "ciphertext" not in dumped

    def test_list_connections(self, service, sample_user_id):
        service.save_connection(sample_user_id, "vercel", "v")
        service.save_connection(sample_user_id, "github", "g")
        service.save_connection("someone-else", "github", "x")

        providers = [c.provider for c in service.list_connections(sample_user_id)]
        assert providers == [IntegrationProvider.GITHUB, IntegrationProvider.VERCEL]

    def test_owner_isolation(self, service, sample_user_id):
        service.save_connection(sample_user_id, "github", "mine")
        service.save_connection("other-user", "github", "theirs")

        assert service.get_decrypted_token(sample_user_id, "github") == "mine"
        assert service.get_decrypted_token("other-user", "github") == "theirs"

    def test_require_token(self, service, sample_user_id):
        service.save_connection(sample_user_id, "github", "ghp_exampleToken1234")
        assert service.require_token(sample_user_id, "github") == "ghp_exampleToken1234"

    def test_require_token_not_connected(self, service, sample_user_id):
        with pytest.raises(IntegrationNotConnectedError):
            service.require_token(sample_user_id, "github")


class TestCryptoFailures:
    """Failures propagate from reads; only is_connected degrades."""

    def test_wrong_key_propagates(self, db_session, cipher, other_cipher, sample_user_id):
        IntegrationConnectionService(db_session, cipher).save_connection(
            sample_user_id, "github", "ghp_exampleToken1234"
        )
        reader = IntegrationConnectionService(db_session, other_cipher)

        with pytest.raises(AuthenticationFailureError) as exc_info:
            reader.get_decrypted_token(sample_user_id, "github")
        assert exc_info.value.context["provider"] == "github"
        assert exc_info.value.context["token_field"] == "access_token"

    def test_corrupted_payload_propagates(self, service, db_session, sample_user_id):
        _insert_raw(
            db_session,
            sample_user_id,
            "github",
            '{"ciphertext": "@@@", "iv": "AAAAAAAAAAAAAAAA", "tag": "AAAAAAAAAAAAAAAAAAAAAA=="}',
        )
        with pytest.raises(MalformedPayloadError):
            service.get_decrypted_token(sample_user_id, "github")

    def test_is_connected_degrades_on_crypto_failure(
        self, db_session, cipher, other_cipher, sample_user_id
    ):
        IntegrationConnectionService(db_session, cipher).save_connection(
            sample_user_id, "github", "ghp_exampleToken1234"
        )
        reader = IntegrationConnectionService(db_session, other_cipher)

        assert reader.is_connected(sample_user_id, "github") is False

    def test_require_token_translates_crypto_failure(
        self, db_session, cipher, other_cipher, sample_user_id
    ):
        IntegrationConnectionService(db_session, cipher).save_connection(
            sample_user_id, "github", "ghp_exampleToken1234"
        )
        reader = IntegrationConnectionService(db_session, other_cipher)

        with pytest.raises(IntegrationNotConnectedError) as exc_info:
            reader.require_token(sample_user_id, "github")
        assert isinstance(exc_info.value.cause, AuthenticationFailureError)

    def test_is_connected(self, service, sample_user_id):
        assert service.is_connected(sample_user_id, "github") is False
        service.save_connection(sample_user_id, "github", "ghp_exampleToken1234")
        assert service.is_connected(sample_user_id, "github") is True


class TestLegacyPlaintext:
    """Records written before encryption hold plaintext."""

    def test_legacy_token_returned_as_is(self, service, db_session, sample_user_id):
        _insert_raw(db_session, sample_user_id, "github", "ghp_legacyPlaintext")
        assert service.get_decrypted_token(sample_user_id, "github") == "ghp_legacyPlaintext"
        assert service.is_connected(sample_user_id, "github") is True

    def test_legacy_token_rejected_when_disabled(self, db_session, cipher, sample_user_id):
        _insert_raw(db_session, sample_user_id, "github", "ghp_legacyPlaintext")
        strict = IntegrationConnectionService(db_session, cipher, allow_legacy_plaintext=False)

        with pytest.raises(MalformedPayloadError):
            strict.get_decrypted_token(sample_user_id, "github")
        assert strict.is_connected(sample_user_id, "github") is False

    def test_migrate_legacy_tokens(self, service, db_session, cipher, sample_user_id):
        _insert_raw(db_session, sample_user_id, "github", "ghp_legacy", refresh_token=None)
        _insert_raw(db_session, sample_user_id, "vercel", "vercel_legacy", refresh_token="refresh_legacy")
        service.save_connection(sample_user_id, "supabase_pat", "sbp_already_encrypted")

        assert service.migrate_legacy_tokens() == 2

        for provider in ("github", "vercel", "supabase_pat"):
            assert cipher.looks_encrypted(_stored_row(db_session, sample_user_id, provider).access_token)
        assert service.get_decrypted_token(sample_user_id, "github") == "ghp_legacy"
        assert service.get_refresh_token(sample_user_id, "vercel") == "refresh_legacy"
        assert service.get_decrypted_token(sample_user_id, "supabase_pat") == "sbp_already_encrypted"

    def test_migrate_is_idempotent(self, service, db_session, sample_user_id):
        _insert_raw(db_session, sample_user_id, "github", "ghp_legacy")
        assert service.migrate_legacy_tokens() == 1
        assert service.migrate_legacy_tokens() == 0


class TestDeleteConnection:
    """The disconnect flow removes stored tokens."""

    def test_delete(self, service, db_session, sample_user_id):
        service.save_connection(sample_user_id, "github", "ghp_exampleToken1234")

        assert service.delete_connection(sample_user_id, "github") is True
        assert service.get_decrypted_token(sample_user_id, "github") is None
        assert db_session.query(IntegrationConnection).count() == 0

    def test_delete_missing(self, service, sample_user_id):
        assert service.delete_connection(sample_user_id, "github") is False

    def test_delete_only_affects_owner(self, service, sample_user_id):
        service.save_connection(sample_user_id, "github", "mine")
        service.save_connection("other-user", "github", "theirs")

        service.delete_connection(sample_user_id, "github")
        assert service.get_decrypted_token("other-user", "github") == "theirs"


class TestOwnerRequired:
    """Every read and write is scoped to an explicit owner."""

    @pytest.fixture(autouse=True)
    def _alice_connected(self, service):
        service.save_connection("alice", "github", "ghp_alice_secret")

    @pytest.mark.parametrize("user_id", [None, "", "   "])
    def test_read_without_owner(self, service, user_id):
        with pytest.raises(ValidationError) as exc_info:
            service.get_decrypted_token(user_id, "github")
        assert exc_info.value.context["field"] == "user_id"
        assert "ghp_alice_secret" not in str(exc_info.value.context)

    @pytest.mark.parametrize(
        "method", ["get_refresh_token", "get_connection", "get_metadata", "require_token", "is_connected"]
    )
    def test_other_reads_without_owner(self, service, method):
        with pytest.raises(ValidationError):
            getattr(service, method)(None, "github")

    def test_list_without_owner(self, service):
        with pytest.raises(ValidationError):
            service.list_connections(None)

    @pytest.mark.parametrize("user_id", [None, ""])
    def test_delete_without_owner(self, service, user_id):
        with pytest.raises(ValidationError):
            service.delete_connection(user_id, "github")
        assert service.get_decrypted_token("alice", "github") == "ghp_alice_secret"
