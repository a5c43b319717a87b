"""
AES-256-GCM encryption for third-party tokens stored at rest.

The key is exactly 32 raw bytes; a str key is taken as its UTF-8 bytes and is
not stretched through a KDF. Every encryption draws a fresh 12-byte nonce from
the OS random source and binds no associated data.
"""

import os
from typing import Optional, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..config import AppConfig, get_config
from ..constants import CipherSizes, EnvironmentVariable
from ..exceptions import (
    AuthenticationFailureError,
    ConfigurationError,
    MalformedPayloadError,
    ValidationError,
)
from .payload import EncryptedPayload, deserialize, looks_encrypted, serialize

KeyMaterial = Union[bytes, bytearray, str]


def _key_bytes(key: Optional[KeyMaterial]) -> bytes:
    setting = EnvironmentVariable.ENCRYPTION_KEY.value
    if key is None or (isinstance(key, (str, bytes, bytearray)) and not key):
        raise ConfigurationError(f"{setting} is not set", setting=setting)
    if isinstance(key, str):
        raw = key.encode("utf-8")
    elif isinstance(key, (bytes, bytearray)):
        raw = bytes(key)
    else:
        raise ConfigurationError(
            f"{setting} must be bytes or str", setting=setting, actual_type=type(key).__name__
        )
    if len(raw) != CipherSizes.KEY_BYTES:
        raise ConfigurationError(
            f"{setting} must be exactly {CipherSizes.KEY_BYTES} bytes",
            setting=setting,
            key_length=len(raw),
        )
    return raw


class TokenCipher:
    """
    Symmetric authenticated encryption for credential material.

    Instances are immutable and safe to share across threads.
    """

    def __init__(self, key: Optional[KeyMaterial]):
        """
        Args:
            key: 32-byte AES-256 key

        Raises:
            ConfigurationError: If the key is missing or not exactly 32 bytes
        """
        self._aead = AESGCM(_key_bytes(key))

    @classmethod
    def from_config(cls, config: Optional[AppConfig] = None) -> "TokenCipher":
        """Build a cipher from `security.encryption_key` (ENCRYPTION_KEY)."""
        config = config or get_config()
        return cls(config.security.encryption_key)

    def __repr__(self) -> str:
        return "TokenCipher(key=***)"

    def encrypt(self, plaintext: str) -> EncryptedPayload:
        """Encrypt a UTF-8 string. The empty string is allowed."""
        if not isinstance(plaintext, str):
            raise ValidationError(
                "plaintext must be a string",
                field="plaintext",
                actual_type=type(plaintext).__name__,
            )

        iv = os.urandom(CipherSizes.IV_BYTES)
        sealed = self._aead.encrypt(iv, plaintext.encode("utf-8"), None)
        return EncryptedPayload(
            ciphertext=sealed[: -CipherSizes.TAG_BYTES],
            iv=iv,
            tag=sealed[-CipherSizes.TAG_BYTES :],
        )

    def decrypt(self, payload: EncryptedPayload) -> str:
        """
        Verify the tag and return the plaintext.

        Raises:
            MalformedPayloadError: If iv or tag have the wrong length
            AuthenticationFailureError: If the tag does not verify
        """
        if len(payload.iv) != CipherSizes.IV_BYTES:
            raise MalformedPayloadError(
                f"iv must be {CipherSizes.IV_BYTES} bytes", field="iv", length=len(payload.iv)
            )
        if len(payload.tag) != CipherSizes.TAG_BYTES:
            raise MalformedPayloadError(
                f"tag must be {CipherSizes.TAG_BYTES} bytes", field="tag", length=len(payload.tag)
            )

        try:
            data = self._aead.decrypt(payload.iv, payload.ciphertext + payload.tag, None)
        except InvalidTag as e:
            raise AuthenticationFailureError(cause=e) from e

        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedPayloadError("Decrypted payload is not valid UTF-8", cause=e) from e

    def encrypt_token(self, token: str) -> str:
        """Encrypt a token and return the text to store."""
        return serialize(self.encrypt(token))

    def decrypt_token(self, stored: str) -> str:
        """Decrypt text produced by encrypt_token()."""
        return self.decrypt(deserialize(stored))

    serialize = staticmethod(serialize)
    deserialize = staticmethod(deserialize)
    looks_encrypted = staticmethod(looks_encrypted)
