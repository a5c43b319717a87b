"""
Encrypted storage for third-party integration tokens.

TokenCipher encrypts OAuth access tokens and PATs with AES-256-GCM before
they are persisted; IntegrationConnectionService stores them per user and
provider.
"""

from .crypto import (
    EncryptedPayload,
    PayloadParseResult,
    TokenCipher,
    deserialize,
    looks_encrypted,
    parse_payload,
    serialize,
)
from .exceptions import (
    AuthenticationFailureError,
    ConfigurationError,
    MalformedPayloadError,
    TokenCipherError,
)

__version__ = "0.1.0"

__all__ = [
    "AuthenticationFailureError",
    "ConfigurationError",
    "EncryptedPayload",
    "MalformedPayloadError",
    "PayloadParseResult",
    "TokenCipher",
    "TokenCipherError",
    "deserialize",
    "looks_encrypted",
    "parse_payload",
    "serialize",
]
