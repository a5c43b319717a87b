"""At-rest token encryption."""

from .payload import (
    EncryptedPayload,
    PayloadParseResult,
    deserialize,
    looks_encrypted,
    parse_payload,
    serialize,
)
from .token_cipher import TokenCipher

__all__ = [
    "EncryptedPayload",
    "PayloadParseResult",
    "TokenCipher",
    "deserialize",
    "looks_encrypted",
    "parse_payload",
    "serialize",
]
