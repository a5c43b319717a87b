"""
At-rest representation of an encrypted token and its text serialization.

A payload is stored in a single text column as a JSON object with three
standard-base64 fields:

    {"ciphertext": "...", "iv": "...", "tag": "..."}

Field order does not matter and unknown fields are ignored. The iv decodes to
exactly 12 bytes and the tag to exactly 16; the ciphertext may be empty.
"""

import base64
import json
from dataclasses import dataclass
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, field_serializer, field_validator
from pydantic import ValidationError as PydanticValidationError

from ..constants import CipherSizes, PayloadField
from ..exceptions import MalformedPayloadError

PAYLOAD_FIELDS = tuple(field.value for field in PayloadField)


class EncryptedPayload(BaseModel):
    """Ciphertext, nonce and GCM tag as raw bytes. Immutable."""

    model_config = ConfigDict(frozen=True, strict=True, extra="ignore")

    ciphertext: bytes
    iv: bytes
    tag: bytes

    @field_validator("iv")
    @classmethod
    def validate_iv_length(cls, v: bytes) -> bytes:
        if len(v) != CipherSizes.IV_BYTES:
            raise ValueError(f"iv must be {CipherSizes.IV_BYTES} bytes, got {len(v)}")
        return v

    @field_validator("tag")
    @classmethod
    def validate_tag_length(cls, v: bytes) -> bytes:
        if len(v) != CipherSizes.TAG_BYTES:
            raise ValueError(f"tag must be {CipherSizes.TAG_BYTES} bytes, got {len(v)}")
        return v

    @field_serializer("ciphertext", "iv", "tag")
    def encode_base64(self, value: bytes) -> str:
        return base64.b64encode(value).decode("ascii")


@dataclass(frozen=True)
class PayloadParseResult:
    """Outcome of parsing stored text: exactly one of payload or error is set."""

    payload: Optional[EncryptedPayload] = None
    error: Optional[MalformedPayloadError] = None

    @property
    def ok(self) -> bool:
        return self.payload is not None

    def unwrap(self) -> EncryptedPayload:
        """Return the payload or raise the parse error."""
        if self.payload is None:
            raise self.error or MalformedPayloadError()
        return self.payload


def _decode_field(raw: dict, field: str) -> bytes:
    value = raw.get(field)
    if value is None:
        raise MalformedPayloadError(f"Encrypted payload is missing '{field}'", field=field)
    if not isinstance(value, str):
        raise MalformedPayloadError(
            f"Encrypted payload field '{field}' must be a base64 string",
            field=field,
            actual_type=type(value).__name__,
        )
    try:
        return base64.b64decode(value, validate=True)
    except ValueError as e:
        raise MalformedPayloadError(
            f"Encrypted payload field '{field}' is not valid base64", field=field, cause=e
        ) from e


def parse_payload(text: Any) -> PayloadParseResult:
    """
    Parse stored text into an EncryptedPayload without raising.

    Args:
        text: Text previously produced by serialize()

    Returns:
        PayloadParseResult holding the payload, or the MalformedPayloadError
        describing why the text is not a valid payload
    """
    try:
        if not isinstance(text, str):
            raise MalformedPayloadError(
                "Encrypted payload must be text", actual_type=type(text).__name__
            )
        try:
            raw = json.loads(text)
        except (ValueError, RecursionError) as e:
            raise MalformedPayloadError("Encrypted payload is not valid JSON", cause=e) from e
        if not isinstance(raw, dict):
            raise MalformedPayloadError(
                "Encrypted payload must be a JSON object", actual_type=type(raw).__name__
            )

        decoded = {field: _decode_field(raw, field) for field in PAYLOAD_FIELDS}
        try:
            payload = EncryptedPayload(**decoded)
        except PydanticValidationError as e:
            first = e.errors()[0]
            field = str(first["loc"][0]) if first.get("loc") else None
            raise MalformedPayloadError(
                f"Encrypted payload has invalid field lengths: {first['msg']}",
                field=field,
                cause=e,
            ) from e
    except MalformedPayloadError as error:
        return PayloadParseResult(error=error)

    return PayloadParseResult(payload=payload)


def serialize(payload: EncryptedPayload) -> str:
    """Serialize a payload to the JSON text stored in the database."""
    return payload.model_dump_json()


def deserialize(text: str) -> EncryptedPayload:
    """
    Parse stored text into an EncryptedPayload.

    Never decrypts.

    Raises:
        MalformedPayloadError: If the text is not JSON, lacks a field, carries
            invalid base64, or decodes to a wrong-length iv or tag
    """
    return parse_payload(text).unwrap()


def looks_encrypted(text: Any) -> bool:
    """
    Heuristic: does this text look like a serialized payload?

    Used to tell encrypted records from plaintext tokens written before
    encryption was introduced. Only the presence of the three string fields is
    checked; base64 validity and lengths are left to deserialize().
    """
    if not isinstance(text, str):
        return False
    try:
        parsed = json.loads(text)
    except (ValueError, RecursionError):
        return False
    return isinstance(parsed, dict) and all(
        isinstance(parsed.get(field), str) for field in PAYLOAD_FIELDS
    )
