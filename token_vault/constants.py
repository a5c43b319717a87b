"""
Constants and enums for the token vault.

This module centralizes magic strings and sizes used throughout the
package so that configuration, crypto and persistence agree on them.
"""

from enum import Enum


class LogLevel(str, Enum):
    """Standard logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class EnvironmentVariable(str, Enum):
    """Standard environment variable names."""

    AZURE_STORAGE_CONNECTION = "AzureWebJobsStorage"
    DATABASE_URL = "DATABASE_URL"
    LOG_LEVEL = "LOG_LEVEL"
    ENCRYPTION_KEY = "ENCRYPTION_KEY"


class QueueName(str, Enum):
    """Queue names used by the log sink."""

    LOGS = "logs-queue"


# AES-256-GCM parameters
class CipherSizes:
    """Byte sizes for the at-rest token cipher."""

    KEY_BYTES = 32
    IV_BYTES = 12
    TAG_BYTES = 16


class PayloadField(str, Enum):
    """Field names of a serialized encrypted payload."""

    CIPHERTEXT = "ciphertext"
    IV = "iv"
    TAG = "tag"


class Limits:
    """System limits and thresholds."""

    MAX_USER_ID_LENGTH = 255
    MAX_REPO_NAME_LENGTH = 255
    DEFAULT_LOG_BATCH_SIZE = 10
