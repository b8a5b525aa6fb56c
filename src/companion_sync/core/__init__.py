"""Core module providing configuration, logging, and base exceptions.

Exports:
    Exceptions:
        CompanionSyncError: Base exception for all subsystem errors.
        ProviderError and subclasses: provider call failures.
        IngestionError, DecodeExhaustedError: payload decoding failures.
        VaultError and subclasses: stored credential failures.

    Configuration:
        Settings: Main settings class.
        get_settings: Get the settings singleton.
        clear_settings_cache: Force settings reload.

    Logging:
        configure_logging: Set up application logging.
        get_logger: Get a configured logger instance.
        bind_context: Add context to log entries.
        clear_context: Clear logging context.
"""

from __future__ import annotations

from companion_sync.core.config import (
    ProviderSettings,
    Settings,
    StorageSettings,
    VaultSettings,
    clear_settings_cache,
    get_settings,
)
from companion_sync.core.exceptions import (
    AuthenticationError,
    CompanionSyncError,
    ConfigurationError,
    CorruptSecretError,
    DecodeExhaustedError,
    DecryptionError,
    IngestionError,
    InvalidShareKeyError,
    NoStoredCredentialsError,
    NotFoundError,
    ProviderError,
    SessionExpiredError,
    StorageError,
    UpstreamUnavailableError,
    VaultError,
)
from companion_sync.core.logging import (
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
)


__all__ = [
    # Base exception
    "CompanionSyncError",
    # Provider exceptions
    "ProviderError",
    "AuthenticationError",
    "SessionExpiredError",
    "UpstreamUnavailableError",
    "NotFoundError",
    "InvalidShareKeyError",
    # Ingestion exceptions
    "IngestionError",
    "DecodeExhaustedError",
    # Vault exceptions
    "VaultError",
    "CorruptSecretError",
    "DecryptionError",
    "NoStoredCredentialsError",
    # Storage / configuration exceptions
    "StorageError",
    "ConfigurationError",
    # Configuration
    "Settings",
    "ProviderSettings",
    "VaultSettings",
    "StorageSettings",
    "get_settings",
    "clear_settings_cache",
    # Logging
    "configure_logging",
    "get_logger",
    "bind_context",
    "clear_context",
]
