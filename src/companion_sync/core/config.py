"""Configuration management for the character sync engine.

Configuration is loaded with pydantic-settings from environment variables
and an optional ``.env`` file. The credential vault key is held as a
SecretStr so it never appears in reprs or logs.

Example:
    >>> from companion_sync.core.config import get_settings
    >>> settings = get_settings()
    >>> settings.provider.title_id
    'BCA4C'

Environment Variables:
    COMPANION_SYNC_CREDENTIAL_KEY: Hex-encoded vault key (>= 32 bytes)
    COMPANION_SYNC_PROVIDER_TITLE_ID: Provider title identifier
    COMPANION_SYNC_PROVIDER_REQUEST_TIMEOUT_SECONDS: Per-request timeout
    COMPANION_SYNC_DATABASE_PATH: Path to the SQLite database file
    COMPANION_SYNC_LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
"""

from __future__ import annotations

import binascii
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from companion_sync.core.exceptions import ConfigurationError


MIN_CREDENTIAL_KEY_BYTES = 32


class ProviderSettings(BaseSettings):
    """Connection settings for the character provider.

    Attributes:
        title_id: Public title identifier of the provider application.
        base_url: API root; ``{title_id}`` is substituted.
        request_timeout_seconds: Timeout applied to every provider call.
        max_character_keys: Cap on record keys considered per data bag.
        list_concurrency: Worker count for per-record fan-out.
    """

    model_config = SettingsConfigDict(
        env_prefix="COMPANION_SYNC_PROVIDER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    title_id: str = Field(
        default="BCA4C",
        min_length=1,
        description="Provider title identifier",
    )
    base_url: str = Field(
        default="https://{title_id}.playfabapi.com",
        description="Provider API root URL template",
    )
    request_timeout_seconds: float = Field(
        default=30.0,
        ge=1,
        le=120,
        description="Provider request timeout",
    )
    max_character_keys: int = Field(
        default=50,
        ge=1,
        le=200,
        description="Maximum record keys read from one data bag",
    )
    list_concurrency: int = Field(
        default=8,
        ge=1,
        le=32,
        description="Concurrent per-record workers",
    )

    @property
    def api_base_url(self) -> str:
        """Return the API root with the title id substituted."""
        return self.base_url.format(title_id=self.title_id).rstrip("/")


class VaultSettings(BaseSettings):
    """Settings for the stored-credential vault.

    Attributes:
        credential_key: Hex-encoded symmetric key, at least 32 bytes decoded.
    """

    model_config = SettingsConfigDict(
        env_prefix="COMPANION_SYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    credential_key: SecretStr | None = Field(
        default=None,
        description="Hex-encoded credential encryption key",
    )

    @model_validator(mode="after")
    def validate_credential_key(self) -> "VaultSettings":
        """Ensure the key, when configured, is hex with enough entropy.

        Returns:
            Self if validation passes.

        Raises:
            ConfigurationError: If the key is not hex or is too short.
        """
        if self.credential_key is None:
            return self
        try:
            key_bytes = bytes.fromhex(self.credential_key.get_secret_value().strip())
        except (ValueError, binascii.Error) as exc:
            raise ConfigurationError(
                "credential_key must be hex encoded",
                config_key="credential_key",
            ) from exc
        if len(key_bytes) < MIN_CREDENTIAL_KEY_BYTES:
            raise ConfigurationError(
                f"credential_key must decode to at least {MIN_CREDENTIAL_KEY_BYTES} bytes",
                config_key="credential_key",
            )
        return self

    def key_bytes(self) -> bytes:
        """Return the decoded key material.

        Raises:
            ConfigurationError: If no key is configured.
        """
        if self.credential_key is None:
            raise ConfigurationError(
                "credential_key is not configured",
                config_key="credential_key",
            )
        return bytes.fromhex(self.credential_key.get_secret_value().strip())


class StorageSettings(BaseSettings):
    """Configuration for local storage.

    Attributes:
        database_path: Path to the SQLite database file.
    """

    model_config = SettingsConfigDict(
        env_prefix="COMPANION_SYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    database_path: Path = Field(
        default=Path("data/companion_sync.db"),
        description="Path to SQLite database",
    )


class Settings(BaseSettings):
    """Main settings aggregating all configuration domains.

    Attributes:
        app_name: Application name.
        debug: Enable debug mode.
        log_level: Application logging level.
        provider: Provider connection settings.
        vault: Credential vault settings.
        storage: Local storage settings.
    """

    model_config = SettingsConfigDict(
        env_prefix="COMPANION_SYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_nested_delimiter="__",
    )

    app_name: str = Field(
        default="Companion Character Sync",
        description="Application name",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )

    provider: ProviderSettings = Field(default_factory=ProviderSettings)
    vault: VaultSettings = Field(default_factory=VaultSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return not self.debug


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the application settings singleton.

    Returns:
        The application Settings instance.

    Raises:
        ConfigurationError: If required configuration is missing or invalid.
    """
    try:
        return Settings()
    except ConfigurationError:
        raise
    except Exception as exc:
        raise ConfigurationError(
            f"Failed to load application settings: {exc}",
            details={"original_error": type(exc).__name__},
        ) from exc


def clear_settings_cache() -> None:
    """Clear the settings cache, forcing a reload on next access."""
    get_settings.cache_clear()
