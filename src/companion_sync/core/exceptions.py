"""Custom exception hierarchy for the character sync engine.

All exceptions inherit from CompanionSyncError so callers can catch every
failure of the subsystem at one boundary while still branching on the
domain-specific subclasses.

Each exception carries two messages: ``message`` for operators (logged,
may include record keys and provider error codes) and ``user_message``,
which is safe to show a human. Neither ever contains passwords, ciphertext
or raw record payloads.

Example:
    >>> from companion_sync.core.exceptions import NotFoundError
    >>> raise NotFoundError("Character not found", record_key="character3")
"""

from __future__ import annotations

from typing import Any


GENERIC_READ_FAILURE = "Failed to read character data"


class CompanionSyncError(Exception):
    """Base exception for all sync engine errors.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary containing additional error context.
        user_message: Message safe to surface to an end user.
    """

    default_user_message: str = "Character sync failed"

    def __init__(
        self,
        message: str,
        *,
        details: dict[str, Any] | None = None,
        user_message: str | None = None,
    ) -> None:
        """Initialize the base exception.

        Args:
            message: Human-readable error description.
            details: Optional dictionary containing additional error context.
            user_message: Override for the user-facing message.
        """
        self.message = message
        self.details = details or {}
        self.user_message = user_message or self.default_user_message
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v!r}" for k, v in self.details.items())
            return f"{self.message} [{detail_str}]"
        return self.message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(message={self.message!r}, details={self.details!r})"


# =============================================================================
# Provider Domain Exceptions
# =============================================================================


class ProviderError(CompanionSyncError):
    """Base exception for failures talking to the character provider."""

    default_user_message = "The character service returned an error"

    def __init__(
        self,
        message: str,
        *,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
        user_message: str | None = None,
    ) -> None:
        """Initialize provider error with the provider's error code.

        Args:
            message: Human-readable error description.
            error_code: Provider error name (e.g. ``AccountNotFound``).
            details: Optional dictionary containing additional error context.
            user_message: Override for the user-facing message.
        """
        combined_details = details or {}
        if error_code:
            combined_details["error_code"] = error_code
        self.error_code = error_code
        super().__init__(message, details=combined_details, user_message=user_message)


class AuthenticationError(ProviderError):
    """Raised when the provider rejects the supplied credentials.

    The provider's reason is surfaced verbatim since it is user-correctable
    (wrong password, unknown account).
    """

    def __init__(
        self,
        reason: str,
        *,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.reason = reason
        super().__init__(
            f"Authentication failed: {reason}",
            error_code=error_code,
            details=details,
            user_message=reason,
        )


class SessionExpiredError(ProviderError):
    """Raised when a previously issued session is no longer accepted."""

    default_user_message = "Your character service session has expired, please log in again"


class UpstreamUnavailableError(ProviderError):
    """Raised on network failures, timeouts and provider 5xx responses."""

    default_user_message = "The character service is unavailable, try again later"


class NotFoundError(ProviderError):
    """Raised when a requested record key is absent from the data bag."""

    default_user_message = "Character not found"

    def __init__(
        self,
        message: str,
        *,
        record_key: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        combined_details = details or {}
        if record_key:
            combined_details["record_key"] = record_key
        super().__init__(message, details=combined_details, user_message=message)


class InvalidShareKeyError(ProviderError):
    """Raised when a share key does not have the expected shape."""

    default_user_message = "That share key is not valid"


# =============================================================================
# Ingestion Domain Exceptions
# =============================================================================


class IngestionError(CompanionSyncError):
    """Base exception for decoding and normalizing record payloads."""

    default_user_message = GENERIC_READ_FAILURE

    def __init__(
        self,
        message: str,
        *,
        record_key: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize ingestion error with the record key for context.

        Args:
            message: Human-readable error description.
            record_key: Data bag key of the record that failed.
            details: Optional dictionary containing additional error context.
        """
        combined_details = details or {}
        if record_key:
            combined_details["record_key"] = record_key
        self.record_key = record_key
        super().__init__(message, details=combined_details)


class DecodeExhaustedError(IngestionError):
    """Raised when every decode strategy failed for a record value.

    Only the names of the attempted strategies are kept, never the payload.
    """

    def __init__(
        self,
        message: str,
        *,
        record_key: str | None = None,
        attempted: list[str] | None = None,
    ) -> None:
        details: dict[str, Any] = {}
        if attempted:
            details["attempted"] = attempted
        super().__init__(message, record_key=record_key, details=details)


# =============================================================================
# Credential Vault Exceptions
# =============================================================================


class VaultError(CompanionSyncError):
    """Base exception for stored-credential handling."""

    default_user_message = GENERIC_READ_FAILURE


class CorruptSecretError(VaultError):
    """Raised when a stored secret is not ``hex(iv):hex(ciphertext)``."""


class DecryptionError(VaultError):
    """Raised when a stored secret fails padding or text decoding."""


class NoStoredCredentialsError(VaultError):
    """Raised when a refresh is attempted without linked credentials."""

    default_user_message = "No saved login for the character service, please connect your account"

    def __init__(self, message: str, *, account_id: str | int | None = None) -> None:
        details: dict[str, Any] = {}
        if account_id is not None:
            details["account_id"] = account_id
        super().__init__(message, details=details)


# =============================================================================
# Storage and Configuration Exceptions
# =============================================================================


class StorageError(CompanionSyncError):
    """Raised when the local character store cannot complete an operation."""

    default_user_message = "Could not save character data"


class ConfigurationError(CompanionSyncError):
    """Raised when configuration is missing or invalid.

    Attributes:
        config_key: Name of the offending setting.
    """

    default_user_message = "The character sync service is misconfigured"

    def __init__(
        self,
        message: str,
        *,
        config_key: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        combined_details = details or {}
        if config_key:
            combined_details["config_key"] = config_key
        self.config_key = config_key
        super().__init__(message, details=combined_details)
