"""Tests for the exception hierarchy."""

from __future__ import annotations

import pytest

from companion_sync.core.exceptions import (
    GENERIC_READ_FAILURE,
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


class TestCompanionSyncError:
    """Tests for the base CompanionSyncError exception."""

    def test_basic_message(self) -> None:
        """Test exception with basic message."""
        exc = CompanionSyncError("Test error message")
        assert exc.message == "Test error message"
        assert exc.details == {}
        assert str(exc) == "Test error message"
        assert exc.user_message == "Character sync failed"

    def test_with_details(self) -> None:
        """Test exception with additional details."""
        exc = CompanionSyncError("Test error", details={"key": "value", "count": 42})
        assert "key='value'" in str(exc)
        assert "count=42" in str(exc)

    def test_user_message_override(self) -> None:
        """Test an explicit user message replaces the default."""
        exc = CompanionSyncError("internal detail", user_message="Try again")
        assert exc.user_message == "Try again"

    def test_repr(self) -> None:
        """Test exception repr output."""
        repr_str = repr(CompanionSyncError("Test", details={"x": 1}))
        assert "CompanionSyncError" in repr_str
        assert "x" in repr_str


class TestProviderExceptions:
    """Tests for provider-related exceptions."""

    def test_provider_error_code(self) -> None:
        """Test the provider's error name is kept."""
        exc = ProviderError("User not found", error_code="AccountNotFound")
        assert exc.error_code == "AccountNotFound"

    def test_authentication_reason_is_user_facing(self) -> None:
        """Test the provider's rejection reason reaches the user verbatim."""
        exc = AuthenticationError("Invalid username or password", error_code="InvalidUsernameOrPassword")
        assert exc.reason == "Invalid username or password"
        assert exc.user_message == "Invalid username or password"
        assert "Authentication failed" in exc.message

    def test_not_found_record_key(self) -> None:
        """Test NotFoundError records the key."""
        exc = NotFoundError("Character not found", record_key="character3")
        assert exc.details["record_key"] == "character3"
        assert exc.user_message == "Character not found"

    @pytest.mark.parametrize(
        "exc_class",
        [AuthenticationError, SessionExpiredError, UpstreamUnavailableError, NotFoundError, InvalidShareKeyError],
    )
    def test_inheritance(self, exc_class: type[Exception]) -> None:
        """Test provider exceptions share one base."""
        assert issubclass(exc_class, ProviderError)
        assert issubclass(exc_class, CompanionSyncError)


class TestIngestionExceptions:
    """Tests for ingestion-related exceptions."""

    def test_decode_exhausted_lists_attempts(self) -> None:
        """Test attempted strategy names are recorded."""
        exc = DecodeExhaustedError("no luck", record_key="character1", attempted=["zlib", "raw-deflate"])
        assert exc.record_key == "character1"
        assert exc.details["attempted"] == ["zlib", "raw-deflate"]
        assert isinstance(exc, IngestionError)

    def test_generic_user_message(self) -> None:
        """Test decode failures show the generic message."""
        assert DecodeExhaustedError("x").user_message == GENERIC_READ_FAILURE


class TestVaultExceptions:
    """Tests for credential vault exceptions."""

    @pytest.mark.parametrize("exc_class", [CorruptSecretError, DecryptionError])
    def test_generic_user_message(self, exc_class: type[VaultError]) -> None:
        """Test vault failures never leak details to the user."""
        exc = exc_class("padding check failed at byte 7")
        assert exc.user_message == GENERIC_READ_FAILURE

    def test_no_stored_credentials_account(self) -> None:
        """Test the account id is kept for context."""
        exc = NoStoredCredentialsError("missing", account_id="42")
        assert exc.details == {"account_id": "42"}


class TestOtherExceptions:
    """Tests for storage and configuration exceptions."""

    def test_configuration_error_key(self) -> None:
        """Test ConfigurationError records the config key."""
        exc = ConfigurationError("bad", config_key="credential_key")
        assert exc.config_key == "credential_key"
        assert exc.details["config_key"] == "credential_key"

    def test_storage_error(self) -> None:
        """Test StorageError user message."""
        assert StorageError("locked").user_message == "Could not save character data"
