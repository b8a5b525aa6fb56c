"""Provider session handling: login, email fallback and refresh.

Sessions are refreshed only when a caller has seen a downstream
authorization failure; nothing here polls for expiry. Refreshes for the
same account are single-flight: concurrent callers share one login.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Hashable
from typing import TYPE_CHECKING, Generic, Protocol, TypeVar

from companion_sync.auth import vault
from companion_sync.core.exceptions import (
    AuthenticationError,
    NoStoredCredentialsError,
    ProviderError,
    UpstreamUnavailableError,
)
from companion_sync.core.logging import get_logger
from companion_sync.models.provider import ExternalAuth
from companion_sync.provider.client import ProviderClient, is_account_not_found

if TYPE_CHECKING:
    from companion_sync.storage.database import StoredCredentials

logger = get_logger(__name__)

T = TypeVar("T")


class CredentialStore(Protocol):
    """Where linked provider logins and their latest session live."""

    def get_credentials(self, account_id: str) -> StoredCredentials | None: ...

    def update_session_token(self, account_id: str, session_token: str) -> None: ...


class _Call(Generic[T]):
    def __init__(self) -> None:
        self.done = threading.Event()
        self.result: T | None = None
        self.error: BaseException | None = None


class SingleFlight(Generic[T]):
    """Collapse concurrent calls with the same key into one execution.

    The first caller for a key runs the function; callers arriving while it
    is in flight block and receive the same result or exception.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._calls: dict[Hashable, _Call[T]] = {}

    def do(self, key: Hashable, fn: Callable[[], T]) -> tuple[T, bool]:
        """Run ``fn`` once per in-flight ``key``.

        Returns:
            Tuple of (result, shared) where ``shared`` is True when the
            result came from another caller's execution.
        """
        with self._lock:
            call = self._calls.get(key)
            leader = call is None
            if call is None:
                call = _Call()
                self._calls[key] = call

        if not leader:
            call.done.wait()
            if call.error is not None:
                raise call.error
            return call.result, True  # type: ignore[return-value]

        try:
            call.result = fn()
        except BaseException as exc:
            call.error = exc
            raise
        finally:
            with self._lock:
                self._calls.pop(key, None)
            call.done.set()
        return call.result, False

    def in_flight(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._calls


class SessionManager:
    """Obtains and refreshes provider sessions.

    Attributes:
        client: Provider API client.
        flights: Per-account single-flight registry for refreshes.
    """

    def __init__(
        self,
        client: ProviderClient,
        flights: SingleFlight[ExternalAuth] | None = None,
    ) -> None:
        self.client = client
        self.flights = flights if flights is not None else SingleFlight()
        self._generation_lock = threading.Lock()
        self._generations: dict[str, int] = {}

    def generation(self, account_id: str) -> int:
        """Number of re-logins ``refresh_account`` has completed for an account.

        Unchanged across a ``refresh_account`` call means the call handed
        back an already stored session rather than logging in.
        """
        with self._generation_lock:
            return self._generations.get(str(account_id), 0)

    def _advance_generation(self, account_id: str) -> None:
        with self._generation_lock:
            self._generations[account_id] = self._generations.get(account_id, 0) + 1

    def login(self, identifier: str, password: str) -> ExternalAuth:
        """Log in, treating ``identifier`` as a username then as an e-mail.

        The e-mail attempt is made exactly once, and only when the provider
        says no account has that username.

        Raises:
            AuthenticationError: If the provider rejects the credentials.
            UpstreamUnavailableError: If the provider cannot be reached.
        """
        try:
            return self.client.login_with_username(identifier, password)
        except UpstreamUnavailableError:
            raise
        except ProviderError as exc:
            if not is_account_not_found(exc):
                logger.info("Provider login rejected", error_code=exc.error_code)
                raise AuthenticationError(exc.message, error_code=exc.error_code) from exc

        logger.info("Username not found, retrying login as e-mail")
        try:
            return self.client.login_with_email(identifier, password)
        except UpstreamUnavailableError:
            raise
        except ProviderError as exc:
            logger.info("Provider e-mail login rejected", error_code=exc.error_code)
            raise AuthenticationError(exc.message, error_code=exc.error_code) from exc

    def refresh(
        self,
        stored_username: str | None,
        encrypted_password: str | None,
        key: bytes,
        *,
        flight_key: Hashable | None = None,
    ) -> ExternalAuth:
        """Log in again with stored credentials.

        Args:
            stored_username: Username (or e-mail) saved when the account
                was linked.
            encrypted_password: Serialized EncryptedSecret.
            key: Vault key material.
            flight_key: Single-flight key, normally the local account id.

        Returns:
            Fresh auth; concurrent callers with the same key share it.

        Raises:
            NoStoredCredentialsError: If either stored field is missing.
            CorruptSecretError: If the stored password is malformed.
            DecryptionError: If the stored password cannot be decrypted.
            AuthenticationError: If the provider rejects the stored login.
        """
        if not stored_username or not encrypted_password:
            raise NoStoredCredentialsError(
                "No stored provider credentials to refresh with",
                account_id=flight_key if isinstance(flight_key, (str, int)) else None,
            )

        def _relogin() -> ExternalAuth:
            password = vault.decrypt(encrypted_password, key)
            return self.login(stored_username, password)

        key_for_flight = str(flight_key) if flight_key is not None else stored_username
        auth, shared = self.flights.do(key_for_flight, _relogin)
        logger.info("Provider session refreshed", shared=shared)
        return auth

    def refresh_account(
        self,
        account_id: str,
        credentials: CredentialStore,
        key: bytes,
        *,
        stale_token: str | None = None,
    ) -> ExternalAuth:
        """Refresh the session linked to a local account and persist it.

        Runs as one flight per account. If the stored token already differs
        from ``stale_token`` another caller refreshed first, and the stored
        token is returned without logging in again. That token is not
        verified; a caller whose retry fails on it should refresh again with
        it as ``stale_token``, which forces a login.

        Raises:
            NoStoredCredentialsError: If the account has no usable login.
        """
        account_id = str(account_id)

        def _refresh() -> ExternalAuth:
            stored = credentials.get_credentials(account_id)
            if stored is None or not stored.can_refresh:
                raise NoStoredCredentialsError(
                    "No stored provider credentials to refresh with",
                    account_id=account_id,
                )
            if stale_token is not None and stored.session_token and stored.session_token != stale_token:
                logger.debug("Session already refreshed", account_id=account_id)
                return ExternalAuth(
                    external_account_id=stored.external_account_id or "",
                    session_token=stored.session_token,
                )
            password = vault.decrypt(stored.encrypted_password, key)
            auth = self.login(stored.username, password)
            credentials.update_session_token(account_id, auth.session_token)
            self._advance_generation(account_id)
            return auth

        auth, shared = self.flights.do(account_id, _refresh)
        logger.info("Provider session refreshed", account_id=account_id, shared=shared)
        return auth
