"""Tests for login, e-mail fallback and single-flight refresh."""

from __future__ import annotations

import threading
import time
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from companion_sync.auth.session import SessionManager, SingleFlight
from companion_sync.auth.vault import encrypt
from companion_sync.core.exceptions import (
    AuthenticationError,
    NoStoredCredentialsError,
    ProviderError,
    UpstreamUnavailableError,
)
from companion_sync.models.provider import ExternalAuth
from companion_sync.provider.client import ProviderClient
from companion_sync.storage.database import StoredCredentials


def _auth(ticket: str = "ticket-1") -> ExternalAuth:
    return ExternalAuth(external_account_id="A1B2C3D4E5F60718", session_token=ticket)


def _not_found() -> ProviderError:
    return ProviderError("User not found", error_code="AccountNotFound", details={"error_number": 1001})


@pytest.fixture
def client() -> MagicMock:
    return MagicMock(spec=ProviderClient)


@pytest.fixture
def manager(client: MagicMock) -> SessionManager:
    return SessionManager(client)


class TestSingleFlight:
    """Tests for SingleFlight."""

    def test_sequential_calls_run_each_time(self) -> None:
        """Test calls that do not overlap are not collapsed."""
        flights: SingleFlight[int] = SingleFlight()
        counter = iter(range(10))

        first, first_shared = flights.do("k", lambda: next(counter))
        second, second_shared = flights.do("k", lambda: next(counter))

        assert (first, second) == (0, 1)
        assert not first_shared and not second_shared
        assert not flights.in_flight("k")

    def test_concurrent_calls_share_one_execution(self) -> None:
        """Test overlapping callers get the leader's result."""
        flights: SingleFlight[str] = SingleFlight()
        release = threading.Event()
        calls: list[int] = []
        results: list[tuple[str, bool]] = []

        def slow() -> str:
            calls.append(1)
            release.wait(timeout=5)
            return "fresh"

        def worker() -> None:
            results.append(flights.do("account-1", slow))

        leader = threading.Thread(target=worker)
        leader.start()
        while not flights.in_flight("account-1"):
            time.sleep(0.001)
        followers = [threading.Thread(target=worker) for _ in range(4)]
        for thread in followers:
            thread.start()
        time.sleep(0.2)
        release.set()
        for thread in [leader, *followers]:
            thread.join(timeout=5)

        assert len(calls) == 1
        assert [result for result, _ in results] == ["fresh"] * 5
        assert sum(shared for _, shared in results) == 4

    def test_error_shared_with_waiters(self) -> None:
        """Test the leader's exception reaches the waiters."""
        flights: SingleFlight[str] = SingleFlight()
        release = threading.Event()
        errors: list[BaseException] = []

        def failing() -> str:
            release.wait(timeout=5)
            raise UpstreamUnavailableError("down")

        def worker() -> None:
            try:
                flights.do("k", failing)
            except UpstreamUnavailableError as exc:
                errors.append(exc)

        leader = threading.Thread(target=worker)
        leader.start()
        while not flights.in_flight("k"):
            time.sleep(0.001)
        follower = threading.Thread(target=worker)
        follower.start()
        time.sleep(0.1)
        release.set()
        leader.join(timeout=5)
        follower.join(timeout=5)

        assert len(errors) == 2
        assert not flights.in_flight("k")


class TestLogin:
    """Tests for SessionManager.login."""

    def test_username_login(self, manager: SessionManager, client: MagicMock) -> None:
        """Test a successful username login skips the e-mail attempt."""
        client.login_with_username.return_value = _auth()

        assert manager.login("ogun", "pw") == _auth()
        client.login_with_email.assert_not_called()

    def test_email_fallback_on_account_not_found(self, manager: SessionManager, client: MagicMock) -> None:
        """Test AccountNotFound triggers exactly one e-mail attempt."""
        client.login_with_username.side_effect = _not_found()
        client.login_with_email.return_value = _auth("ticket-email")

        auth = manager.login("ogun@example.com", "pw")

        assert auth.session_token == "ticket-email"
        client.login_with_email.assert_called_once_with("ogun@example.com", "pw")

    def test_email_fallback_failure(self, manager: SessionManager, client: MagicMock) -> None:
        """Test a failed e-mail attempt is not retried."""
        client.login_with_username.side_effect = _not_found()
        client.login_with_email.side_effect = ProviderError(
            "Invalid email address or password", error_code="InvalidEmailOrPassword"
        )

        with pytest.raises(AuthenticationError) as exc_info:
            manager.login("ogun@example.com", "wrong")

        assert exc_info.value.user_message == "Invalid email address or password"
        assert client.login_with_email.call_count == 1

    def test_wrong_password_no_fallback(self, manager: SessionManager, client: MagicMock) -> None:
        """Test other rejections fail immediately without an e-mail attempt."""
        client.login_with_username.side_effect = ProviderError(
            "Invalid username or password", error_code="InvalidUsernameOrPassword"
        )

        with pytest.raises(AuthenticationError) as exc_info:
            manager.login("ogun", "wrong")

        assert exc_info.value.error_code == "InvalidUsernameOrPassword"
        client.login_with_email.assert_not_called()

    def test_upstream_failure_propagates(self, manager: SessionManager, client: MagicMock) -> None:
        """Test outages are not reported as bad credentials."""
        client.login_with_username.side_effect = UpstreamUnavailableError("timeout")

        with pytest.raises(UpstreamUnavailableError):
            manager.login("ogun", "pw")
        client.login_with_email.assert_not_called()


class TestRefresh:
    """Tests for SessionManager.refresh."""

    def test_refresh_decrypts_and_logs_in(
        self, manager: SessionManager, client: MagicMock, credential_key: bytes
    ) -> None:
        """Test refresh logs in with the decrypted password."""
        client.login_with_username.return_value = _auth("ticket-2")
        stored = encrypt("pw", credential_key).serialize()

        auth = manager.refresh("ogun", stored, credential_key, flight_key="42")

        assert auth.session_token == "ticket-2"
        client.login_with_username.assert_called_once_with("ogun", "pw")

    @pytest.mark.parametrize(("username", "password"), [(None, "x:y"), ("ogun", None), ("", "")])
    def test_missing_credentials(
        self, manager: SessionManager, username: str | None, password: str | None, credential_key: bytes
    ) -> None:
        """Test refresh without stored credentials."""
        with pytest.raises(NoStoredCredentialsError):
            manager.refresh(username, password, credential_key)


class TestRefreshAccount:
    """Tests for SessionManager.refresh_account."""

    def _store(self, credential_key: bytes, token: str = "stale") -> MagicMock:
        store = MagicMock()
        store.get_credentials.return_value = StoredCredentials(
            account_id="42",
            username="ogun",
            encrypted_password=encrypt("pw", credential_key).serialize(),
            session_token=token,
            external_account_id="A1B2C3D4E5F60718",
            connected_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        )
        return store

    def test_refresh_persists_new_token(
        self, manager: SessionManager, client: MagicMock, credential_key: bytes
    ) -> None:
        """Test the new token is stored."""
        client.login_with_username.return_value = _auth("fresh")
        store = self._store(credential_key)

        auth = manager.refresh_account("42", store, credential_key, stale_token="stale")

        assert auth.session_token == "fresh"
        store.update_session_token.assert_called_once_with("42", "fresh")

    def test_already_refreshed(self, manager: SessionManager, client: MagicMock, credential_key: bytes) -> None:
        """Test a newer stored token is reused without logging in."""
        store = self._store(credential_key, token="newer")

        auth = manager.refresh_account("42", store, credential_key, stale_token="stale")

        assert auth.session_token == "newer"
        client.login_with_username.assert_not_called()

    def test_generation_counts_logins_only(
        self, manager: SessionManager, client: MagicMock, credential_key: bytes
    ) -> None:
        """Test handing back a stored token does not count as a re-login."""
        client.login_with_username.return_value = _auth("fresh")

        manager.refresh_account("42", self._store(credential_key, token="newer"), credential_key, stale_token="stale")
        assert manager.generation("42") == 0

        manager.refresh_account("42", self._store(credential_key), credential_key, stale_token="stale")
        assert manager.generation("42") == 1
        assert manager.generation("43") == 0

    def test_no_credentials(self, manager: SessionManager, credential_key: bytes) -> None:
        store = MagicMock()
        store.get_credentials.return_value = None

        with pytest.raises(NoStoredCredentialsError):
            manager.refresh_account("42", store, credential_key)

    def test_concurrent_refresh_logs_in_once(
        self, manager: SessionManager, client: MagicMock, credential_key: bytes
    ) -> None:
        """Test concurrent callers for one account share a single login."""
        release = threading.Event()

        def slow_login(username: str, password: str) -> ExternalAuth:
            release.wait(timeout=5)
            return _auth("fresh")

        client.login_with_username.side_effect = slow_login
        store = self._store(credential_key)
        tokens: list[str] = []

        def worker() -> None:
            tokens.append(manager.refresh_account("42", store, credential_key, stale_token="stale").session_token)

        threads = [threading.Thread(target=worker) for _ in range(5)]
        threads[0].start()
        while not manager.flights.in_flight("42"):
            time.sleep(0.001)
        for thread in threads[1:]:
            thread.start()
        time.sleep(0.2)
        release.set()
        for thread in threads:
            thread.join(timeout=5)

        assert tokens == ["fresh"] * 5
        assert client.login_with_username.call_count == 1
        store.update_session_token.assert_called_once_with("42", "fresh")
