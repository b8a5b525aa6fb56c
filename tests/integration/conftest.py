"""Fixtures for end-to-end flows against an in-memory provider."""

from __future__ import annotations

import itertools
import threading
from typing import Any
from unittest.mock import MagicMock

import pytest

from companion_sync.core.config import Settings
from companion_sync.provider.client import ProviderClient
from companion_sync.storage.database import Database
from companion_sync.sync.service import CharacterSyncService


class FakeProvider:
    """Serves the provider's client API from memory.

    Installed as the ``post`` of a mocked requests session, so requests go
    through the real ProviderClient.
    """

    def __init__(self, responses: Any) -> None:
        self.responses = responses
        self.accounts: dict[str, dict[str, Any]] = {}
        self.bags: dict[str, dict[str, dict[str, str]]] = {}
        self.tickets: dict[str, str] = {}
        self.calls: list[str] = []
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def add_account(self, account_id: str, *, username: str, email: str, password: str) -> None:
        self.accounts[account_id] = {"username": username, "email": email, "password": password}
        self.bags.setdefault(account_id, {})

    def put(self, account_id: str, key: str, value: str, updated: str = "2024-03-01T12:00:00Z") -> None:
        self.bags.setdefault(account_id, {})[key] = {"Value": value, "LastUpdated": updated}

    def expire_sessions(self) -> None:
        with self._lock:
            self.tickets.clear()

    def login_count(self) -> int:
        return sum(1 for path in self.calls if "Login" in path)

    def _issue(self, account_id: str) -> MagicMock:
        with self._lock:
            ticket = f"ticket-{next(self._ids)}"
            self.tickets[ticket] = account_id
        return self.responses.login(account_id, ticket)

    def _find(self, field: str, value: str) -> tuple[str, dict[str, Any]] | None:
        for account_id, account in self.accounts.items():
            if account[field] == value:
                return account_id, account
        return None

    def __call__(self, url: str, *, json: dict[str, Any], headers: dict[str, str], timeout: float) -> MagicMock:
        path = url.split(".playfabapi.com", 1)[1]
        with self._lock:
            self.calls.append(path)

        if path == "/Client/LoginWithPlayFab":
            found = self._find("username", json["Username"])
            if found is None:
                return self.responses.error(400, "AccountNotFound", 1001, "User not found")
            if found[1]["password"] != json["Password"]:
                return self.responses.error(400, "InvalidUsernameOrPassword", 1142, "Invalid username or password")
            return self._issue(found[0])

        if path == "/Client/LoginWithEmailAddress":
            found = self._find("email", json["Email"])
            if found is None or found[1]["password"] != json["Password"]:
                return self.responses.error(400, "InvalidEmailAddressOrPassword", 1142, "Invalid email address or password")
            return self._issue(found[0])

        if path == "/Client/LoginWithCustomID":
            return self._issue(f"ANON{json['CustomId'][-8:].upper()}")

        if path == "/Client/GetUserData":
            with self._lock:
                caller = self.tickets.get(headers.get("X-Authorization", ""))
            if caller is None:
                return self.responses.session_expired()
            target = json.get("PlayFabId", caller)
            if target not in self.bags:
                return self.responses.error(400, "AccountNotFound", 1001, "Account not found")
            bag = self.bags[target]
            keys = json.get("Keys")
            data = {key: entry for key, entry in bag.items() if keys is None or key in keys}
            return self.responses.ok({"Data": data, "DataVersion": 1})

        return self.responses.raw(404, {"error": "NotFound", "errorCode": 1000})


@pytest.fixture
def provider(responses: Any) -> FakeProvider:
    fake = FakeProvider(responses)
    fake.add_account("A1B2C3D4E5F60718", username="ogun", email="ogun@example.com", password="hunter2")
    fake.add_account("5F2A19C03B7E81D4", username="seoni", email="seoni@example.com", password="runes")
    return fake


@pytest.fixture
def service(settings: Settings, provider: FakeProvider, database: Database) -> CharacterSyncService:
    http_session = MagicMock()
    http_session.post.side_effect = provider
    client = ProviderClient(settings.provider, session=http_session)
    return CharacterSyncService(settings, client=client, database=database)
