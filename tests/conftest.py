"""Pytest configuration and shared fixtures.

This module provides common fixtures and configuration for all tests
in the character sync test suite.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING, Any
from unittest.mock import MagicMock

import pytest


if TYPE_CHECKING:
    from collections.abc import Generator


CREDENTIAL_KEY_HEX = "00112233445566778899aabbccddeeff" * 2


# =============================================================================
# Configuration Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Generator[None, None, None]:
    """Reset the settings cache before and after each test."""
    from companion_sync.core.config import clear_settings_cache

    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def mock_env_vars(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> dict[str, str]:
    """Set up mock environment variables for testing.

    Returns:
        Dictionary of environment variables that were set.
    """
    env_vars = {
        "COMPANION_SYNC_CREDENTIAL_KEY": CREDENTIAL_KEY_HEX,
        "COMPANION_SYNC_DATABASE_PATH": str(tmp_path / "sync.db"),
        "COMPANION_SYNC_DEBUG": "true",
        "COMPANION_SYNC_LOG_LEVEL": "DEBUG",
    }
    for key, value in env_vars.items():
        monkeypatch.setenv(key, value)
    return env_vars


@pytest.fixture
def credential_key() -> bytes:
    """Vault key material (32 bytes)."""
    return bytes.fromhex(CREDENTIAL_KEY_HEX)


@pytest.fixture
def settings(mock_env_vars: dict[str, str]) -> Any:
    """Settings loaded from the mock environment."""
    from companion_sync.core.config import get_settings

    return get_settings()


# =============================================================================
# Provider Fixtures
# =============================================================================


class ProviderResponses:
    """Builders for fake ``requests.Response`` objects in provider envelopes."""

    @staticmethod
    def raw(status_code: int = 200, body: Any = None, *, invalid_json: bool = False) -> MagicMock:
        response = MagicMock()
        response.status_code = status_code
        if invalid_json:
            response.json.side_effect = ValueError("No JSON object could be decoded")
        else:
            response.json.return_value = body
        return response

    @classmethod
    def ok(cls, data: dict[str, Any]) -> MagicMock:
        return cls.raw(200, {"code": 200, "status": "OK", "data": data})

    @classmethod
    def error(cls, status_code: int, error: str, error_code: int, message: str) -> MagicMock:
        return cls.raw(
            status_code,
            {
                "code": status_code,
                "status": "BadRequest",
                "error": error,
                "errorCode": error_code,
                "errorMessage": message,
            },
        )

    @classmethod
    def login(cls, account_id: str = "A1B2C3D4E5F60718", ticket: str = "ticket-1") -> MagicMock:
        return cls.ok(
            {
                "PlayFabId": account_id,
                "SessionTicket": ticket,
                "EntityToken": {"EntityToken": f"entity-{ticket}"},
            }
        )

    @classmethod
    def data_bag(cls, entries: dict[str, str]) -> MagicMock:
        """GetUserData response for ``key -> raw value``, in the given order."""
        return cls.ok(
            {
                "Data": {
                    key: {"Value": value, "LastUpdated": "2024-03-01T12:00:00Z", "Permission": "Public"}
                    for key, value in entries.items()
                }
            }
        )

    @classmethod
    def session_expired(cls) -> MagicMock:
        return cls.error(401, "NotAuthenticated", 1074, "This API method requires a logged-in session")


@pytest.fixture
def responses() -> type[ProviderResponses]:
    return ProviderResponses


@pytest.fixture
def http_session() -> MagicMock:
    """A mocked ``requests.Session``; set ``post.side_effect``/``return_value``."""
    return MagicMock()


@pytest.fixture
def provider_client(http_session: MagicMock, settings: Any) -> Any:
    from companion_sync.provider.client import ProviderClient

    return ProviderClient(settings.provider, session=http_session)


# =============================================================================
# Document Fixtures
# =============================================================================


@pytest.fixture
def sample_document() -> dict[str, Any]:
    """A character document in the provider's current layout."""
    return {
        "characterInfo": {"name": "Ogun", "race": "Dwarf", "alignment": "LN", "level": 5},
        "abilityScores": {
            "strength": {"total": 18},
            "dexterity": 12,
            "constitution": {"value": 16},
            "intelligence": 8,
            "wisdom": 11,
            "charisma": "10",
        },
        "classes": [{"name": "Fighter", "level": 5}],
        "hp": {"current": 38, "max": 44, "temp": 0},
        "ac": {"normal": 19, "touch": 11, "flatFooted": 18},
        "initiative": 1,
        "speed": {"base": 20},
        "baseAttackBonus": 5,
        "cmb": 9,
        "cmd": 20,
        "saves": {"fortitude": 7, "reflex": 2, "will": 1},
        "skills": {
            "Climb": {"ranks": 5, "total": 9, "isClassSkill": True},
            "Perception": {"ranks": 2, "total": 2},
        },
        "feats": [{"name": "Power Attack"}, "Weapon Focus"],
        "specialAbilities": ["Darkvision", "Bravery"],
        "classFeatures": [{"name": "Bravery"}, {"name": "Armor Training"}],
        "weapons": [{"name": "Dwarven Waraxe", "attackBonus": 10, "damage": "1d10+6", "critical": "x3"}],
        "armor": {"name": "Full Plate", "acBonus": 9, "maxDex": 1, "checkPenalty": -6},
    }


@pytest.fixture
def sample_document_json(sample_document: dict[str, Any]) -> str:
    return json.dumps(sample_document)


# =============================================================================
# Storage Fixtures
# =============================================================================


@pytest.fixture
def database(tmp_path: Path) -> Any:
    """A fresh SQLite database in a temp directory."""
    from companion_sync.storage.database import Database

    return Database(tmp_path / "characters.db")
