"""Companion Sync - character import from a remote character provider.

Pulls characters out of a third-party character-builder service,
normalizes their loosely shaped documents into one typed schema and keeps
local copies in sync.

Example:
    >>> from companion_sync import CharacterSyncService
    >>>
    >>> service = CharacterSyncService()
    >>> auth = service.login("hero@example.com", "hunter2")
    >>> for summary in service.list_characters(auth.session_token):
    ...     print(summary.name)
    >>> record = service.import_character("42", auth.session_token, "character1")

Modules:
    core: Configuration, logging, and base exceptions.
    models: NormalizedCharacter and provider record schemas.
    auth: Credential vault and session refresh.
    provider: REST client and data bag fetcher.
    ingestion: Payload decoding and normalization.
    storage: SQLite character store.
    sync: Import/update engine and service facade.
"""

from __future__ import annotations

# Core
from companion_sync.core.config import Settings, get_settings
from companion_sync.core.exceptions import CompanionSyncError
from companion_sync.core.logging import configure_logging, get_logger

# Models
from companion_sync.models.character import NormalizedCharacter, ability_modifier
from companion_sync.models.provider import (
    CharacterSummary,
    DecodedCharacter,
    ExternalAuth,
    RawCharacterRecord,
)

# Ingestion
from companion_sync.ingestion.decoder import decode
from companion_sync.ingestion.normalizer import normalize, resolve_name

# Sync
from companion_sync.sync.engine import SyncEngine
from companion_sync.sync.service import CharacterSyncService


__version__ = "0.1.0"
__all__ = [
    # Version info
    "__version__",
    # Core
    "CompanionSyncError",
    "Settings",
    "get_settings",
    "configure_logging",
    "get_logger",
    # Models
    "CharacterSummary",
    "DecodedCharacter",
    "ExternalAuth",
    "NormalizedCharacter",
    "RawCharacterRecord",
    "ability_modifier",
    # Ingestion
    "decode",
    "normalize",
    "resolve_name",
    # Sync
    "CharacterSyncService",
    "SyncEngine",
]
