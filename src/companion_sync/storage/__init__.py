"""Storage module for imported characters and linked provider accounts.

Provides SQLite-based storage for:
- Character sheets imported from the provider
- Provider credentials linked to local accounts
"""

from companion_sync.storage.database import (
    CharacterWriter,
    Database,
    LocalCharacterRecord,
    StoredCredentials,
    get_database,
)

__all__ = [
    "CharacterWriter",
    "Database",
    "LocalCharacterRecord",
    "StoredCredentials",
    "get_database",
]
