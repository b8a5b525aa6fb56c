"""Character sync: idempotent local upsert and the service facade."""

from __future__ import annotations

from companion_sync.sync.engine import SyncEngine
from companion_sync.sync.service import CharacterSyncService


__all__ = [
    "CharacterSyncService",
    "SyncEngine",
]
