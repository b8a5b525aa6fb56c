"""Idempotent create-or-update of local character records.

Records are matched by provider external id, never by name. Applying the
same NormalizedCharacter twice leaves every stored field as it was and
only advances ``last_synced_at``.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from companion_sync.core.logging import get_logger
from companion_sync.models.character import NormalizedCharacter
from companion_sync.storage.database import Database, LocalCharacterRecord

logger = get_logger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SyncEngine:
    """Writes normalized external characters into local storage.

    Attributes:
        database: Local character store.
    """

    def __init__(self, database: Database, clock: Callable[[], datetime] = _utc_now) -> None:
        self.database = database
        self._clock = clock

    def import_or_update(
        self,
        local_account_id: str | int,
        external_id: str,
        character: NormalizedCharacter,
        character_name: str,
        *,
        data: Any = None,
        session_token: str | None = None,
    ) -> LocalCharacterRecord:
        """Create the local record for ``external_id`` or refresh it in place.

        A new record is owned by ``local_account_id``. An existing record
        keeps its owner and is updated whoever triggers the sync.

        Args:
            local_account_id: Account that owns a newly created record.
            external_id: Provider record key.
            character: Normalized attributes to store.
            character_name: Resolved display name.
            data: Decoded document, stored verbatim.
            session_token: Session used for this sync, kept for later syncs.

        Returns:
            The stored record.
        """
        synced_at = self._clock()
        with self.database.character_transaction() as writer:
            existing = writer.find_by_external_id(external_id)
            if existing is None:
                record = writer.insert(
                    user_id=str(local_account_id),
                    name=character_name,
                    character=character,
                    external_id=external_id,
                    external_session_token=session_token,
                    external_data=data,
                    synced_at=synced_at,
                )
                created = True
            else:
                if existing.user_id != str(local_account_id):
                    # Ownership is only checked on first import.
                    logger.warning(
                        "Syncing a record owned by another account",
                        external_id=external_id,
                        owner_id=existing.user_id,
                        account_id=str(local_account_id),
                    )
                record = writer.update(
                    existing.id,
                    name=character_name,
                    character=character,
                    external_session_token=session_token,
                    external_data=data,
                    synced_at=synced_at,
                )
                created = False

        logger.info(
            "Character imported" if created else "Character synced",
            external_id=external_id,
            record_id=record.id,
        )
        return record
