"""Data bag retrieval and per-record resolution.

A data bag is the provider's per-account key/value store. Only keys that
look like character or campaign records are considered, capped to bound
fan-out, in the bag's own order. Resolving a record (decode plus name
lookup) can fail independently for each key; batch resolution collects
failures as skipped entries instead of aborting.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any

from companion_sync.core.config import ProviderSettings, get_settings
from companion_sync.core.exceptions import CompanionSyncError, NotFoundError
from companion_sync.core.logging import get_logger
from companion_sync.ingestion.accessors import text_at
from companion_sync.ingestion.decoder import decode
from companion_sync.ingestion.normalizer import resolve_name
from companion_sync.models.provider import (
    DecodedCharacter,
    RawCharacterRecord,
    RecordKind,
    SkippedRecord,
)
from companion_sync.provider.client import ProviderClient

logger = get_logger(__name__)


def _parse_timestamp(value: Any) -> datetime | None:
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        parsed = datetime.fromisoformat(value.strip())
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _raw_record(key: str, entry: Any) -> RawCharacterRecord:
    value = entry.get("Value") if isinstance(entry, dict) and "Value" in entry else entry
    if not isinstance(value, str):
        value = json.dumps(value)
    last_updated = entry.get("LastUpdated") if isinstance(entry, dict) else None
    return RawCharacterRecord(key=key, raw_value=value, last_updated_at=_parse_timestamp(last_updated))


class DataBagFetcher:
    """Reads data bags and turns matched entries into decoded records.

    Attributes:
        client: Provider API client.
        settings: Provider settings (key cap and concurrency).
    """

    def __init__(self, client: ProviderClient, settings: ProviderSettings | None = None) -> None:
        self.client = client
        self.settings = settings or get_settings().provider

    def fetch_data_bag(self, session_token: str, *, account_id: str | None = None) -> dict[str, Any]:
        """Fetch the whole data bag for the session's account.

        Returns:
            Mapping of key to the provider's entry (``{"Value": str,
            "LastUpdated": str}``), in provider order.

        Raises:
            SessionExpiredError: If the session is no longer valid.
            UpstreamUnavailableError: On network failures or outages.
        """
        bag = self.client.get_user_data(session_token, account_id=account_id)
        logger.debug("Fetched data bag", key_count=len(bag))
        return bag

    def fetch_record(
        self,
        session_token: str,
        key: str,
        *,
        account_id: str | None = None,
    ) -> RawCharacterRecord:
        """Fetch a single record by key.

        Raises:
            NotFoundError: If the key is not in the data bag.
        """
        bag = self.client.get_user_data(session_token, keys=[key], account_id=account_id)
        if key not in bag:
            raise NotFoundError("Character not found in the character service", record_key=key)
        return _raw_record(key, bag[key])

    def list_character_keys(
        self,
        data_bag: dict[str, Any],
        *,
        kinds: Iterable[RecordKind] = (RecordKind.CHARACTER, RecordKind.CAMPAIGN),
    ) -> list[RawCharacterRecord]:
        """Select record entries from a data bag.

        Args:
            data_bag: Bag as returned by ``fetch_data_bag``.
            kinds: Record kinds to keep.

        Returns:
            Matching records in bag order, at most ``max_character_keys``.
        """
        wanted = set(kinds)
        records: list[RawCharacterRecord] = []
        for key, entry in data_bag.items():
            if RecordKind.for_key(key) not in wanted:
                continue
            if len(records) >= self.settings.max_character_keys:
                logger.warning("Data bag record cap reached", cap=self.settings.max_character_keys)
                break
            records.append(_raw_record(key, entry))
        return records

    def resolve(self, record: RawCharacterRecord) -> DecodedCharacter:
        """Decode a record and resolve its display name.

        Raises:
            DecodeExhaustedError: If the value cannot be decoded.
        """
        document = decode(record.raw_value, record_key=record.key)
        last_modified = (
            record.last_updated_at
            or _parse_timestamp(text_at("lastModified")(document))
            or datetime.now(timezone.utc)
        )
        return DecodedCharacter(
            character_id=record.key,
            character_name=resolve_name(document, record.key),
            data=document,
            last_modified=last_modified,
        )

    def resolve_all(
        self,
        records: list[RawCharacterRecord],
        resolver: Callable[[RawCharacterRecord], DecodedCharacter] | None = None,
    ) -> tuple[list[DecodedCharacter], list[SkippedRecord]]:
        """Resolve records concurrently, tolerating per-record failures.

        Args:
            records: Records to resolve.
            resolver: Per-record function; defaults to ``resolve``.

        Returns:
            Tuple of (resolved records in input order, skipped records).
        """
        resolver = resolver or self.resolve
        if not records:
            return [], []

        resolved: list[DecodedCharacter] = []
        skipped: list[SkippedRecord] = []
        workers = min(self.settings.list_concurrency, len(records))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="resolve") as pool:
            futures = [(record, pool.submit(resolver, record)) for record in records]
            for record, future in futures:
                try:
                    resolved.append(future.result())
                except CompanionSyncError as exc:
                    logger.warning(
                        "Skipping unreadable record",
                        record_key=record.key,
                        error=type(exc).__name__,
                    )
                    skipped.append(SkippedRecord(key=record.key, reason=exc.user_message))
        return resolved, skipped
