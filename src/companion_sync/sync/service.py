"""Character sync service.

Entry point for the rest of the application: linking a provider account,
listing its characters and campaigns, importing and re-syncing characters
into local storage, and previewing publicly shared characters.
"""

from __future__ import annotations

import uuid

from companion_sync.auth import vault
from companion_sync.auth.session import SessionManager, SingleFlight
from companion_sync.core.config import Settings, get_settings
from companion_sync.core.exceptions import (
    NoStoredCredentialsError,
    NotFoundError,
    ProviderError,
    SessionExpiredError,
    UpstreamUnavailableError,
)
from companion_sync.core.logging import bind_context, clear_context, get_logger
from companion_sync.ingestion.normalizer import normalize
from companion_sync.models.provider import (
    CharacterSummary,
    DecodedCharacter,
    ExternalAuth,
    RawCharacterRecord,
    RecordKind,
    SkippedRecord,
)
from companion_sync.provider.client import ProviderClient
from companion_sync.provider.fetcher import DataBagFetcher
from companion_sync.provider.share import parse_share_key
from companion_sync.storage.database import Database, LocalCharacterRecord, StoredCredentials, get_database
from companion_sync.sync.engine import SyncEngine

logger = get_logger(__name__)


def _summary(decoded: DecodedCharacter) -> CharacterSummary:
    return CharacterSummary(
        id=decoded.character_id,
        name=decoded.character_name,
        last_modified=decoded.last_modified,
        is_campaign=decoded.is_campaign,
    )


class CharacterSyncService:
    """Facade over provider access, normalization and local storage.

    Attributes:
        settings: Application settings.
        client: Provider API client.
        database: Local character store.
        sessions: Login and single-flight refresh.
        fetcher: Data bag reader.
        engine: Local create-or-update.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        client: ProviderClient | None = None,
        database: Database | None = None,
        flights: SingleFlight[ExternalAuth] | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.client = client or ProviderClient(self.settings.provider)
        self.database = database or get_database()
        self.sessions = SessionManager(self.client, flights)
        self.fetcher = DataBagFetcher(self.client, self.settings.provider)
        self.engine = SyncEngine(self.database)

    # =========================================================================
    # Accounts
    # =========================================================================

    def login(self, identifier: str, password: str) -> ExternalAuth:
        """Log in to the provider by username or e-mail."""
        return self.sessions.login(identifier, password)

    def link_account(self, local_account_id: str, identifier: str, password: str) -> StoredCredentials:
        """Log in and store the login for later session refreshes.

        The password is kept only in encrypted form.

        Raises:
            AuthenticationError: If the provider rejects the credentials.
            ConfigurationError: If no credential key is configured.
        """
        key = self.settings.vault.key_bytes()
        auth = self.sessions.login(identifier, password)
        secret = vault.encrypt(password, key)
        return self.database.save_credentials(
            str(local_account_id),
            username=identifier,
            encrypted_password=secret.serialize(),
            session_token=auth.session_token,
            external_account_id=auth.external_account_id,
        )

    def unlink_account(self, local_account_id: str) -> bool:
        """Forget the stored provider login. Imported characters are kept."""
        return self.database.clear_credentials(str(local_account_id))

    def refresh_session(self, local_account_id: str, stale_token: str | None = None) -> ExternalAuth:
        """Obtain a fresh session for a linked account.

        Concurrent refreshes for the same account share one login, and the
        newest session token is stored. If ``stale_token`` is given and the
        stored token differs from it, the stored token is returned as is.

        Raises:
            NoStoredCredentialsError: If the account has no stored login.
            AuthenticationError: If the stored login is rejected.
        """
        return self.sessions.refresh_account(
            str(local_account_id),
            self.database,
            self.settings.vault.key_bytes(),
            stale_token=stale_token,
        )

    # =========================================================================
    # Listing
    # =========================================================================

    def list_characters(self, session_token: str) -> list[CharacterSummary]:
        """List the characters in the session's data bag.

        Unreadable records are logged and left out.
        """
        summaries, _ = self._list(session_token, RecordKind.CHARACTER)
        return summaries

    def list_campaigns(self, session_token: str) -> list[CharacterSummary]:
        """List the campaigns (GM and shared records) in the data bag."""
        summaries, _ = self._list(session_token, RecordKind.CAMPAIGN)
        return summaries

    def _list(
        self, session_token: str, kind: RecordKind
    ) -> tuple[list[CharacterSummary], list[SkippedRecord]]:
        bag = self.fetcher.fetch_data_bag(session_token)
        records = self.fetcher.list_character_keys(bag, kinds=(kind,))
        resolved, skipped = self.fetcher.resolve_all(records)
        logger.info(
            "Listed provider records",
            kind=kind.value,
            listed=len(resolved),
            skipped=len(skipped),
        )
        return [_summary(decoded) for decoded in resolved], skipped

    # =========================================================================
    # Import and sync
    # =========================================================================

    def import_character(
        self, local_account_id: str, session_token: str, external_id: str
    ) -> LocalCharacterRecord:
        """Import one character, or update it if it was imported before.

        Raises:
            NotFoundError: If the key is not in the data bag.
            DecodeExhaustedError: If the record cannot be decoded.
            SessionExpiredError: If the session is no longer valid.
        """
        bind_context(account_id=str(local_account_id), external_id=external_id)
        try:
            decoded = self.fetcher.resolve(self.fetcher.fetch_record(session_token, external_id))
            return self._store(local_account_id, decoded, session_token)
        finally:
            clear_context()

    def import_all(
        self, local_account_id: str, session_token: str
    ) -> tuple[list[LocalCharacterRecord], list[SkippedRecord]]:
        """Import every character in the data bag.

        Returns:
            Tuple of (stored records, records that could not be read).
        """
        bind_context(account_id=str(local_account_id))
        try:
            bag = self.fetcher.fetch_data_bag(session_token)
            records = self.fetcher.list_character_keys(bag, kinds=(RecordKind.CHARACTER,))
            resolved, skipped = self.fetcher.resolve_all(records)
            stored = [self._store(local_account_id, decoded, session_token) for decoded in resolved]
            logger.info("Imported provider characters", imported=len(stored), skipped=len(skipped))
            return stored, skipped
        finally:
            clear_context()

    def sync_character(self, record: LocalCharacterRecord) -> LocalCharacterRecord:
        """Re-fetch an imported character and update it in place.

        If the provider reports the session expired, the owner's stored
        login is used to refresh it and the fetch is retried. A stored
        session that turns out to be expired as well is replaced by a new
        login before the final attempt.

        Raises:
            NotFoundError: If the record was not imported from the provider
                or its key is gone from the data bag.
            SessionExpiredError: If the session expired and cannot be
                refreshed from stored credentials.
        """
        if not record.is_external or not record.external_id:
            raise NotFoundError("Record was not imported from the character service")

        bind_context(account_id=record.user_id, external_id=record.external_id)
        try:
            token = record.external_session_token or self._stored_token(record.user_id)
            try:
                if not token:
                    raise SessionExpiredError("No session for this record")
                raw = self.fetcher.fetch_record(token, record.external_id)
            except SessionExpiredError:
                raw, token = self._retry_after_refresh(record.user_id, record.external_id, token)
            return self._store(record.user_id, self.fetcher.resolve(raw), token)
        finally:
            clear_context()

    def _stored_token(self, local_account_id: str) -> str | None:
        stored = self.database.get_credentials(local_account_id)
        return stored.session_token if stored else None

    def _retry_after_refresh(
        self, local_account_id: str, external_id: str, stale_token: str | None
    ) -> tuple[RawCharacterRecord, str]:
        generation = self.sessions.generation(local_account_id)
        token = self._refresh_for_sync(local_account_id, stale_token)
        reused = self.sessions.generation(local_account_id) == generation
        try:
            return self.fetcher.fetch_record(token, external_id), token
        except SessionExpiredError:
            if not reused:
                raise
        # The stored session was handed back without a login and has expired too.
        logger.info("Stored session expired, logging in again")
        token = self._refresh_for_sync(local_account_id, token)
        return self.fetcher.fetch_record(token, external_id), token

    def _refresh_for_sync(self, local_account_id: str, stale_token: str | None) -> str:
        try:
            auth = self.refresh_session(local_account_id, stale_token)
        except NoStoredCredentialsError as exc:
            raise SessionExpiredError(
                "Session expired and no stored login is available",
                details={"account_id": local_account_id},
            ) from exc
        return auth.session_token

    def _store(
        self, local_account_id: str, decoded: DecodedCharacter, session_token: str | None
    ) -> LocalCharacterRecord:
        return self.engine.import_or_update(
            local_account_id,
            decoded.character_id,
            normalize(decoded.data),
            decoded.character_name,
            data=decoded.data,
            session_token=session_token,
        )

    # =========================================================================
    # Sharing
    # =========================================================================

    def import_from_share_key(self, share_key: str) -> DecodedCharacter:
        """Fetch a publicly shared character without the owner's login.

        Nothing is stored locally.

        Raises:
            InvalidShareKeyError: If the share key is malformed.
            NotFoundError: If the account or record does not exist.
        """
        parsed = parse_share_key(share_key)
        auth = self.client.login_anonymous(f"share-{uuid.uuid4().hex}")
        try:
            raw = self.fetcher.fetch_record(
                auth.session_token, parsed.record_key, account_id=parsed.account_id
            )
        except (NotFoundError, SessionExpiredError, UpstreamUnavailableError):
            raise
        except ProviderError as exc:
            raise NotFoundError(
                "Shared character not found",
                record_key=parsed.record_key,
                details={"error_code": exc.error_code},
            ) from exc
        decoded = self.fetcher.resolve(raw)
        logger.info("Fetched shared character", record_key=parsed.record_key)
        return decoded
