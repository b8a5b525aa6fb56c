"""SQLite persistence for imported characters and linked provider accounts.

Provides storage for:
- Character sheets imported from the provider, keyed by external id
- Linked provider credentials per local account (encrypted password,
  last known session token)

Character writes go through ``character_transaction``, which holds an
immediate (write-locked) transaction so a lookup and the following insert
or update are applied as one unit.
"""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Generator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from companion_sync.core.config import get_settings
from companion_sync.core.exceptions import StorageError
from companion_sync.core.logging import get_logger
from companion_sync.models.character import (
    AbilityScores,
    Armor,
    BasicInfo,
    CombatStats,
    NormalizedCharacter,
    SavingThrows,
    SkillEntry,
    Weapon,
)

logger = get_logger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class LocalCharacterRecord:
    """A character sheet stored locally.

    Attributes:
        id: Local row id.
        user_id: Owning local account.
        name: Display name.
        character: Normalized attributes.
        is_external: True when imported from the provider.
        external_id: Provider record key, None for local-only sheets.
        external_session_token: Last session token used to sync.
        last_synced_at: When the record was last synced.
        external_data: Verbatim copy of the last decoded document.
        created_at: When the row was created.
        updated_at: When the row was last written.
    """

    id: int
    user_id: str
    name: str
    character: NormalizedCharacter
    is_external: bool
    external_id: str | None
    external_session_token: str | None
    last_synced_at: datetime | None
    external_data: Any
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> LocalCharacterRecord:
        """Create from database row."""
        character = NormalizedCharacter(
            abilities=AbilityScores(
                strength=row["strength"],
                dexterity=row["dexterity"],
                constitution=row["constitution"],
                intelligence=row["intelligence"],
                wisdom=row["wisdom"],
                charisma=row["charisma"],
            ),
            level=row["level"],
            combat=CombatStats(
                current_hp=row["current_hp"],
                max_hp=row["max_hp"],
                temp_hp=row["temp_hp"],
                armor_class=row["armor_class"],
                touch_ac=row["touch_ac"],
                flat_footed_ac=row["flat_footed_ac"],
                initiative=row["initiative"],
                speed=row["speed"],
                base_attack_bonus=row["base_attack_bonus"],
                cmb=row["cmb"],
                cmd=row["cmd"],
            ),
            saves=SavingThrows(
                fortitude=row["fortitude_save"],
                reflex=row["reflex_save"],
                will=row["will_save"],
            ),
            skills={name: SkillEntry(**entry) for name, entry in json.loads(row["skills"]).items()},
            feats=json.loads(row["feats"]),
            special_abilities=json.loads(row["special_abilities"]),
            weapons=[Weapon(**weapon) for weapon in json.loads(row["weapons"])],
            armor=Armor(**json.loads(row["armor"])),
            spells={int(level): names for level, names in json.loads(row["spells"]).items()},
            info=BasicInfo(
                race=row["race"],
                alignment=row["alignment"],
                deity=row["deity"],
                size=row["size"],
                character_class=row["character_class"],
            ),
        )
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            name=row["name"],
            character=character,
            is_external=bool(row["is_external"]),
            external_id=row["external_id"],
            external_session_token=row["external_session_token"],
            last_synced_at=_dt(row["last_synced_at"]),
            external_data=json.loads(row["external_data"]) if row["external_data"] else None,
            created_at=_dt(row["created_at"]),
            updated_at=_dt(row["updated_at"]),
        )


@dataclass
class StoredCredentials:
    """Provider login linked to a local account.

    ``encrypted_password`` is the serialized vault form, never plaintext.
    """

    account_id: str
    username: str | None
    encrypted_password: str | None
    session_token: str | None
    external_account_id: str | None
    connected_at: datetime | None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> StoredCredentials:
        """Create from database row."""
        return cls(
            account_id=row["account_id"],
            username=row["username"],
            encrypted_password=row["encrypted_password"],
            session_token=row["session_token"],
            external_account_id=row["external_account_id"],
            connected_at=_dt(row["connected_at"]),
        )

    @property
    def can_refresh(self) -> bool:
        return bool(self.username and self.encrypted_password)


def _character_columns(character: NormalizedCharacter) -> dict[str, Any]:
    """Flatten a NormalizedCharacter into column values."""
    abilities = character.abilities
    combat = character.combat
    return {
        "strength": abilities.strength,
        "dexterity": abilities.dexterity,
        "constitution": abilities.constitution,
        "intelligence": abilities.intelligence,
        "wisdom": abilities.wisdom,
        "charisma": abilities.charisma,
        "level": character.level,
        "current_hp": combat.current_hp,
        "max_hp": combat.max_hp,
        "temp_hp": combat.temp_hp,
        "armor_class": combat.armor_class,
        "touch_ac": combat.touch_ac,
        "flat_footed_ac": combat.flat_footed_ac,
        "initiative": combat.initiative,
        "speed": combat.speed,
        "base_attack_bonus": combat.base_attack_bonus,
        "cmb": combat.cmb,
        "cmd": combat.cmd,
        "fortitude_save": character.saves.fortitude,
        "reflex_save": character.saves.reflex,
        "will_save": character.saves.will,
        "skills": json.dumps({name: skill.model_dump() for name, skill in character.skills.items()}),
        "feats": json.dumps(character.feats),
        "special_abilities": json.dumps(character.special_abilities),
        "weapons": json.dumps([weapon.model_dump() for weapon in character.weapons]),
        "armor": json.dumps(character.armor.model_dump()),
        "spells": json.dumps({str(level): names for level, names in character.spells.items()}),
        "race": character.info.race,
        "alignment": character.info.alignment,
        "deity": character.info.deity,
        "size": character.info.size,
        "character_class": character.info.character_class,
    }


# =============================================================================
# Write Unit
# =============================================================================


class CharacterWriter:
    """Character operations bound to one open write transaction."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def find_by_external_id(self, external_id: str) -> LocalCharacterRecord | None:
        row = self._conn.execute(
            "SELECT * FROM character_sheets WHERE external_id = ?",
            (external_id,),
        ).fetchone()
        return LocalCharacterRecord.from_row(row) if row else None

    def insert(
        self,
        *,
        user_id: str,
        name: str,
        character: NormalizedCharacter,
        external_id: str,
        external_session_token: str | None,
        external_data: Any,
        synced_at: datetime,
    ) -> LocalCharacterRecord:
        columns = {
            "user_id": user_id,
            "name": name,
            **_character_columns(character),
            "is_external": 1,
            "external_id": external_id,
            "external_session_token": external_session_token,
            "last_synced_at": synced_at.isoformat(),
            "external_data": json.dumps(external_data, default=str),
            "created_at": synced_at.isoformat(),
            "updated_at": synced_at.isoformat(),
        }
        placeholders = ", ".join("?" for _ in columns)
        cursor = self._conn.execute(
            f"INSERT INTO character_sheets ({', '.join(columns)}) VALUES ({placeholders})",
            tuple(columns.values()),
        )
        return self._get(cursor.lastrowid)

    def update(
        self,
        record_id: int,
        *,
        name: str,
        character: NormalizedCharacter,
        external_session_token: str | None,
        external_data: Any,
        synced_at: datetime,
    ) -> LocalCharacterRecord:
        columns = {
            "name": name,
            **_character_columns(character),
            "last_synced_at": synced_at.isoformat(),
            "external_data": json.dumps(external_data, default=str),
            "updated_at": synced_at.isoformat(),
        }
        if external_session_token is not None:
            columns["external_session_token"] = external_session_token
        assignments = ", ".join(f"{column} = ?" for column in columns)
        self._conn.execute(
            f"UPDATE character_sheets SET {assignments} WHERE id = ?",
            (*columns.values(), record_id),
        )
        return self._get(record_id)

    def _get(self, record_id: int | None) -> LocalCharacterRecord:
        row = self._conn.execute("SELECT * FROM character_sheets WHERE id = ?", (record_id,)).fetchone()
        if row is None:
            raise StorageError("Character row vanished inside its own transaction", details={"id": record_id})
        return LocalCharacterRecord.from_row(row)


# =============================================================================
# Database Class
# =============================================================================


class Database:
    """SQLite database for imported characters and linked accounts.

    Database location defaults to ``~/.companion_sync/companion_sync.db``.
    """

    SCHEMA_VERSION = 1

    def __init__(self, db_path: str | Path | None = None) -> None:
        """Initialize database.

        Args:
            db_path: Path to database file. If None, uses default location.
        """
        if db_path is None:
            self.db_path = self._get_default_path()
        else:
            self.db_path = Path(db_path)

        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

        logger.info("Database initialized", path=str(self.db_path))

    @staticmethod
    def _get_default_path() -> Path:
        return Path.home() / ".companion_sync" / "companion_sync.db"

    @contextmanager
    def _get_connection(self, *, immediate: bool = False) -> Generator[sqlite3.Connection, None, None]:
        """Get a database connection with proper cleanup.

        Args:
            immediate: Take the write lock up front and commit on exit.
        """
        conn = sqlite3.connect(str(self.db_path), timeout=30, isolation_level=None)
        conn.row_factory = sqlite3.Row
        try:
            if immediate:
                conn.execute("BEGIN IMMEDIATE")
            yield conn
            if conn.in_transaction:
                conn.execute("COMMIT")
        except sqlite3.Error as exc:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise StorageError(f"Database operation failed: {exc}") from exc
        except BaseException:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        finally:
            conn.close()

    def _init_schema(self) -> None:
        with self._get_connection(immediate=True) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS character_sheets (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    strength INTEGER NOT NULL DEFAULT 10,
                    dexterity INTEGER NOT NULL DEFAULT 10,
                    constitution INTEGER NOT NULL DEFAULT 10,
                    intelligence INTEGER NOT NULL DEFAULT 10,
                    wisdom INTEGER NOT NULL DEFAULT 10,
                    charisma INTEGER NOT NULL DEFAULT 10,
                    level INTEGER NOT NULL DEFAULT 1,
                    current_hp INTEGER NOT NULL DEFAULT 0,
                    max_hp INTEGER NOT NULL DEFAULT 0,
                    temp_hp INTEGER NOT NULL DEFAULT 0,
                    armor_class INTEGER NOT NULL DEFAULT 10,
                    touch_ac INTEGER NOT NULL DEFAULT 10,
                    flat_footed_ac INTEGER NOT NULL DEFAULT 10,
                    initiative INTEGER NOT NULL DEFAULT 0,
                    speed INTEGER NOT NULL DEFAULT 30,
                    base_attack_bonus INTEGER NOT NULL DEFAULT 0,
                    cmb INTEGER NOT NULL DEFAULT 0,
                    cmd INTEGER NOT NULL DEFAULT 10,
                    fortitude_save INTEGER NOT NULL DEFAULT 0,
                    reflex_save INTEGER NOT NULL DEFAULT 0,
                    will_save INTEGER NOT NULL DEFAULT 0,
                    skills TEXT NOT NULL DEFAULT '{}',
                    feats TEXT NOT NULL DEFAULT '[]',
                    special_abilities TEXT NOT NULL DEFAULT '[]',
                    weapons TEXT NOT NULL DEFAULT '[]',
                    armor TEXT NOT NULL DEFAULT '{}',
                    spells TEXT NOT NULL DEFAULT '{}',
                    race TEXT,
                    alignment TEXT,
                    deity TEXT,
                    size TEXT,
                    character_class TEXT,
                    is_external INTEGER NOT NULL DEFAULT 0,
                    -- Bag keys such as character1 repeat across provider accounts,
                    -- so two linked accounts importing the same key share one row.
                    external_id TEXT UNIQUE,
                    external_session_token TEXT,
                    last_synced_at TEXT,
                    external_data TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS external_credentials (
                    account_id TEXT PRIMARY KEY,
                    username TEXT,
                    encrypted_password TEXT,
                    session_token TEXT,
                    external_account_id TEXT,
                    connected_at TEXT
                )
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_character_sheets_user
                ON character_sheets(user_id)
            """)

            conn.execute(
                "INSERT OR REPLACE INTO schema_version (version) VALUES (?)",
                (self.SCHEMA_VERSION,),
            )

    # =========================================================================
    # Character Operations
    # =========================================================================

    @contextmanager
    def character_transaction(self) -> Generator[CharacterWriter, None, None]:
        """Open a write transaction for character rows.

        Everything done through the writer commits together on exit or is
        rolled back on error.
        """
        with self._get_connection(immediate=True) as conn:
            yield CharacterWriter(conn)

    def get_character(self, record_id: int) -> LocalCharacterRecord | None:
        with self._get_connection() as conn:
            row = conn.execute("SELECT * FROM character_sheets WHERE id = ?", (record_id,)).fetchone()
            return LocalCharacterRecord.from_row(row) if row else None

    def get_character_by_external_id(self, external_id: str) -> LocalCharacterRecord | None:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM character_sheets WHERE external_id = ?",
                (external_id,),
            ).fetchone()
            return LocalCharacterRecord.from_row(row) if row else None

    def list_characters(self, user_id: str) -> list[LocalCharacterRecord]:
        """Get all character sheets owned by a local account."""
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM character_sheets WHERE user_id = ? ORDER BY id",
                (str(user_id),),
            ).fetchall()
            return [LocalCharacterRecord.from_row(row) for row in rows]

    def get_character_count(self) -> int:
        with self._get_connection() as conn:
            return conn.execute("SELECT COUNT(*) FROM character_sheets").fetchone()[0]

    # =========================================================================
    # Credential Operations
    # =========================================================================

    def get_credentials(self, account_id: str) -> StoredCredentials | None:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM external_credentials WHERE account_id = ?",
                (str(account_id),),
            ).fetchone()
            return StoredCredentials.from_row(row) if row else None

    def save_credentials(
        self,
        account_id: str,
        *,
        username: str,
        encrypted_password: str | None,
        session_token: str,
        external_account_id: str,
    ) -> StoredCredentials:
        """Link (or re-link) a provider account to a local account."""
        connected_at = _now()
        with self._get_connection(immediate=True) as conn:
            conn.execute(
                """
                INSERT INTO external_credentials
                    (account_id, username, encrypted_password, session_token,
                     external_account_id, connected_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(account_id) DO UPDATE SET
                    username = excluded.username,
                    encrypted_password = excluded.encrypted_password,
                    session_token = excluded.session_token,
                    external_account_id = excluded.external_account_id,
                    connected_at = excluded.connected_at
                """,
                (
                    str(account_id),
                    username,
                    encrypted_password,
                    session_token,
                    external_account_id,
                    connected_at.isoformat(),
                ),
            )

        logger.info("Linked provider account", account_id=str(account_id))
        return StoredCredentials(
            account_id=str(account_id),
            username=username,
            encrypted_password=encrypted_password,
            session_token=session_token,
            external_account_id=external_account_id,
            connected_at=connected_at,
        )

    def update_session_token(self, account_id: str, session_token: str) -> None:
        """Store the most recently issued session token for an account."""
        with self._get_connection(immediate=True) as conn:
            conn.execute(
                "UPDATE external_credentials SET session_token = ?, connected_at = ? WHERE account_id = ?",
                (session_token, _now().isoformat(), str(account_id)),
            )

    def clear_credentials(self, account_id: str) -> bool:
        """Unlink a provider account.

        Returns:
            True if credentials were removed, False if none were stored.
        """
        with self._get_connection(immediate=True) as conn:
            cursor = conn.execute(
                "DELETE FROM external_credentials WHERE account_id = ?",
                (str(account_id),),
            )
            deleted = cursor.rowcount > 0

        if deleted:
            logger.info("Unlinked provider account", account_id=str(account_id))
        return deleted


# =============================================================================
# Singleton Instance
# =============================================================================


_database_instance: Database | None = None


def get_database() -> Database:
    """Get the global database instance at the configured path."""
    global _database_instance

    if _database_instance is None:
        _database_instance = Database(get_settings().storage.database_path)

    return _database_instance
