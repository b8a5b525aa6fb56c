"""Schemas for data exchanged with the character provider.

These objects only live for the duration of one fetch cycle, except
ExternalAuth which callers may keep and persist for later refresh.
"""

from __future__ import annotations

import re
from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


CHARACTER_KEY_PATTERN = re.compile(r"^character\d+$")
CAMPAIGN_KEY_PATTERNS = (re.compile(r"^gm\d+$"), re.compile(r"^shared\d+$"))


class RecordKind(StrEnum):
    """What a data bag key holds, decided by the key's pattern."""

    CHARACTER = "character"
    CAMPAIGN = "campaign"

    @classmethod
    def for_key(cls, key: str) -> RecordKind | None:
        """Classify a data bag key.

        Args:
            key: Data bag key such as ``character3`` or ``gm1``.

        Returns:
            The record kind, or None when the key holds something else
            (portraits, settings...).
        """
        if CHARACTER_KEY_PATTERN.match(key):
            return cls.CHARACTER
        if any(pattern.match(key) for pattern in CAMPAIGN_KEY_PATTERNS):
            return cls.CAMPAIGN
        return None


class ExternalAuth(BaseModel):
    """Credentials issued by a successful provider login.

    Attributes:
        external_account_id: Provider account identifier.
        session_token: Session ticket sent on data requests.
        entity_token: Entity token, empty when the provider omits it.
    """

    model_config = ConfigDict(frozen=True)

    external_account_id: str
    session_token: str = Field(repr=False)
    entity_token: str = Field(default="", repr=False)


class RawCharacterRecord(BaseModel):
    """One matched entry of a data bag, still encoded."""

    model_config = ConfigDict(frozen=True)

    key: str
    raw_value: str = Field(repr=False)
    last_updated_at: datetime | None = None

    @property
    def kind(self) -> RecordKind | None:
        return RecordKind.for_key(self.key)

    @property
    def is_campaign(self) -> bool:
        return self.kind is RecordKind.CAMPAIGN


class DecodedCharacter(BaseModel):
    """A record after decoding, with its display name resolved.

    ``data`` is kept verbatim so fields can be re-extracted later.
    """

    model_config = ConfigDict(frozen=True)

    character_id: str
    character_name: str
    data: Any = Field(repr=False)
    last_modified: datetime

    @property
    def is_campaign(self) -> bool:
        return RecordKind.for_key(self.character_id) is RecordKind.CAMPAIGN


class CharacterSummary(BaseModel):
    """Listing entry returned to callers."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    last_modified: datetime
    is_campaign: bool


class SkippedRecord(BaseModel):
    """A record that could not be read during a batch operation."""

    model_config = ConfigDict(frozen=True)

    key: str
    reason: str
