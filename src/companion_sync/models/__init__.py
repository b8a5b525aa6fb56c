"""Data models for the character sync engine.

Modules:
    character: NormalizedCharacter and its component schemas.
    provider: Records and credentials exchanged with the provider.
"""

from __future__ import annotations

from companion_sync.models.character import (
    AbilityName,
    AbilityScores,
    Armor,
    BasicInfo,
    CombatStats,
    NormalizedCharacter,
    SavingThrows,
    SkillEntry,
    Weapon,
    ability_modifier,
)
from companion_sync.models.provider import (
    CharacterSummary,
    DecodedCharacter,
    ExternalAuth,
    RawCharacterRecord,
    RecordKind,
    SkippedRecord,
)


__all__ = [
    # Character
    "AbilityName",
    "AbilityScores",
    "Armor",
    "BasicInfo",
    "CombatStats",
    "NormalizedCharacter",
    "SavingThrows",
    "SkillEntry",
    "Weapon",
    "ability_modifier",
    # Provider
    "CharacterSummary",
    "DecodedCharacter",
    "ExternalAuth",
    "RawCharacterRecord",
    "RecordKind",
    "SkippedRecord",
]
