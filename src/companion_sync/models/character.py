"""Pydantic V2 schemas for the canonical character attribute set.

NormalizedCharacter is the fixed, fully-defaulted shape every external
record is mapped into, whatever the record's original layout. Every field
has a default so an empty document still produces a valid character.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


DEFAULT_ABILITY_SCORE = 10


class AbilityName(StrEnum):
    """The six ability scores."""

    STRENGTH = "strength"
    DEXTERITY = "dexterity"
    CONSTITUTION = "constitution"
    INTELLIGENCE = "intelligence"
    WISDOM = "wisdom"
    CHARISMA = "charisma"

    @property
    def abbreviation(self) -> str:
        """Three-letter short form (``str``, ``dex``...)."""
        return self.value[:3]


def ability_modifier(score: int) -> int:
    """Calculate the ability modifier for a score.

    Uses floor division, so odd scores below 10 round down
    (9 -> -1, 7 -> -2).

    Args:
        score: Ability score.

    Returns:
        The modifier ``(score - 10) // 2``.
    """
    return (score - 10) // 2


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class AbilityScores(_Frozen):
    """Ability scores, each defaulting to 10."""

    strength: int = DEFAULT_ABILITY_SCORE
    dexterity: int = DEFAULT_ABILITY_SCORE
    constitution: int = DEFAULT_ABILITY_SCORE
    intelligence: int = DEFAULT_ABILITY_SCORE
    wisdom: int = DEFAULT_ABILITY_SCORE
    charisma: int = DEFAULT_ABILITY_SCORE

    def get(self, ability: AbilityName) -> int:
        return getattr(self, ability.value)


class CombatStats(_Frozen):
    """Hit points, armor class variants and attack figures.

    Attributes:
        current_hp: Current hit points.
        max_hp: Maximum hit points.
        temp_hp: Temporary hit points.
        armor_class: Normal armor class.
        touch_ac: Touch armor class.
        flat_footed_ac: Flat-footed armor class.
        initiative: Initiative bonus.
        speed: Base land speed in feet.
        base_attack_bonus: Base attack bonus.
        cmb: Combat maneuver bonus.
        cmd: Combat maneuver defense.
    """

    current_hp: int = 0
    max_hp: int = 0
    temp_hp: int = 0
    armor_class: int = 10
    touch_ac: int = 10
    flat_footed_ac: int = 10
    initiative: int = 0
    speed: int = 30
    base_attack_bonus: int = 0
    cmb: int = 0
    cmd: int = 10


class SavingThrows(_Frozen):
    """Fortitude, reflex and will save totals."""

    fortitude: int = 0
    reflex: int = 0
    will: int = 0


class SkillEntry(_Frozen):
    """One skill line."""

    ranks: int = 0
    total: int = 0
    misc: int = 0
    is_class_skill: bool = False


class Weapon(_Frozen):
    """One weapon or attack line.

    ``attack_bonus`` is text because iterative attacks are written as
    ``+7/+2``.
    """

    name: str
    attack_bonus: str = ""
    damage: str = ""
    critical: str = ""
    range: str = ""
    type: str = ""
    notes: str = ""


class Armor(_Frozen):
    """Worn armor summary."""

    name: str = ""
    ac_bonus: int = 0
    max_dex: int | None = None
    check_penalty: int = 0
    spell_failure: int = 0
    type: str = ""


class BasicInfo(_Frozen):
    """Descriptive attributes, all optional."""

    race: str | None = None
    alignment: str | None = None
    deity: str | None = None
    size: str | None = None
    character_class: str | None = None


class NormalizedCharacter(_Frozen):
    """Canonical character attribute set.

    Attributes:
        abilities: The six ability scores.
        level: Character level, at least 1.
        combat: Hit points, armor class and attack figures.
        saves: Saving throw totals.
        skills: Skill name to skill line.
        feats: Feat names in source order.
        special_abilities: Special ability names, de-duplicated.
        weapons: Weapon lines in source order.
        armor: Worn armor.
        spells: Spell level (0-9) to spell names.
        info: Race, alignment, deity, size and class.
    """

    abilities: AbilityScores = Field(default_factory=AbilityScores)
    level: int = Field(default=1, ge=1)
    combat: CombatStats = Field(default_factory=CombatStats)
    saves: SavingThrows = Field(default_factory=SavingThrows)
    skills: dict[str, SkillEntry] = Field(default_factory=dict)
    feats: list[str] = Field(default_factory=list)
    special_abilities: list[str] = Field(default_factory=list)
    weapons: list[Weapon] = Field(default_factory=list)
    armor: Armor = Field(default_factory=Armor)
    spells: dict[int, list[str]] = Field(default_factory=dict)
    info: BasicInfo = Field(default_factory=BasicInfo)

    def modifiers(self) -> dict[str, int]:
        """Return the modifier for every ability score."""
        return {
            ability.value: ability_modifier(self.abilities.get(ability))
            for ability in AbilityName
        }
