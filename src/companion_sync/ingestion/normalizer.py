"""Map decoded provider documents onto NormalizedCharacter.

Different export paths fill different parts of a sheet (the account data
bag, share-key exports, campaign records) and older records use older key
names. Each field is read through an ordered list of accessors; the first
usable value wins and anything else falls back to the field default.
``normalize`` never raises.
"""

from __future__ import annotations

from typing import Any

from companion_sync.core.logging import get_logger
from companion_sync.ingestion.accessors import (
    Accessor,
    as_bool,
    as_int,
    as_text,
    collection_at,
    first,
    first_of_keys,
    in_range,
    int_at,
    keyed_entries,
    level_from_key,
    names_in,
    text_at,
)
from companion_sync.models.character import (
    DEFAULT_ABILITY_SCORE,
    AbilityName,
    AbilityScores,
    Armor,
    BasicInfo,
    CombatStats,
    NormalizedCharacter,
    SavingThrows,
    SkillEntry,
    Weapon,
)
from companion_sync.models.provider import RecordKind

logger = get_logger(__name__)


MAX_SPELL_LEVEL = 9


# =============================================================================
# Field Rules
# =============================================================================


def _ability_rules(ability: AbilityName) -> list[Accessor[int]]:
    names = (
        ability.value,
        ability.abbreviation,
        ability.abbreviation.upper(),
        ability.value.capitalize(),
    )
    containers = ("abilityScores", "abilities", "stats", "attributes")
    rules = [int_at(container, name) for container in containers for name in names]
    rules += [int_at(ability.value), int_at(ability.abbreviation)]
    return rules


ABILITY_RULES: dict[AbilityName, list[Accessor[int]]] = {
    ability: _ability_rules(ability) for ability in AbilityName
}


def _total_class_levels(document: Any) -> int | None:
    classes = collection_at("classes")(document)
    if classes is None:
        return None
    levels = [as_int(entry.get("level")) for _, entry in keyed_entries(classes) if isinstance(entry, dict)]
    levels = [level for level in levels if level is not None]
    return in_range(sum(levels)) if levels else None


LEVEL_RULES: list[Accessor[int]] = [
    int_at("level"),
    int_at("characterInfo", "level"),
    int_at("character", "level"),
    int_at("classInfo", "level"),
    _total_class_levels,
]

COMBAT_RULES: dict[str, list[Accessor[int]]] = {
    "current_hp": [
        int_at("hp", "current"),
        int_at("hitPoints", "current"),
        int_at("combat", "hp", "current"),
        int_at("combat", "currentHp"),
        int_at("currentHp"),
    ],
    "max_hp": [
        int_at("hp", "max"),
        int_at("hitPoints", "max"),
        int_at("combat", "hp", "max"),
        int_at("combat", "maxHp"),
        int_at("maxHp"),
        int_at("hitPoints"),
        int_at("hp"),
    ],
    "temp_hp": [
        int_at("hp", "temp"),
        int_at("hitPoints", "temp"),
        int_at("hitPoints", "temporary"),
        int_at("combat", "hp", "temp"),
        int_at("tempHp"),
    ],
    "armor_class": [
        int_at("ac", "normal"),
        int_at("armorClass", "normal"),
        int_at("combat", "ac", "normal"),
        int_at("combat", "armorClass"),
        int_at("armorClass"),
        int_at("ac"),
    ],
    "touch_ac": [
        int_at("ac", "touch"),
        int_at("armorClass", "touch"),
        int_at("combat", "ac", "touch"),
        int_at("touchAc"),
        int_at("touchAC"),
    ],
    "flat_footed_ac": [
        int_at("ac", "flatFooted"),
        int_at("armorClass", "flatFooted"),
        int_at("combat", "ac", "flatFooted"),
        int_at("flatFootedAc"),
        int_at("flatFootedAC"),
    ],
    "initiative": [
        int_at("initiative"),
        int_at("combat", "initiative"),
        int_at("init"),
    ],
    "speed": [
        int_at("speed", "base"),
        int_at("speed", "land"),
        int_at("combat", "speed"),
        int_at("movement", "land"),
        int_at("speed"),
    ],
    "base_attack_bonus": [
        int_at("baseAttackBonus"),
        int_at("bab"),
        int_at("combat", "baseAttackBonus"),
        int_at("combat", "bab"),
    ],
    "cmb": [
        int_at("cmb"),
        int_at("combat", "cmb"),
        int_at("combatManeuverBonus"),
        int_at("combatManeuvers", "cmb"),
    ],
    "cmd": [
        int_at("cmd"),
        int_at("combat", "cmd"),
        int_at("combatManeuverDefense"),
        int_at("combatManeuvers", "cmd"),
    ],
}


def _save_rules(name: str, abbreviation: str) -> list[Accessor[int]]:
    return [
        int_at("saves", name),
        int_at("saves", abbreviation),
        int_at("savingThrows", name),
        int_at("savingThrows", abbreviation),
        int_at("combat", "saves", name),
        int_at(f"{name}Save"),
    ]


SAVE_RULES: dict[str, list[Accessor[int]]] = {
    "fortitude": _save_rules("fortitude", "fort"),
    "reflex": _save_rules("reflex", "ref"),
    "will": _save_rules("will", "will"),
}

SKILL_SOURCES = [collection_at("skills"), collection_at("skillList"), collection_at("character", "skills")]
FEAT_SOURCES = [collection_at("feats"), collection_at("featList"), collection_at("character", "feats")]
WEAPON_SOURCES = [collection_at("weapons"), collection_at("equipment", "weapons"), collection_at("attacks")]
ARMOR_SOURCES = [collection_at("armor"), collection_at("equipment", "armor"), collection_at("armour")]
SPELL_SOURCES = [
    collection_at("spells"),
    collection_at("spellbook"),
    collection_at("spellsKnown"),
    collection_at("spellcasting", "spells"),
]

# Every location is read and merged, unlike the single-source lists above.
SPECIAL_ABILITY_LOCATIONS = [
    collection_at("specialAbilities"),
    collection_at("classFeatures"),
    collection_at("traits"),
]

INFO_RULES: dict[str, list[Accessor[str]]] = {
    field: [
        text_at(field),
        text_at("characterInfo", field),
        text_at("character", field),
        text_at("info", field),
    ]
    for field in ("race", "alignment", "deity", "size")
}


def _class_names(document: Any) -> str | None:
    classes = collection_at("classes")(document)
    if classes is None:
        return None
    names = names_in(classes)
    return " / ".join(names) if names else None


CLASS_RULES: list[Accessor[str]] = [
    text_at("class"),
    text_at("className"),
    text_at("characterInfo", "class"),
    text_at("characterInfo", "className"),
    _class_names,
]

NAME_RULES: list[Accessor[str]] = [
    text_at("characterInfo", "name"),
    text_at("character", "name"),
    text_at("info", "name"),
]
CAMPAIGN_NAME_RULES: list[Accessor[str]] = [
    text_at("campaignName"),
    text_at("campaign", "name"),
    text_at("campaign"),
]
TOP_LEVEL_NAME_RULES: list[Accessor[str]] = [
    text_at("name"),
    text_at("characterName"),
    text_at("Name"),
    text_at("charName"),
]


# =============================================================================
# Section Readers
# =============================================================================


def _abilities(document: Any) -> AbilityScores:
    return AbilityScores(
        **{
            ability.value: first(rules, document, DEFAULT_ABILITY_SCORE)
            for ability, rules in ABILITY_RULES.items()
        }
    )


def _combat(document: Any) -> CombatStats:
    defaults = CombatStats()
    return CombatStats(
        **{field: first(rules, document, getattr(defaults, field)) for field, rules in COMBAT_RULES.items()}
    )


def _saves(document: Any) -> SavingThrows:
    return SavingThrows(**{field: first(rules, document, 0) for field, rules in SAVE_RULES.items()})


def _skill_entry(entry: Any) -> SkillEntry:
    if not isinstance(entry, dict):
        return SkillEntry(total=as_int(entry) or 0)
    return SkillEntry(
        ranks=first_of_keys(entry, ("ranks", "rank"), as_int) or 0,
        total=first_of_keys(entry, ("total", "value", "bonus", "mod"), as_int) or 0,
        misc=first_of_keys(entry, ("misc", "miscBonus", "miscModifier"), as_int) or 0,
        is_class_skill=bool(first_of_keys(entry, ("isClassSkill", "classSkill", "class_skill"), as_bool)),
    )


def _skills(document: Any) -> dict[str, SkillEntry]:
    container = first(SKILL_SOURCES, document, None)
    if container is None:
        return {}
    skills: dict[str, SkillEntry] = {}
    for key, entry in keyed_entries(container):
        name = as_text(entry) if isinstance(entry, dict) else None
        name = name or (as_text(key) if key is not None else None)
        if name is None or name in skills:
            continue
        skills[name] = _skill_entry(entry)
    return skills


def _feats(document: Any) -> list[str]:
    container = first(FEAT_SOURCES, document, None)
    return names_in(container) if container is not None else []


def _special_abilities(document: Any) -> list[str]:
    merged: list[str] = []
    seen: set[str] = set()
    for location in SPECIAL_ABILITY_LOCATIONS:
        container = location(document)
        if container is None:
            continue
        for name in names_in(container):
            if name not in seen:
                seen.add(name)
                merged.append(name)
    return merged


def _bonus_text(value: Any) -> str | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return f"{value:+d}"
    number = as_int(value) if isinstance(value, dict) else None
    if number is not None:
        return f"{number:+d}"
    return as_text(value) if isinstance(value, str) else None


def _plain_text(value: Any) -> str | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return str(value)
    return as_text(value) if isinstance(value, str) else None


def _weapon(key: str | None, entry: Any) -> Weapon | None:
    if isinstance(entry, str):
        name = as_text(entry)
        return Weapon(name=name) if name else None
    if not isinstance(entry, dict):
        return None
    name = first_of_keys(entry, ("name", "weaponName"), as_text) or (as_text(key) if key else None)
    if name is None:
        return None
    return Weapon(
        name=name,
        attack_bonus=first_of_keys(entry, ("attackBonus", "attack", "toHit", "bonus"), _bonus_text) or "",
        damage=first_of_keys(entry, ("damage", "dmg"), _plain_text) or "",
        critical=first_of_keys(entry, ("critical", "crit"), _plain_text) or "",
        range=first_of_keys(entry, ("range", "rangeIncrement"), _plain_text) or "",
        type=first_of_keys(entry, ("type", "damageType"), _plain_text) or "",
        notes=first_of_keys(entry, ("notes", "special"), _plain_text) or "",
    )


def _weapons(document: Any) -> list[Weapon]:
    container = first(WEAPON_SOURCES, document, None)
    if container is None:
        return []
    weapons = [_weapon(key, entry) for key, entry in keyed_entries(container)]
    return [weapon for weapon in weapons if weapon is not None]


def _armor(document: Any) -> Armor:
    container = first(ARMOR_SOURCES, document, None)
    if container is None:
        return Armor()

    entry: dict[str, Any] | None = None
    if isinstance(container, dict) and any(key in container for key in ("name", "acBonus", "armorBonus")):
        entry = container
    else:
        candidates = [item for _, item in keyed_entries(container) if isinstance(item, dict)]
        equipped = [item for item in candidates if as_bool(item.get("equipped"))]
        if equipped or candidates:
            entry = (equipped or candidates)[0]
    if entry is None:
        return Armor()

    return Armor(
        name=as_text(entry.get("name")) or "",
        ac_bonus=first_of_keys(entry, ("acBonus", "armorBonus", "bonus", "ac"), as_int) or 0,
        max_dex=first_of_keys(entry, ("maxDex", "maxDexBonus"), as_int),
        check_penalty=first_of_keys(entry, ("checkPenalty", "armorCheckPenalty", "acp"), as_int) or 0,
        spell_failure=first_of_keys(entry, ("spellFailure", "arcaneSpellFailure", "asf"), as_int) or 0,
        type=first_of_keys(entry, ("type", "category"), as_text) or "",
    )


def _spell_names(value: Any) -> list[str]:
    if isinstance(value, dict):
        for key in ("spells", "known", "list"):
            if isinstance(value.get(key), (list, dict)):
                return names_in(value[key])
        return names_in(value)
    if isinstance(value, list):
        return names_in(value)
    return []


def _spells(document: Any) -> dict[int, list[str]]:
    container = first(SPELL_SOURCES, document, None)
    if container is None:
        return {}

    by_level: dict[int, list[str]] = {}
    if isinstance(container, dict):
        for key, value in container.items():
            level = level_from_key(str(key))
            if level is None or level > MAX_SPELL_LEVEL:
                continue
            names = _spell_names(value)
            if names:
                by_level.setdefault(level, []).extend(names)
    else:
        for entry in container:
            name = as_text(entry)
            level = as_int(entry.get("level")) if isinstance(entry, dict) else None
            if name is None or level is None or not 0 <= level <= MAX_SPELL_LEVEL:
                continue
            by_level.setdefault(level, []).append(name)
    return dict(sorted(by_level.items()))


def _info(document: Any) -> BasicInfo:
    return BasicInfo(
        **{field: first(rules, document, None) for field, rules in INFO_RULES.items()},
        character_class=first(CLASS_RULES, document, None),
    )


# =============================================================================
# Public API
# =============================================================================


def normalize(document: Any) -> NormalizedCharacter:
    """Map a decoded document onto the canonical attribute set.

    Args:
        document: Decoded JSON of any shape.

    Returns:
        The normalized character; absent or malformed fields take their
        defaults. Never raises.
    """
    if not isinstance(document, dict):
        logger.debug("Document is not an object, using defaults", kind=type(document).__name__)
        return NormalizedCharacter()

    return NormalizedCharacter(
        abilities=_abilities(document),
        level=first(LEVEL_RULES, document, 1, valid=lambda level: level >= 1),
        combat=_combat(document),
        saves=_saves(document),
        skills=_skills(document),
        feats=_feats(document),
        special_abilities=_special_abilities(document),
        weapons=_weapons(document),
        armor=_armor(document),
        spells=_spells(document),
        info=_info(document),
    )


def resolve_name(document: Any, record_key: str) -> str:
    """Pick the display name for a record.

    Order: nested character-info name, campaign name (campaign records
    only), top-level name variants, then the record key itself.
    """
    rules = list(NAME_RULES)
    if RecordKind.for_key(record_key) is RecordKind.CAMPAIGN:
        rules += CAMPAIGN_NAME_RULES
    rules += TOP_LEVEL_NAME_RULES
    return first(rules, document, record_key)
