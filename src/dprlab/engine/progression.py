from __future__ import annotations
from typing import Dict, List, Mapping, Optional
import math

from .loader import ContentIndex
from .models import ClassDefinition

# Spell slots per spell level (index 0 = 1st level) for a single-class full caster
FULL_CASTER_SLOTS: Dict[int, List[int]] = {
    1: [2], 2: [3], 3: [4, 2], 4: [4, 3], 5: [4, 3, 2], 6: [4, 3, 3],
    7: [4, 3, 3, 1], 8: [4, 3, 3, 2], 9: [4, 3, 3, 3, 1], 10: [4, 3, 3, 3, 2],
    11: [4, 3, 3, 3, 2, 1], 12: [4, 3, 3, 3, 2, 1],
    13: [4, 3, 3, 3, 2, 1, 1], 14: [4, 3, 3, 3, 2, 1, 1],
    15: [4, 3, 3, 3, 2, 1, 1, 1], 16: [4, 3, 3, 3, 2, 1, 1, 1],
    17: [4, 3, 3, 3, 2, 1, 1, 1, 1], 18: [4, 3, 3, 3, 3, 1, 1, 1, 1],
    19: [4, 3, 3, 3, 3, 2, 1, 1, 1], 20: [4, 3, 3, 3, 3, 2, 2, 1, 1],
}

# warlock level -> (slot count, slot level)
PACT_SLOTS: Dict[int, tuple] = {
    1: (1, 1), 2: (2, 1), 3: (2, 2), 4: (2, 2), 5: (2, 3), 6: (2, 3), 7: (2, 4), 8: (2, 4),
    9: (2, 5), 10: (2, 5), 11: (3, 5), 12: (3, 5), 13: (3, 5), 14: (3, 5), 15: (3, 5), 16: (3, 5),
    17: (4, 5), 18: (4, 5), 19: (4, 5), 20: (4, 5),
}

CASTER_TYPES: Dict[str, str] = {
    "wizard": "full", "sorcerer": "full", "cleric": "full", "druid": "full", "bard": "full",
    "ranger": "half", "paladin": "half",
    "warlock": "pact",
}

HIT_DICE: Dict[str, int] = {
    "barbarian": 12, "fighter": 10, "paladin": 10, "ranger": 10,
    "bard": 8, "cleric": 8, "druid": 8, "monk": 8, "rogue": 8, "warlock": 8,
    "sorcerer": 6, "wizard": 6,
}

EXTRA_ATTACK_CLASSES = {"fighter", "ranger", "paladin", "barbarian", "monk"}

ASI_LEVELS: Dict[str, List[int]] = {
    "fighter": [4, 6, 8, 12, 14, 16, 19],
    "rogue": [4, 8, 10, 12, 16, 19],
}
DEFAULT_ASI_LEVELS = [4, 8, 12, 16, 19]

POWER_SPIKES: Dict[str, List[int]] = {
    "fighter": [1, 2, 5, 11],
    "rogue": [1, 2, 3, 5],
    "barbarian": [1, 5],
    "wizard": [1, 3, 5, 9],
    "sorcerer": [1, 3, 5, 9],
    "paladin": [2, 5],
}

SYNERGY: Dict[str, Dict[str, float]] = {
    "fighter": {"wizard": 3, "rogue": 2, "paladin": 2, "ranger": 2},
    "rogue": {"fighter": 2, "wizard": 1},
    "wizard": {"fighter": 3, "rogue": 1},
    "barbarian": {"fighter": 2},
    "paladin": {"fighter": 2},
    "ranger": {"fighter": 2},
}

PRIMARY_ABILITY: Dict[str, str] = {
    "barbarian": "str", "fighter": "str", "paladin": "str", "monk": "dex", "ranger": "dex",
    "rogue": "dex", "bard": "cha", "sorcerer": "cha", "warlock": "cha", "cleric": "wis",
    "druid": "wis", "wizard": "int",
}

def class_profile(class_id: str, content: Optional[ContentIndex] = None) -> ClassDefinition:
    """Catalog definition when present, otherwise one synthesized from the built-in tables."""
    if content is not None:
        found = content.get_class(class_id)
        if found is not None:
            return found
    return ClassDefinition(
        id=class_id, name=class_id.title(),
        hit_die=HIT_DICE.get(class_id, 8),
        caster=CASTER_TYPES.get(class_id, "none"),
        primary_ability=PRIMARY_ABILITY.get(class_id, "str"),
        extra_attack_level=5 if class_id in EXTRA_ATTACK_CLASSES else None,
        asi_levels=ASI_LEVELS.get(class_id, DEFAULT_ASI_LEVELS),
        power_spikes=POWER_SPIKES.get(class_id, []),
    )

def gets_extra_attack(profile: ClassDefinition, class_level: int) -> bool:
    return profile.extra_attack_level is not None and class_level >= profile.extra_attack_level

def is_power_spike(profile: ClassDefinition, class_level: int) -> bool:
    return class_level in profile.power_spikes

def spell_slots(class_levels: Mapping[str, int], content: Optional[ContentIndex] = None) -> Dict[int, int]:
    """Multiclass slot table: full levels + half levels // 2, plus pact slots on top."""
    full = 0
    half = 0
    slots: Dict[int, int] = {}
    for class_id, lvl in class_levels.items():
        caster = class_profile(class_id, content).caster
        if caster == "full":
            full += lvl
        elif caster == "half":
            half += lvl
        elif caster == "pact" and lvl > 0:
            count, slot_level = PACT_SLOTS[min(lvl, 20)]
            slots[slot_level] = slots.get(slot_level, 0) + count
    effective = min(20, full + half // 2)
    for i, count in enumerate(FULL_CASTER_SLOTS.get(effective, [])):
        slots[i + 1] = slots.get(i + 1, 0) + count
    return dict(sorted(slots.items()))

def highest_slot_level(slots: Mapping[int, int]) -> int:
    return max((lvl for lvl, n in slots.items() if n > 0), default=0)

def weighted_slots(slots: Mapping[int, int]) -> int:
    return sum(lvl * n for lvl, n in slots.items())

def synergy(a: str, b: str) -> float:
    return SYNERGY.get(a, {}).get(b, 1)

def future_potential(class_id: str, class_level: int, remaining: Mapping[str, int],
                     content: Optional[ContentIndex] = None) -> float:
    """
    Reward for taking `class_id` to `class_level` given the levels still to assign.
    Upcoming power spikes count 10 / distance; other classes add synergy x their remaining levels.
    """
    score = 0.0
    left_in_class = remaining.get(class_id, 0)
    for spike in class_profile(class_id, content).power_spikes:
        if class_level < spike <= class_level + left_in_class:
            score += 10 / (spike - class_level)
    for other, n in remaining.items():
        if other != class_id and n > 0:
            score += synergy(class_id, other) * n
    return score

def class_dpr_bonus(class_id: str, class_level: int) -> float:
    bonus = 0.0
    if class_id == "fighter":
        if class_level >= 5:
            bonus += 4
        if class_level >= 11:
            bonus += 4
        if class_level >= 2:
            bonus += 2
    elif class_id in ("ranger", "paladin"):
        if class_level >= 5:
            bonus += 4
        if class_level >= 2:
            bonus += 1.5
    elif class_id == "barbarian":
        if class_level >= 5:
            bonus += 4
        if class_level >= 1:
            bonus += 2
    elif class_id == "rogue":
        bonus += math.ceil(class_level / 2) * 3.5
    elif class_id == "monk":
        if class_level >= 5:
            bonus += 3
        bonus += 2
    elif class_id in ("wizard", "sorcerer"):
        if class_level >= 5:
            bonus += 5
        if class_level >= 1:
            bonus += 2
    elif class_id == "warlock":
        bonus += min((class_level + 1) // 2, 4) * 2
        if class_level >= 2:
            bonus += 2
    return bonus

def fallback_dpr(class_id: str, class_level: int, character_level: int) -> float:
    """Deterministic estimate used when a precise DPR evaluation fails."""
    dpr = 3 + character_level // 4 + class_dpr_bonus(class_id, class_level)
    dpr += (ord(class_id[0]) % 3) - 1 if class_id else 0
    return max(1.0, dpr)
