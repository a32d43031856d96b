from __future__ import annotations
from typing import List, Optional
import re

from pydantic import BaseModel, ConfigDict, Field

_DICE_RE = re.compile(r"\s*(\d+)d(\d+)([+-]\d+)?\s*")

class DiceRoll(BaseModel):
    model_config = ConfigDict(frozen=True)

    count: int = Field(1, ge=0)
    die: int = Field(6, ge=1)
    reroll_ones: bool = False
    reroll_twos: bool = False

class DamageRoll(BaseModel):
    base_dice: List[DiceRoll] = Field(default_factory=list)
    bonus_damage: float = 0.0
    additional_dice: List[DiceRoll] = Field(default_factory=list)  # sneak attack, hex, smites

def parse_dice(s: str) -> Optional[DamageRoll]:  # e.g., "2d6+3"
    m = _DICE_RE.fullmatch(s)
    if not m:
        return None
    n, d = int(m.group(1)), int(m.group(2))
    return DamageRoll(base_dice=[DiceRoll(count=n, die=d)], bonus_damage=int(m.group(3) or 0))

def dice_expected_value(dice: DiceRoll) -> float:
    avg = (dice.die + 1) / 2
    if dice.reroll_ones or dice.reroll_twos:
        # Great Weapon Fighting: a rerolled face contributes the plain die average
        total = 0.0
        for face in range(1, dice.die + 1):
            if (face == 1 and dice.reroll_ones) or (face == 2 and dice.reroll_twos):
                total += avg
            else:
                total += face
        avg = total / dice.die
    return dice.count * avg

def dice_total(dice: List[DiceRoll]) -> float:
    return sum(dice_expected_value(d) for d in dice)

def damage_roll_expected(damage: DamageRoll) -> float:
    return damage.bonus_damage + dice_total(damage.base_dice) + dice_total(damage.additional_dice)
