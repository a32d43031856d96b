from __future__ import annotations
from typing import List, Literal, Optional, Union
from typing_extensions import Annotated
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator

# Condition tags evaluated by modifiers.modifier_applies
ModifierCondition = Literal[
    "always",
    # weapon shape
    "heavy_weapon", "heavy_melee", "ranged_weapon", "melee_weapon", "two_handed", "light_weapon",
    "finesse_weapon", "finesse_or_ranged", "one_handed_melee", "crossbow", "polearm",
    # temporal
    "first_attack_of_turn", "subsequent_attacks",
    # state
    "advantage_on_attack", "concentration_active", "target_below_full_hp",
    # identity
    "specific_weapon",
]

Recharge = Literal["short_rest", "long_rest", "turn", "encounter"]

class Uses(BaseModel):
    model_config = ConfigDict(frozen=True)

    max: int = Field(ge=1)
    recharge: Recharge = "long_rest"
    pool: Optional[str] = None  # shared resource key; defaults to the modifier id

class _ModBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str = ""
    source: str
    condition: ModifierCondition = "always"
    value: Optional[float] = None
    uses: Optional[Uses] = None

    @property
    def pool(self) -> str:
        if self.uses and self.uses.pool:
            return self.uses.pool
        return self.id

class ToHitMod(_ModBase):
    kind: Literal["to_hit"] = "to_hit"
    value: float

class DamageMod(_ModBase):
    kind: Literal["damage"] = "damage"
    value: float
    damage_type: Optional[str] = None

class CritRangeMod(_ModBase):
    kind: Literal["crit_range"] = "crit_range"
    value: float

    @model_validator(mode="after")
    def _validate(self):
        if self.value < 0:
            raise ValueError("crit_range modifiers widen the range; value must be >= 0")
        return self

class AdvantageMod(_ModBase):
    kind: Literal["advantage"] = "advantage"
    elven_accuracy: bool = False

class DisadvantageMod(_ModBase):
    kind: Literal["disadvantage"] = "disadvantage"

class ExtraAttackMod(_ModBase):
    kind: Literal["extra_attack"] = "extra_attack"
    value: float

class ActionEconomyMod(_ModBase):
    kind: Literal["action_economy"] = "action_economy"
    slot: Literal["bonus_action", "reaction"]
    provides: Optional[str] = None
    requires: Optional[str] = None
    conflicts_with: List[str] = Field(default_factory=list)

class TriggerEffect(BaseModel):
    model_config = ConfigDict(frozen=True)

    damage: float = 0.0
    dice: bool = False                 # damage is a dice average and doubles on a crit
    extra_attack: bool = False
    restore_resource: Optional[str] = None
    blocked_by_disadvantage: bool = False
    once_per_turn: bool = False        # rides on the first hit of the turn only

class TriggerMod(_ModBase):
    kind: Literal["trigger"] = "trigger"
    event: Literal["on_hit", "on_crit", "on_kill"]
    effect: TriggerEffect = Field(default_factory=TriggerEffect)

class ResourceMod(_ModBase):
    kind: Literal["resource"] = "resource"
    recharge: Literal["short_rest", "long_rest", "concentration"]
    duration_rounds: Optional[int] = None
    break_on_damage: bool = False

class PassiveMod(_ModBase):
    kind: Literal["passive"] = "passive"
    effect: Optional[Literal["power_attack", "reroll_low_damage_dice", "action_surge", "armor_class"]] = None

class WeaponTrainingMod(_ModBase):
    kind: Literal["weapon_training"] = "weapon_training"
    condition: ModifierCondition = "specific_weapon"
    weapon_id: str
    attack_bonus: int = 0
    damage_bonus: int = 0

    @model_validator(mode="after")
    def _validate(self):
        if self.attack_bonus < 0 or self.damage_bonus < 0:
            raise ValueError("weapon training bonuses cannot be negative")
        return self

Modifier = Annotated[
    Union[ToHitMod, DamageMod, CritRangeMod, AdvantageMod, DisadvantageMod, ExtraAttackMod,
          ActionEconomyMod, TriggerMod, ResourceMod, PassiveMod, WeaponTrainingMod],
    Field(discriminator="kind"),
]
ModifierKind = Literal["to_hit", "damage", "crit_range", "advantage", "disadvantage", "extra_attack",
                       "action_economy", "trigger", "resource", "passive", "weapon_training"]

ModifierAdapter = TypeAdapter(Modifier)
ModifierListAdapter = TypeAdapter(List[Modifier])
