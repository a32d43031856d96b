from __future__ import annotations
from dataclasses import replace
from typing import Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from .dice import DiceRoll, dice_expected_value
from .modifiers import Situation, modifier_applies
from .schema_models import (
    Modifier, ToHitMod, DamageMod, CritRangeMod, AdvantageMod, DisadvantageMod, ExtraAttackMod,
    ActionEconomyMod, TriggerMod, ResourceMod, PassiveMod, WeaponTrainingMod,
)
from .trace import NULL_TRACE, NullTrace

MIN_CRIT_RANGE = 2
POWER_ATTACK_TO_HIT = -5
POWER_ATTACK_DAMAGE = 10
BONUS_ACTION_DAMAGE_SCALE = 0.5

class ResolveContext(BaseModel):
    model_config = ConfigDict(frozen=True)

    level: int = 1
    proficiency_bonus: int = 2
    ability_mod: int = 0
    weapon_enhancement: int = 0

    weapon_id: str = "longsword"
    weapon_properties: Tuple[str, ...] = ()
    weapon_category: Literal["melee", "ranged"] = "melee"
    weapon_base_damage: float = 0.0
    weapon_dice: Optional[DiceRoll] = None

    round: int = 1
    has_advantage: bool = False
    has_disadvantage: bool = False
    target_ac: int = 15
    target_below_full_hp: bool = False
    concentration_active: bool = False

    # build-level toggles; power_attack engages any applicable power-attack marker
    power_attack: bool = False
    sharpshooter: bool = False
    great_weapon_master: bool = False
    hex: bool = False
    hunters_mark: bool = False
    bless: bool = False
    faerie_fire: bool = False

    # limited-use pools still available this round, keyed by pool name
    resources: Dict[str, int] = Field(default_factory=dict)

    def situation(self) -> Situation:
        return Situation(weapon_id=self.weapon_id, weapon_properties=tuple(self.weapon_properties),
                         weapon_category=self.weapon_category, has_advantage=self.has_advantage,
                         round=self.round, concentration_active=self.concentration_active,
                         target_below_full_hp=self.target_below_full_hp)

class AttackEffect(BaseModel):
    type: Literal["damage", "extra_attack", "resource"]
    value: float
    condition: Optional[str] = None
    source: Optional[str] = None
    once_per_turn: bool = False

class BonusActionAttack(BaseModel):
    attack_bonus: float
    damage_bonus: float
    base_damage: float
    source: str

class LimitedUse(BaseModel):
    id: str
    pool: str
    max: int
    recharge: str
    remaining: int

class WeaponContext(BaseModel):
    weapon_id: str
    properties: List[str]
    category: Literal["melee", "ranged"]
    base_damage: float
    crit_multiplier: int = 2

class ResolvedAttack(BaseModel):
    attack_bonus: float
    damage_bonus: float
    base_damage: float

    has_advantage: bool = False
    has_disadvantage: bool = False
    elven_accuracy: bool = False
    crit_range: int = 20

    attacks_per_round: int = 1
    bonus_action_attack: Optional[BonusActionAttack] = None
    action_surge: bool = False
    power_attack: bool = False

    uses_action: bool = True
    uses_bonus_action: bool = False
    uses_reaction: bool = False
    requires_concentration: bool = False

    on_hit_effects: List[AttackEffect] = Field(default_factory=list)
    on_crit_effects: List[AttackEffect] = Field(default_factory=list)
    limited_uses: List[LimitedUse] = Field(default_factory=list)
    applied: List[str] = Field(default_factory=list)

    weapon_context: WeaponContext

def _is_elven_accuracy(mod: Modifier) -> bool:
    return isinstance(mod, AdvantageMod) and mod.elven_accuracy

def _has_uses_left(mod: Modifier, context: ResolveContext) -> bool:
    if mod.uses is None:
        return True
    return context.resources.get(mod.pool, 0) > 0

def resolve_attack(modifiers: List[Modifier], context: ResolveContext,
                   trace: NullTrace = NULL_TRACE) -> ResolvedAttack:
    """
    Fold the modifiers that apply to this round/weapon into one attack profile.
    Toggles (GWM/SS, hex, hunter's mark, bless, faerie fire) are applied last and
    are not subject to condition filtering.
    """
    resolved = ResolvedAttack(
        attack_bonus=context.ability_mod + context.proficiency_bonus + context.weapon_enhancement,
        damage_bonus=context.ability_mod + context.weapon_enhancement,
        base_damage=context.weapon_base_damage,
        has_advantage=context.has_advantage,
        has_disadvantage=context.has_disadvantage,
        weapon_context=WeaponContext(weapon_id=context.weapon_id, properties=list(context.weapon_properties),
                                     category=context.weapon_category, base_damage=context.weapon_base_damage),
    )
    situation = context.situation()
    # elven accuracy is gated on the folded advantage state, not the incoming one
    assume_advantage = replace(situation, has_advantage=True)
    applicable: List[Modifier] = []
    for mod in modifiers:
        if not modifier_applies(mod, assume_advantage if _is_elven_accuracy(mod) else situation):
            continue
        if not _has_uses_left(mod, context):
            if trace.enabled:
                trace.add(f"skip {mod.id}: no uses left in pool '{mod.pool}'")
            continue
        applicable.append(mod)
        if mod.uses is not None:
            resolved.limited_uses.append(LimitedUse(id=mod.id, pool=mod.pool, max=mod.uses.max,
                                                    recharge=mod.uses.recharge,
                                                    remaining=context.resources.get(mod.pool, 0)))
    resolved.applied = [m.id for m in applicable if not _is_elven_accuracy(m)]

    crit_delta = 0.0
    triggers: List[TriggerMod] = []
    elven: List[AdvantageMod] = []
    for mod in applicable:
        if isinstance(mod, ToHitMod):
            resolved.attack_bonus += mod.value
        elif isinstance(mod, DamageMod):
            resolved.damage_bonus += mod.value
        elif isinstance(mod, AdvantageMod):
            if mod.elven_accuracy:
                elven.append(mod)
            else:
                resolved.has_advantage = True
        elif isinstance(mod, DisadvantageMod):
            resolved.has_disadvantage = True
        elif isinstance(mod, CritRangeMod):
            crit_delta += mod.value
        elif isinstance(mod, ExtraAttackMod):
            resolved.attacks_per_round += int(mod.value)
        elif isinstance(mod, ActionEconomyMod):
            _apply_action_economy(resolved, mod)
        elif isinstance(mod, TriggerMod):
            triggers.append(mod)
        elif isinstance(mod, WeaponTrainingMod):
            resolved.attack_bonus += mod.attack_bonus
            resolved.damage_bonus += mod.damage_bonus
        elif isinstance(mod, PassiveMod):
            _apply_passive(resolved, mod, context)
        elif isinstance(mod, ResourceMod):
            if mod.recharge == "concentration":
                resolved.requires_concentration = True
        else:  # pragma: no cover - the union is closed
            raise TypeError(f"unhandled modifier kind: {mod.kind}")

    resolved.crit_range = max(MIN_CRIT_RANGE, int(round(20 - crit_delta)))
    _cancel_advantage(resolved)
    for mod in triggers:
        _apply_trigger(resolved, mod)
    _apply_toggles(resolved, context)
    if elven and resolved.has_advantage:
        resolved.elven_accuracy = True
        resolved.applied.extend(m.id for m in elven)
    _cancel_advantage(resolved)

    # bonus action attacks are synthesized from the final main-hand profile
    if resolved.bonus_action_attack is not None:
        resolved.bonus_action_attack = BonusActionAttack(
            attack_bonus=resolved.attack_bonus, damage_bonus=resolved.damage_bonus,
            base_damage=resolved.base_damage * BONUS_ACTION_DAMAGE_SCALE,
            source=resolved.bonus_action_attack.source)

    if trace.enabled:
        trace.add(f"resolved {context.weapon_id} round {context.round}: +{resolved.attack_bonus:g} to hit, "
                  f"{resolved.base_damage:g}+{resolved.damage_bonus:g} dmg, crit {resolved.crit_range}-20, "
                  f"{resolved.attacks_per_round} attack(s), adv={resolved.has_advantage} "
                  f"dis={resolved.has_disadvantage} ea={resolved.elven_accuracy}")
    return resolved

def _cancel_advantage(resolved: ResolvedAttack) -> None:
    if resolved.has_advantage and resolved.has_disadvantage:
        resolved.has_advantage = False
        resolved.has_disadvantage = False
        resolved.elven_accuracy = False
    elif not resolved.has_advantage:
        resolved.elven_accuracy = False

def _apply_action_economy(resolved: ResolvedAttack, mod: ActionEconomyMod) -> None:
    if mod.slot == "reaction":
        resolved.uses_reaction = True
        return
    if mod.provides and resolved.bonus_action_attack is None:
        resolved.uses_bonus_action = True
        # placeholder; filled in from the final profile once toggles are applied
        resolved.bonus_action_attack = BonusActionAttack(attack_bonus=0, damage_bonus=0, base_damage=0,
                                                         source=mod.id)

def _apply_passive(resolved: ResolvedAttack, mod: PassiveMod, context: ResolveContext) -> None:
    if mod.effect == "reroll_low_damage_dice" and context.weapon_dice is not None \
            and context.weapon_category == "melee":
        dice = context.weapon_dice.model_copy(update={"reroll_ones": True, "reroll_twos": True})
        resolved.base_damage = dice_expected_value(dice)
    elif mod.effect == "action_surge":
        resolved.action_surge = True
    elif mod.effect == "power_attack" and context.power_attack:
        _power_attack(resolved)

def _power_attack(resolved: ResolvedAttack) -> None:
    if resolved.power_attack:
        return
    resolved.attack_bonus += POWER_ATTACK_TO_HIT
    resolved.damage_bonus += POWER_ATTACK_DAMAGE
    resolved.power_attack = True

def _apply_trigger(resolved: ResolvedAttack, mod: TriggerMod) -> None:
    eff = mod.effect
    if eff.blocked_by_disadvantage and resolved.has_disadvantage:
        return
    if mod.event == "on_hit":
        if eff.damage:
            resolved.on_hit_effects.append(AttackEffect(type="damage", value=eff.damage, source=mod.id,
                                                        once_per_turn=eff.once_per_turn))
            if eff.dice:
                # the rider's dice are rolled twice on a crit
                resolved.on_crit_effects.append(AttackEffect(type="damage", value=eff.damage, source=mod.id,
                                                             once_per_turn=eff.once_per_turn))
        if eff.extra_attack:
            resolved.on_hit_effects.append(AttackEffect(type="extra_attack", value=1, source=mod.id))
    elif mod.event == "on_crit":
        if eff.damage:
            resolved.on_crit_effects.append(AttackEffect(type="damage", value=eff.damage, source=mod.id))
        if eff.extra_attack:
            resolved.on_crit_effects.append(AttackEffect(type="extra_attack", value=1, source=mod.id))
    # on_kill triggers do not change the expected damage of a single attack

def _apply_toggles(resolved: ResolvedAttack, context: ResolveContext) -> None:
    heavy = "heavy" in context.weapon_properties
    if (context.great_weapon_master and context.weapon_category == "melee" and heavy) or \
            (context.sharpshooter and context.weapon_category == "ranged"):
        _power_attack(resolved)
    if context.hex:
        resolved.on_hit_effects.append(AttackEffect(type="damage", value=3.5, condition="hex_target", source="hex"))
        resolved.on_crit_effects.append(AttackEffect(type="damage", value=3.5, condition="hex_target", source="hex"))
        resolved.requires_concentration = True
    if context.hunters_mark:
        resolved.on_hit_effects.append(AttackEffect(type="damage", value=3.5, condition="hunters_mark_target",
                                                    source="hunters_mark"))
        resolved.on_crit_effects.append(AttackEffect(type="damage", value=3.5, condition="hunters_mark_target",
                                                     source="hunters_mark"))
        resolved.requires_concentration = True
    if context.bless:
        resolved.attack_bonus += 2.5
        resolved.requires_concentration = True
    if context.faerie_fire:
        resolved.has_advantage = True
        resolved.requires_concentration = True
