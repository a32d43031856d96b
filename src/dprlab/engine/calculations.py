from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Union

from .dice import DamageRoll, dice_total
from .resolver import ResolvedAttack
from .trace import NULL_TRACE, NullTrace

MIN_HIT_CHANCE = 0.05
MAX_HIT_CHANCE = 0.95

class AdvantageState(str, Enum):
    NORMAL = "normal"
    ADVANTAGE = "advantage"
    DISADVANTAGE = "disadvantage"
    ELVEN_ACCURACY = "elven_accuracy"

@dataclass(frozen=True)
class HitProbabilities:
    """Exclusive outcome buckets for one attack roll. `hit` excludes crits."""
    hit: float
    crit: float
    miss: float

    @property
    def hit_or_crit(self) -> float:
        return self.hit + self.crit

def _roll_transform(p: float, state: AdvantageState) -> float:
    if state == AdvantageState.ADVANTAGE:
        return 1 - (1 - p) ** 2
    if state == AdvantageState.DISADVANTAGE:
        return p ** 2
    if state == AdvantageState.ELVEN_ACCURACY:
        return 1 - (1 - p) ** 3
    return p

def calculate_hit_probability(attack_bonus: float, target_ac: int,
                              advantage: Union[AdvantageState, str] = AdvantageState.NORMAL,
                              crit_range: int = 20) -> HitProbabilities:
    state = AdvantageState(advantage)
    base_hit = min(MAX_HIT_CHANCE, max(MIN_HIT_CHANCE, (21 + attack_bonus - target_ac) / 20))
    base_crit = (21 - max(2, crit_range)) / 20

    hit_or_better = _roll_transform(base_hit, state)
    crit = _roll_transform(base_crit, state)
    # a natural roll inside the crit range always hits
    hit_or_better = max(hit_or_better, crit)
    return HitProbabilities(hit=hit_or_better - crit, crit=crit, miss=1 - hit_or_better)

def advantage_state_of(resolved: ResolvedAttack) -> AdvantageState:
    if resolved.has_advantage and resolved.has_disadvantage:
        return AdvantageState.NORMAL
    if resolved.has_advantage:
        return AdvantageState.ELVEN_ACCURACY if resolved.elven_accuracy else AdvantageState.ADVANTAGE
    if resolved.has_disadvantage:
        return AdvantageState.DISADVANTAGE
    return AdvantageState.NORMAL

def calculate_single_attack_dpr(attack_bonus: float, damage: DamageRoll, target_ac: int,
                                advantage: Union[AdvantageState, str] = AdvantageState.NORMAL,
                                crit_range: int = 20) -> float:
    p = calculate_hit_probability(attack_bonus, target_ac, advantage, crit_range)
    dice = dice_total(damage.base_dice) + dice_total(damage.additional_dice)
    normal = dice + damage.bonus_damage
    crit = 2 * dice + damage.bonus_damage
    return p.hit * normal + p.crit * crit

def calculate_dpr_from_resolved(resolved: ResolvedAttack, target_ac: int,
                                trace: NullTrace = NULL_TRACE) -> float:
    state = advantage_state_of(resolved)
    p = calculate_hit_probability(resolved.attack_bonus, target_ac, state, resolved.crit_range)
    main = p
    on_hit = sum(e.value for e in resolved.on_hit_effects if e.type == "damage" and not e.once_per_turn)
    on_crit = sum(e.value for e in resolved.on_crit_effects if e.type == "damage" and not e.once_per_turn)

    def expected(base: float, bonus: float) -> float:
        normal = base + bonus + on_hit
        crit = 2 * base + bonus + on_hit + on_crit
        return p.hit * normal + p.crit * crit

    per_attack = expected(resolved.base_damage, resolved.damage_bonus)
    attacks = resolved.attacks_per_round * (2 if resolved.action_surge else 1)
    total = per_attack * attacks

    bonus = 0.0
    if resolved.bonus_action_attack is not None:
        ba = resolved.bonus_action_attack
        if ba.attack_bonus != resolved.attack_bonus:
            p = calculate_hit_probability(ba.attack_bonus, target_ac, state, resolved.crit_range)
        bonus = expected(ba.base_damage, ba.damage_bonus)
        total += bonus

    swings = attacks + (1 if resolved.bonus_action_attack is not None else 0)
    rider = _once_per_turn_damage(resolved, main, swings)
    total += rider

    if trace.enabled:
        trace.add(f"AC {target_ac} [{state.value}]: hit {main.hit:.4f} crit {main.crit:.4f}; "
                  f"{per_attack:.2f} x {attacks} + bonus action {bonus:.2f} + once per turn {rider:.2f} "
                  f"= {total:.2f}")
    return total

def _once_per_turn_damage(resolved: ResolvedAttack, p: HitProbabilities, swings: int) -> float:
    """Expected damage of riders that land on the first hit of the turn, over `swings` attack rolls."""
    on_hit = sum(e.value for e in resolved.on_hit_effects if e.type == "damage" and e.once_per_turn)
    on_crit = sum(e.value for e in resolved.on_crit_effects if e.type == "damage" and e.once_per_turn)
    landed = p.hit_or_crit
    if not (on_hit or on_crit) or landed <= 0:
        return 0.0
    per_landing = (p.hit * on_hit + p.crit * (on_hit + on_crit)) / landed
    return (1 - (1 - landed) ** swings) * per_landing

def should_use_power_attack(without: ResolvedAttack, with_: ResolvedAttack, target_ac: int) -> bool:
    """Compare the two resolved profiles at exactly this AC; the breakeven moves with AC."""
    if not with_.power_attack:
        return False
    return calculate_dpr_from_resolved(with_, target_ac) > calculate_dpr_from_resolved(without, target_ac)
