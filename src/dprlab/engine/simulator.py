from __future__ import annotations
from typing import Dict, List, Optional
import logging
import math

from pydantic import BaseModel, Field, model_validator

from .calculations import AdvantageState, calculate_dpr_from_resolved, should_use_power_attack
from .dice import DiceRoll
from .errors import UnknownWeaponError
from .loader import ContentIndex, default_content
from .models import Build, Weapon
from .modifiers import BuildFacts, Situation, TOGGLE_BUFFS, compile_modifiers, feat_to_modifiers, modifier_applies
from .resolver import ResolveContext, ResolvedAttack, resolve_attack
from .schema_models import Modifier, PassiveMod
from .settings import Settings
from .trace import NULL_TRACE, NullTrace

log = logging.getLogger(__name__)

DEFAULT_WEAPON = "longsword"

class DPRConfig(BaseModel):
    ac_min: int = 10
    ac_max: int = 30
    ac_step: int = Field(1, ge=1)
    typical_ac: int = 15
    rounds: int = Field(3, ge=1)
    greedy_resource_use: bool = True
    auto_power_attack: bool = True
    round0_buffs: bool = False

    @model_validator(mode="after")
    def _validate(self):
        if self.ac_min > self.ac_max:
            raise ValueError("ac_min must not exceed ac_max")
        return self

    @classmethod
    def from_settings(cls, s: Settings) -> "DPRConfig":
        return cls(ac_min=s.ac_min, ac_max=s.ac_max, ac_step=s.ac_step, typical_ac=s.typical_ac,
                   rounds=s.rounds, greedy_resource_use=s.greedy_resource_use,
                   auto_power_attack=s.auto_power_attack)

    def ac_values(self) -> List[int]:
        return list(range(self.ac_min, self.ac_max + 1, self.ac_step))

class CurvePoint(BaseModel):
    ac: int
    dpr: float

class PowerAttackBreakpoint(BaseModel):
    ac: int
    use_power_attack: bool
    with_power_attack: float
    without_power_attack: float

class RoundResult(BaseModel):
    round: int
    dpr: float
    power_attack: bool = False
    action_surge: bool = False

class BuildDPR(BaseModel):
    target_ac: int
    total: float
    expected_dpr: float  # mean over the simulated rounds
    rounds: List[RoundResult]

class DPRResult(BaseModel):
    build_id: str
    config: DPRConfig
    total_dpr: float
    average_dpr: float
    round_breakdown: List[float]
    normal_curve: List[CurvePoint]
    advantage_curve: List[CurvePoint]
    disadvantage_curve: List[CurvePoint]
    power_attack_breakpoints: List[PowerAttackBreakpoint] = Field(default_factory=list)

def _is_power_attack_marker(m: Modifier) -> bool:
    return isinstance(m, PassiveMod) and m.effect == "power_attack"

def is_power_attack_feat(feat_id: str, content: Optional[ContentIndex] = None) -> bool:
    content = content or default_content()
    feat = content.get_feat(feat_id)
    if feat is not None and feat.power_attack:
        return True
    return any(_is_power_attack_marker(m) for m in feat_to_modifiers(feat_id))

def _catalog_power_attack(feats: List[str], content: ContentIndex) -> List[Modifier]:
    """Markers for catalog feats flagged power_attack that have no translator of their own."""
    out: List[Modifier] = []
    for fid in feats:
        feat = content.get_feat(fid)
        if feat is None or not feat.power_attack:
            continue
        if any(_is_power_attack_marker(m) for m in feat_to_modifiers(fid)):
            continue
        out.append(PassiveMod(id=f"{fid}_power_attack", name=f"{feat.name} Power Attack", source=feat.name,
                              description="-5 to hit, +10 damage", effect="power_attack"))
    return out

class CombatState(BaseModel):
    """Everything about a build at one level that the per-round resolver needs."""
    build_id: str = "build"
    level: int = 1
    proficiency_bonus: int = 2
    ability_mod: int = 0
    weapon: Weapon
    weapon_enhancement: int = 0
    class_levels: Dict[str, int] = Field(default_factory=dict)
    feats: List[str] = Field(default_factory=list)
    fighting_styles: List[str] = Field(default_factory=list)
    features: List[str] = Field(default_factory=list)
    buffs: List[str] = Field(default_factory=list)
    modifiers: List[Modifier] = Field(default_factory=list)
    concentration_active: bool = False
    has_advantage: bool = False
    has_disadvantage: bool = False

    def situation(self) -> Situation:
        w = self.weapon
        return Situation(weapon_id=w.id, weapon_properties=tuple(w.properties), weapon_category=w.kind.value)

    @property
    def has_power_attack(self) -> bool:
        """True when a power-attack marker applies to the wielded weapon."""
        situation = self.situation()
        return any(_is_power_attack_marker(m) and modifier_applies(m, situation) for m in self.modifiers)

    def resource_pools(self) -> Dict[str, int]:
        pools: Dict[str, int] = {}
        for m in self.modifiers:
            if m.uses is not None:
                pools[m.pool] = max(pools.get(m.pool, 0), m.uses.max)
        return pools

    def with_advantage(self, state: AdvantageState) -> "CombatState":
        return self.model_copy(update={
            "has_advantage": state in (AdvantageState.ADVANTAGE, AdvantageState.ELVEN_ACCURACY),
            "has_disadvantage": state == AdvantageState.DISADVANTAGE,
        })

def proficiency_bonus(level: int) -> int:
    return math.ceil(max(1, level) / 4) + 1

def get_weapon_config(weapon_id: str, content: Optional[ContentIndex] = None) -> Optional[Weapon]:
    content = content or default_content()
    return content.get_weapon(weapon_id)

def _resolve_weapon(build: Build, content: ContentIndex) -> Weapon:
    weapon_id = build.ranged_weapon or build.main_hand_weapon or DEFAULT_WEAPON
    weapon = get_weapon_config(weapon_id, content)
    if weapon is None and weapon_id != DEFAULT_WEAPON:
        log.debug("unknown weapon %r, falling back to %s", weapon_id, DEFAULT_WEAPON)
        weapon = get_weapon_config(DEFAULT_WEAPON, content)
    if weapon is None:
        raise UnknownWeaponError(weapon_id)
    return weapon

def _attack_ability_mod(build: Build, weapon: Weapon, level: int) -> int:
    scores = build.abilities_at(level)
    if weapon.is_ranged:
        return scores.mod("dex")
    if weapon.has("finesse"):
        return max(scores.mod("str"), scores.mod("dex"))
    return scores.mod("str")

def build_to_combat_state(build: Build, content: Optional[ContentIndex] = None, level: Optional[int] = None,
                          include_round0: bool = False) -> CombatState:
    content = content or default_content()
    level = level or build.level
    weapon = _resolve_weapon(build, content)
    class_levels = build.class_levels(level)

    feats: List[str] = []
    styles: List[str] = []
    features: List[str] = []
    for e in build.entries_up_to(level):
        if e.feat_id and e.feat_id not in feats:
            feats.append(e.feat_id)
        if e.fighting_style and e.fighting_style not in styles:
            styles.append(e.fighting_style)
        features.extend(e.features)
    for class_id, clvl in class_levels.items():
        cls = content.get_class(class_id)
        if cls is None:
            log.debug("class %r not in catalog; no class features compiled", class_id)
            continue
        for f in cls.features_up_to(clvl, build.subclass_for(class_id)):
            features.append(f.rules_key or f.id)

    buffs = list(build.active_buffs)
    if include_round0:
        buffs.extend(b for b in build.round0_buffs if b not in buffs)
    concentration = False
    for bid in buffs:
        definition = content.get_buff(bid)
        if definition is not None and definition.concentration:
            concentration = True

    facts = BuildFacts(
        feats=feats, fighting_styles=styles, features=features,
        buffs=[b for b in buffs if b not in TOGGLE_BUFFS],
        level=level, class_levels=class_levels, weapon_training=build.weapon_training,
    )
    modifiers = compile_modifiers(facts)
    modifiers.extend(_catalog_power_attack(feats, content))
    return CombatState(
        build_id=build.id, level=level, proficiency_bonus=proficiency_bonus(level),
        ability_mod=_attack_ability_mod(build, weapon, level), weapon=weapon,
        weapon_enhancement=build.weapon_enhancement_bonus, class_levels=class_levels,
        feats=feats, fighting_styles=styles, features=features, buffs=buffs,
        modifiers=modifiers, concentration_active=concentration,
    )

def _round_context(state: CombatState, rnd: int, target_ac: int, power_attack: bool,
                   resources: Dict[str, int]) -> ResolveContext:
    w = state.weapon
    dice = w.primary_dice
    return ResolveContext(
        level=state.level, proficiency_bonus=state.proficiency_bonus, ability_mod=state.ability_mod,
        weapon_enhancement=state.weapon_enhancement,
        weapon_id=w.id, weapon_properties=tuple(w.properties), weapon_category=w.kind.value,
        weapon_base_damage=sum(d.expected for d in w.damage),
        weapon_dice=DiceRoll(count=dice.count, die=dice.die) if len(w.damage) == 1 else None,
        round=rnd, has_advantage=state.has_advantage, has_disadvantage=state.has_disadvantage,
        target_ac=target_ac, target_below_full_hp=rnd > 1,
        concentration_active=state.concentration_active,
        power_attack=power_attack,
        hex="hex" in state.buffs, hunters_mark="hunters_mark" in state.buffs,
        bless="bless" in state.buffs, faerie_fire="faerie_fire" in state.buffs,
        resources=dict(resources),
    )

def calculate_build_dpr(state: CombatState, target_ac: int, config: Optional[DPRConfig] = None,
                        power_attack: Optional[bool] = None, trace: NullTrace = NULL_TRACE) -> BuildDPR:
    """
    Simulate `config.rounds` rounds against one AC.
    power_attack=None lets each round pick the better of with/without the -5/+10 trade.
    """
    config = config or DPRConfig()
    pools = state.resource_pools() if config.greedy_resource_use else {}
    rounds: List[RoundResult] = []
    for rnd in range(1, config.rounds + 1):
        chosen: ResolvedAttack
        if power_attack is None:
            without = resolve_attack(state.modifiers, _round_context(state, rnd, target_ac, False, pools), trace)
            chosen = without
            if config.auto_power_attack and state.has_power_attack:
                with_ = resolve_attack(state.modifiers, _round_context(state, rnd, target_ac, True, pools), trace)
                if should_use_power_attack(without, with_, target_ac):
                    chosen = with_
        else:
            chosen = resolve_attack(state.modifiers, _round_context(state, rnd, target_ac, power_attack, pools),
                                    trace)
        dpr = calculate_dpr_from_resolved(chosen, target_ac, trace)
        rounds.append(RoundResult(round=rnd, dpr=dpr, power_attack=chosen.power_attack,
                                  action_surge=chosen.action_surge))
        for pool in {u.pool for u in chosen.limited_uses}:
            pools[pool] = max(0, pools.get(pool, 0) - 1)
    total = sum(r.dpr for r in rounds)
    return BuildDPR(target_ac=target_ac, total=total, expected_dpr=total / len(rounds), rounds=rounds)

def average_dpr(build: Build, target_ac: int = 15, advantage: AdvantageState = AdvantageState.NORMAL,
                content: Optional[ContentIndex] = None, config: Optional[DPRConfig] = None,
                level: Optional[int] = None) -> float:
    config = config or DPRConfig()
    state = build_to_combat_state(build, content, level, include_round0=config.round0_buffs)
    return calculate_build_dpr(state.with_advantage(advantage), target_ac, config).expected_dpr

def generate_dpr_curves(build: Build, config: Optional[DPRConfig] = None,
                        content: Optional[ContentIndex] = None, trace: NullTrace = NULL_TRACE) -> DPRResult:
    config = config or DPRConfig()
    state = build_to_combat_state(build, content, include_round0=config.round0_buffs)
    adv = state.with_advantage(AdvantageState.ADVANTAGE)
    dis = state.with_advantage(AdvantageState.DISADVANTAGE)

    normal_curve: List[CurvePoint] = []
    advantage_curve: List[CurvePoint] = []
    disadvantage_curve: List[CurvePoint] = []
    breakpoints: List[PowerAttackBreakpoint] = []
    for ac in config.ac_values():
        normal_curve.append(CurvePoint(ac=ac, dpr=calculate_build_dpr(state, ac, config).expected_dpr))
        advantage_curve.append(CurvePoint(ac=ac, dpr=calculate_build_dpr(adv, ac, config).expected_dpr))
        disadvantage_curve.append(CurvePoint(ac=ac, dpr=calculate_build_dpr(dis, ac, config).expected_dpr))
        if state.has_power_attack:
            # recomputed at every AC; the breakeven moves with AC
            with_pa = calculate_build_dpr(state, ac, config, power_attack=True).expected_dpr
            without_pa = calculate_build_dpr(state, ac, config, power_attack=False).expected_dpr
            breakpoints.append(PowerAttackBreakpoint(ac=ac, use_power_attack=with_pa > without_pa,
                                                     with_power_attack=with_pa,
                                                     without_power_attack=without_pa))

    typical = calculate_build_dpr(state, config.typical_ac, config, trace=trace)
    if trace.enabled:
        trace.add(f"{build.id}: {len(normal_curve)} AC points, typical AC {config.typical_ac} "
                  f"-> {typical.expected_dpr:.2f} DPR")
    return DPRResult(
        build_id=build.id, config=config, total_dpr=typical.total, average_dpr=typical.expected_dpr,
        round_breakdown=[r.dpr for r in typical.rounds],
        normal_curve=normal_curve, advantage_curve=advantage_curve, disadvantage_curve=disadvantage_curve,
        power_attack_breakpoints=breakpoints,
    )
