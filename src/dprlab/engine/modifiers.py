from __future__ import annotations
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional
import logging
import math

from pydantic import BaseModel, Field

from .models import POLEARM_IDS, WeaponTraining
from .schema_models import (
    Modifier, ModifierCondition, ModifierKind, Uses,
    ToHitMod, DamageMod, CritRangeMod, AdvantageMod, ExtraAttackMod, ActionEconomyMod,
    TriggerMod, TriggerEffect, PassiveMod, WeaponTrainingMod,
)

log = logging.getLogger(__name__)

class BuildFacts(BaseModel):
    """Everything the compiler needs to know about a build at one character level."""
    feats: List[str] = Field(default_factory=list)
    fighting_styles: List[str] = Field(default_factory=list)
    features: List[str] = Field(default_factory=list)
    buffs: List[str] = Field(default_factory=list)
    level: int = 1
    class_levels: Dict[str, int] = Field(default_factory=dict)
    weapon_training: Dict[str, WeaponTraining] = Field(default_factory=dict)

    def class_level(self, class_id: str) -> int:
        return self.class_levels.get(class_id, self.level if not self.class_levels else 0)

@dataclass(frozen=True)
class Situation:
    """The subset of a round context that condition tags look at."""
    weapon_id: str
    weapon_properties: tuple = ()
    weapon_category: str = "melee"
    has_advantage: bool = False
    round: int = 1
    concentration_active: bool = False
    target_below_full_hp: bool = False

# -------- feats --------

def feat_to_modifiers(feat_id: str) -> List[Modifier]:
    if feat_id == "great_weapon_master":
        return [
            PassiveMod(id="gwm_power_attack", name="GWM Power Attack", source="Great Weapon Master",
                       description="-5 to hit, +10 damage with heavy weapons", condition="heavy_melee",
                       effect="power_attack"),
            TriggerMod(id="gwm_bonus_attack", name="GWM Bonus Attack", source="Great Weapon Master",
                       description="Bonus action attack on a critical hit", condition="heavy_weapon",
                       event="on_crit", effect=TriggerEffect(extra_attack=True)),
            TriggerMod(id="gwm_kill_attack", name="GWM Kill Attack", source="Great Weapon Master",
                       description="Bonus action attack when reducing a creature to 0 HP",
                       condition="heavy_weapon", event="on_kill", effect=TriggerEffect(extra_attack=True)),
        ]
    if feat_id == "sharpshooter":
        return [
            PassiveMod(id="ss_power_attack", name="SS Power Attack", source="Sharpshooter",
                       description="-5 to hit, +10 damage with ranged weapons", condition="ranged_weapon",
                       effect="power_attack"),
        ]
    if feat_id == "crossbow_expert":
        return [
            ActionEconomyMod(id="ce_bonus_attack", name="Crossbow Expert Bonus Attack", source="Crossbow Expert",
                             condition="crossbow", slot="bonus_action", provides="hand_crossbow_attack"),
        ]
    if feat_id == "polearm_master":
        return [
            ActionEconomyMod(id="pam_bonus_attack", name="Polearm Master Bonus Attack", source="Polearm Master",
                             condition="polearm", slot="bonus_action", provides="polearm_butt_attack"),
            ActionEconomyMod(id="pam_opportunity_attack", name="Polearm Master Opportunity Attack",
                             source="Polearm Master", condition="polearm", slot="reaction"),
        ]
    if feat_id == "elven_accuracy":
        return [
            AdvantageMod(id="elven_accuracy_triple_advantage", name="Elven Accuracy", source="Elven Accuracy",
                         description="Roll three dice when attacking with advantage",
                         condition="advantage_on_attack", elven_accuracy=True),
        ]
    if feat_id == "lucky":
        return [
            PassiveMod(id="lucky_reroll", name="Lucky", source="Lucky",
                       uses=Uses(max=3, recharge="long_rest")),
        ]
    return []

# -------- fighting styles --------

def fighting_style_to_modifiers(style_id: str) -> List[Modifier]:
    if style_id == "archery":
        return [ToHitMod(id="archery_to_hit", name="Archery Fighting Style", source="Archery Fighting Style",
                         condition="ranged_weapon", value=2)]
    if style_id == "dueling":
        return [DamageMod(id="dueling_damage", name="Dueling Fighting Style", source="Dueling Fighting Style",
                          condition="one_handed_melee", value=2)]
    if style_id in ("great_weapon_fighting", "gwf"):
        return [PassiveMod(id="gwf_reroll", name="Great Weapon Fighting", source="Great Weapon Fighting Style",
                           description="Reroll 1s and 2s on weapon damage dice", condition="two_handed",
                           effect="reroll_low_damage_dice")]
    if style_id == "defense":
        return [PassiveMod(id="defense_ac", name="Defense Fighting Style", source="Defense Fighting Style",
                           value=1, effect="armor_class")]
    return []

# -------- class features --------

def _one(kind_cls, **kw) -> Callable[[BuildFacts], List[Modifier]]:
    return lambda facts: [kind_cls(**kw)]

def _extra_attack(facts: BuildFacts) -> List[Modifier]:
    fighter = facts.class_levels.get("fighter", 0)
    n = 3 if fighter >= 20 else 2 if fighter >= 11 else 1
    return [ExtraAttackMod(id="extra_attack", name="Extra Attack" if n == 1 else f"Extra Attack ({n})",
                           source="Class Feature", value=n)]

def _action_surge(facts: BuildFacts) -> List[Modifier]:
    uses = 2 if facts.class_level("fighter") >= 17 else 1
    return [PassiveMod(id="action_surge", name="Action Surge", source="Fighter", effect="action_surge",
                       uses=Uses(max=uses, recharge="short_rest", pool="action_surge"))]

def _rage(facts: BuildFacts) -> List[Modifier]:
    lvl = facts.class_level("barbarian")
    bonus = 4 if lvl >= 16 else 3 if lvl >= 9 else 2
    return [
        DamageMod(id="rage_damage", name="Rage Damage", source="Barbarian", condition="melee_weapon", value=bonus),
        AdvantageMod(id="reckless_attack", name="Reckless Attack", source="Barbarian", condition="melee_weapon"),
    ]

def _sneak_attack(facts: BuildFacts) -> List[Modifier]:
    dice = math.ceil(max(1, facts.class_level("rogue")) / 2)
    return [TriggerMod(id="sneak_attack", name=f"Sneak Attack ({dice}d6)", source="Rogue",
                       condition="finesse_or_ranged", event="on_hit",
                       effect=TriggerEffect(damage=dice * 3.5, dice=True, blocked_by_disadvantage=True,
                                            once_per_turn=True))]

def _superiority(facts: BuildFacts) -> List[Modifier]:
    lvl = facts.class_level("fighter")
    improved = lvl >= 10
    count = 6 if lvl >= 15 else 5 if lvl >= 7 else 4
    return [DamageMod(id="combat_superiority", name="Combat Superiority", source="Battle Master",
                      value=5.5 if improved else 4.5,
                      uses=Uses(max=count, recharge="short_rest", pool="superiority_dice"))]

def _int_mod_estimate(facts: BuildFacts) -> int:
    return 5 if facts.level >= 8 else 4

_FEATURES: Dict[str, Callable[[BuildFacts], List[Modifier]]] = {
    "extra_attack": _extra_attack,
    "action_surge": _action_surge,
    "rage": _rage,
    "sneak_attack": _sneak_attack,
    "combat_superiority": _superiority,
    # fighter
    "improved_critical": _one(CritRangeMod, id="improved_critical", name="Improved Critical",
                              source="Champion", value=1),
    "superior_critical": _one(CritRangeMod, id="superior_critical", name="Superior Critical",
                              source="Champion", value=1),
    "war_magic": _one(ActionEconomyMod, id="war_magic", name="War Magic", source="Eldritch Knight",
                      slot="bonus_action", provides="weapon_attack"),
    "eldritch_strike": _one(TriggerMod, id="eldritch_strike", name="Eldritch Strike", source="Eldritch Knight",
                            event="on_hit"),
    "rallying_cry": _one(PassiveMod, id="rallying_cry", name="Rallying Cry", source="Purple Dragon Knight"),
    "inspiring_surge": _one(PassiveMod, id="inspiring_surge", name="Inspiring Surge",
                            source="Purple Dragon Knight"),
    # rogue
    "thiefs_reflexes": _one(ExtraAttackMod, id="thiefs_reflexes", name="Thief's Reflexes", source="Thief",
                            condition="first_attack_of_turn", value=1),
    "assassinate": lambda facts: [
        AdvantageMod(id="assassinate_advantage", name="Assassinate", source="Assassin",
                     condition="first_attack_of_turn"),
    ],
    "skirmisher": _one(ActionEconomyMod, id="skirmisher", name="Skirmisher", source="Scout", slot="reaction"),
    "ambush_master": _one(AdvantageMod, id="ambush_master", name="Ambush Master", source="Scout",
                          condition="first_attack_of_turn"),
    "sudden_strike": _one(ActionEconomyMod, id="sudden_strike", name="Sudden Strike", source="Scout",
                          slot="bonus_action", provides="weapon_attack"),
    "rakish_audacity": _one(PassiveMod, id="rakish_audacity", name="Rakish Audacity", source="Swashbuckler",
                            value=3),
    "master_duelist": _one(PassiveMod, id="master_duelist", name="Master Duelist", source="Swashbuckler",
                           uses=Uses(max=1, recharge="short_rest")),
    # barbarian
    "frenzy": _one(ActionEconomyMod, id="frenzy", name="Frenzy", source="Berserker", condition="melee_weapon",
                   slot="bonus_action", provides="frenzy_attack"),
    "retaliation": _one(ActionEconomyMod, id="retaliation", name="Retaliation", source="Berserker",
                        condition="melee_weapon", slot="reaction"),
    "totem_spirit": _one(PassiveMod, id="totem_spirit_bear", name="Totem Spirit (Bear)", source="Totem Warrior"),
    # cleric
    "divine_strike_life": _one(DamageMod, id="divine_strike_life", name="Divine Strike (Life)",
                               source="Life Domain", value=4.5),
    "divine_strike_war": _one(DamageMod, id="divine_strike_war", name="Divine Strike (War)",
                              source="War Domain", value=4.5),
    "war_priest": _one(ActionEconomyMod, id="war_priest", name="War Priest", source="War Domain",
                       slot="bonus_action", provides="weapon_attack", uses=Uses(max=3, recharge="long_rest")),
    "guided_strike": _one(ToHitMod, id="guided_strike", name="Guided Strike", source="War Domain", value=10,
                          uses=Uses(max=1, recharge="short_rest", pool="channel_divinity")),
    "wrath_of_the_storm": _one(ActionEconomyMod, id="wrath_of_the_storm", name="Wrath of the Storm",
                               source="Tempest Domain", slot="reaction"),
    "destructive_wrath": _one(PassiveMod, id="destructive_wrath", name="Destructive Wrath",
                              source="Tempest Domain", uses=Uses(max=1, recharge="short_rest",
                                                                  pool="channel_divinity")),
    # bard
    "combat_inspiration": _one(DamageMod, id="combat_inspiration", name="Combat Inspiration",
                               source="College of Valor", value=3.5,
                               uses=Uses(max=3, recharge="short_rest", pool="bardic_inspiration")),
    # paladin
    "sacred_weapon": _one(ToHitMod, id="sacred_weapon", name="Sacred Weapon", source="Oath of Devotion",
                          value=3, uses=Uses(max=1, recharge="short_rest", pool="channel_divinity")),
    "vow_of_enmity": _one(AdvantageMod, id="vow_of_enmity", name="Vow of Enmity", source="Oath of Vengeance",
                          uses=Uses(max=1, recharge="short_rest", pool="channel_divinity")),
    "improved_divine_smite": _one(TriggerMod, id="improved_divine_smite", name="Improved Divine Smite",
                                  source="Paladin", condition="melee_weapon", event="on_hit",
                                  effect=TriggerEffect(damage=4.5, dice=True)),
    # monk
    "martial_arts": _one(ActionEconomyMod, id="martial_arts", name="Martial Arts", source="Monk",
                         condition="melee_weapon", slot="bonus_action", provides="unarmed_strike"),
    # ranger
    "hunters_prey": _one(DamageMod, id="colossus_slayer", name="Colossus Slayer", source="Hunter",
                         condition="target_below_full_hp", value=4.5),
    # sorcerer
    "elemental_affinity": _one(DamageMod, id="elemental_affinity", name="Elemental Affinity",
                               source="Draconic Bloodline", value=4),
    "tides_of_chaos": _one(AdvantageMod, id="tides_of_chaos", name="Tides of Chaos", source="Wild Magic",
                           uses=Uses(max=1, recharge="long_rest")),
    # warlock
    "dark_ones_blessing": _one(TriggerMod, id="dark_ones_blessing", name="Dark One's Blessing",
                               source="The Fiend", event="on_kill",
                               effect=TriggerEffect(restore_resource="temporary_hp")),
    # wizard
    "potent_cantrip": _one(PassiveMod, id="potent_cantrip", name="Potent Cantrip", source="School of Evocation"),
    "empowered_evocation": lambda facts: [
        PassiveMod(id="empowered_evocation", name="Empowered Evocation", source="School of Evocation",
                   value=_int_mod_estimate(facts)),
    ],
    "overchannel": _one(PassiveMod, id="overchannel", name="Overchannel", source="School of Evocation",
                        uses=Uses(max=1, recharge="long_rest")),
    "portent": lambda facts: [
        PassiveMod(id="portent", name="Portent", source="School of Divination",
                   uses=Uses(max=3 if facts.class_level("wizard") >= 14 else 2, recharge="long_rest")),
    ],
    "grim_harvest": _one(TriggerMod, id="grim_harvest", name="Grim Harvest", source="School of Necromancy",
                         event="on_kill", effect=TriggerEffect(restore_resource="hit_points")),
    "hypnotic_gaze": _one(PassiveMod, id="hypnotic_gaze", name="Hypnotic Gaze", source="School of Enchantment"),
    "chronal_shift": _one(PassiveMod, id="chronal_shift", name="Chronal Shift", source="Chronurgy Magic",
                          uses=Uses(max=2, recharge="long_rest")),
    "temporal_awareness": lambda facts: [
        PassiveMod(id="temporal_awareness", name="Temporal Awareness", source="Chronurgy Magic",
                   value=_int_mod_estimate(facts)),
    ],
    "momentary_stasis": _one(PassiveMod, id="momentary_stasis", name="Momentary Stasis",
                             source="Chronurgy Magic", uses=Uses(max=1, recharge="long_rest")),
    "convergent_future": _one(PassiveMod, id="convergent_future", name="Convergent Future",
                              source="Chronurgy Magic", uses=Uses(max=1, recharge="long_rest")),
}

def class_feature_to_modifiers(feature_id: str, facts: Optional[BuildFacts] = None) -> List[Modifier]:
    builder = _FEATURES.get(feature_id)
    if builder is None:
        return []
    return builder(facts or BuildFacts())

def known_feature_ids() -> List[str]:
    return sorted(_FEATURES)

# -------- downtime training / buffs --------

def downtime_training_to_modifiers(training: Dict[str, WeaponTraining]) -> List[Modifier]:
    out: List[Modifier] = []
    for weapon_id, t in training.items():
        if t.attack_bonus > 0:
            out.append(WeaponTrainingMod(id=f"weapon_training_attack_{weapon_id}",
                                         name=f"Weapon Training ({weapon_id}) - Attack",
                                         source="Downtime Training", weapon_id=weapon_id,
                                         attack_bonus=t.attack_bonus))
        if t.damage_bonus > 0:
            out.append(WeaponTrainingMod(id=f"weapon_training_damage_{weapon_id}",
                                         name=f"Weapon Training ({weapon_id}) - Damage",
                                         source="Downtime Training", weapon_id=weapon_id,
                                         damage_bonus=t.damage_bonus))
    return out

# bless, hex, hunter's mark and faerie fire are resolver toggles, not modifiers
TOGGLE_BUFFS = {"bless", "hex", "hunters_mark", "faerie_fire"}

def buff_to_modifiers(buff_id: str) -> List[Modifier]:
    if buff_id == "haste":
        return [ExtraAttackMod(id="haste_attack", name="Haste", source="Haste", value=1)]
    if buff_id == "elemental_weapon":
        return [
            ToHitMod(id="elemental_weapon_to_hit", name="Elemental Weapon", source="Elemental Weapon", value=1),
            TriggerMod(id="elemental_weapon_damage", name="Elemental Weapon", source="Elemental Weapon",
                       event="on_hit", effect=TriggerEffect(damage=2.5, dice=True)),
        ]
    if buff_id == "magic_weapon":
        return [
            ToHitMod(id="magic_weapon_to_hit", name="Magic Weapon", source="Magic Weapon", value=1),
            DamageMod(id="magic_weapon_damage", name="Magic Weapon", source="Magic Weapon", value=1),
        ]
    if buff_id == "divine_favor":
        return [TriggerMod(id="divine_favor", name="Divine Favor", source="Divine Favor", event="on_hit",
                           effect=TriggerEffect(damage=2.5, dice=True))]
    if buff_id == "barbarian_rage":
        return [DamageMod(id="barbarian_rage_damage", name="Rage", source="Rage", condition="melee_weapon",
                          value=2)]
    if buff_id == "enlarge":
        return [TriggerMod(id="enlarge_damage", name="Enlarge", source="Enlarge/Reduce", event="on_hit",
                           condition="melee_weapon", effect=TriggerEffect(damage=2.5, dice=True))]
    return []

def compile_modifiers(facts: BuildFacts) -> List[Modifier]:
    out: List[Modifier] = []
    for fid in facts.feats:
        out.extend(feat_to_modifiers(fid))
    for sid in facts.fighting_styles:
        out.extend(fighting_style_to_modifiers(sid))
    seen = set()
    for fid in facts.features:
        # features granted by several classes (extra attack) only count once
        if fid in seen:
            continue
        seen.add(fid)
        out.extend(class_feature_to_modifiers(fid, facts))
    out.extend(downtime_training_to_modifiers(facts.weapon_training))
    for bid in facts.buffs:
        out.extend(buff_to_modifiers(bid))
    log.debug("compiled %d modifiers at level %d", len(out), facts.level)
    return out

# -------- predicates --------

def filter_modifiers(modifiers: List[Modifier], kind: Optional[ModifierKind] = None,
                     condition: Optional[ModifierCondition] = None) -> List[Modifier]:
    out = []
    for m in modifiers:
        if kind and m.kind != kind:
            continue
        if condition and m.condition not in (condition, "always"):
            continue
        out.append(m)
    return out

def modifier_applies(modifier: Modifier, situation: Situation) -> bool:
    props = situation.weapon_properties
    cond = modifier.condition
    if cond == "always":
        return True
    if cond == "heavy_weapon":
        return "heavy" in props
    if cond == "heavy_melee":
        return "heavy" in props and situation.weapon_category == "melee"
    if cond == "ranged_weapon":
        return situation.weapon_category == "ranged"
    if cond == "melee_weapon":
        return situation.weapon_category == "melee"
    if cond == "two_handed":
        return "two-handed" in props or "heavy" in props
    if cond == "one_handed_melee":
        return situation.weapon_category == "melee" and "two-handed" not in props
    if cond == "light_weapon":
        return "light" in props
    if cond == "finesse_weapon":
        return "finesse" in props
    if cond == "finesse_or_ranged":
        return "finesse" in props or situation.weapon_category == "ranged"
    if cond == "crossbow":
        return "crossbow" in situation.weapon_id or "crossbow" in props
    if cond == "polearm":
        return situation.weapon_id in POLEARM_IDS
    if cond == "first_attack_of_turn":
        return situation.round == 1
    if cond == "subsequent_attacks":
        return situation.round > 1
    if cond == "advantage_on_attack":
        return situation.has_advantage
    if cond == "concentration_active":
        return situation.concentration_active
    if cond == "target_below_full_hp":
        return situation.target_below_full_hp
    if cond == "specific_weapon":
        return isinstance(modifier, WeaponTrainingMod) and modifier.weapon_id == situation.weapon_id
    return False
