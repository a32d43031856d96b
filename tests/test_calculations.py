import pytest
from dprlab.engine.calculations import (
    AdvantageState, advantage_state_of, calculate_dpr_from_resolved, calculate_hit_probability,
    calculate_single_attack_dpr, should_use_power_attack,
)
from dprlab.engine.dice import DamageRoll, DiceRoll, damage_roll_expected, dice_expected_value, parse_dice
from dprlab.engine.modifiers import BuildFacts, class_feature_to_modifiers
from dprlab.engine.resolver import ResolveContext, resolve_attack
from dprlab.engine.schema_models import DamageMod, ExtraAttackMod

LONGSWORD = DamageRoll(base_dice=[DiceRoll(count=1, die=8)])

def test_hit_probability_normal():
    p = calculate_hit_probability(5, 15)
    assert p.hit == pytest.approx(0.50)
    assert p.crit == pytest.approx(0.05)
    assert p.miss == pytest.approx(0.45)
    assert p.hit + p.crit + p.miss == pytest.approx(1.0)

def test_hit_probability_advantage_and_disadvantage():
    adv = calculate_hit_probability(5, 15, "advantage")
    assert adv.hit_or_crit == pytest.approx(0.7975)
    assert adv.crit == pytest.approx(0.0975)
    dis = calculate_hit_probability(5, 15, AdvantageState.DISADVANTAGE)
    assert dis.hit_or_crit == pytest.approx(0.3025)
    assert dis.crit == pytest.approx(0.0025)

def test_hit_probability_elven_accuracy():
    ea = calculate_hit_probability(5, 15, AdvantageState.ELVEN_ACCURACY)
    assert ea.hit_or_crit == pytest.approx(1 - 0.45 ** 3)
    assert ea.crit == pytest.approx(1 - 0.95 ** 3)

def test_natural_one_and_twenty():
    hopeless = calculate_hit_probability(5, 30)
    assert hopeless.hit == pytest.approx(0.0)
    assert hopeless.crit == pytest.approx(0.05)
    assert hopeless.miss == pytest.approx(0.95)
    trivial = calculate_hit_probability(20, 5)
    assert trivial.miss == pytest.approx(0.05)

def test_expanded_crit_range():
    p = calculate_hit_probability(5, 15, crit_range=19)
    assert p.crit == pytest.approx(0.10)
    assert p.hit_or_crit == pytest.approx(0.55)
    # crits always hit, even against an unreachable AC
    p = calculate_hit_probability(0, 40, crit_range=18)
    assert p.hit_or_crit == pytest.approx(0.15)

def test_single_attack_longsword():
    assert calculate_single_attack_dpr(5, LONGSWORD, 15) == pytest.approx(2.70)

def test_crits_double_dice_not_bonus():
    flat = DamageRoll(base_dice=[DiceRoll(count=1, die=8)], bonus_damage=3)
    # 0.5 * 7.5 + 0.05 * (9 + 3)
    assert calculate_single_attack_dpr(5, flat, 15) == pytest.approx(4.35)

def test_dpr_monotonic_in_ac():
    values = [calculate_single_attack_dpr(7, LONGSWORD, ac) for ac in range(5, 35)]
    assert all(a >= b for a, b in zip(values, values[1:]))

def test_dpr_ordering_by_advantage_state():
    for ac in range(8, 28):
        dis = calculate_single_attack_dpr(5, LONGSWORD, ac, "disadvantage")
        normal = calculate_single_attack_dpr(5, LONGSWORD, ac)
        adv = calculate_single_attack_dpr(5, LONGSWORD, ac, "advantage")
        ea = calculate_single_attack_dpr(5, LONGSWORD, ac, "elven_accuracy")
        assert dis <= normal <= adv <= ea

def test_dpr_from_resolved_matches_single_attack():
    r = resolve_attack([], ResolveContext(ability_mod=3, weapon_base_damage=4.5))
    assert calculate_dpr_from_resolved(r, 15) == pytest.approx(
        calculate_single_attack_dpr(5, DamageRoll(base_dice=[DiceRoll(count=1, die=8)], bonus_damage=3), 15))

def test_dpr_from_resolved_scales_with_attacks_and_surge():
    r = resolve_attack([], ResolveContext(ability_mod=3, weapon_base_damage=4.5))
    single = calculate_dpr_from_resolved(r, 15)
    two = r.model_copy(update={"attacks_per_round": 2})
    assert calculate_dpr_from_resolved(two, 15) == pytest.approx(2 * single)
    surged = two.model_copy(update={"action_surge": True})
    assert calculate_dpr_from_resolved(surged, 15) == pytest.approx(4 * single)

def test_advantage_state_of():
    r = resolve_attack([], ResolveContext(has_advantage=True))
    assert advantage_state_of(r) == AdvantageState.ADVANTAGE
    assert advantage_state_of(r.model_copy(update={"elven_accuracy": True})) == AdvantageState.ELVEN_ACCURACY
    assert advantage_state_of(r.model_copy(update={"has_disadvantage": True})) == AdvantageState.NORMAL

def test_power_attack_decision_moves_with_ac():
    greatsword = dict(weapon_id="greatsword", weapon_properties=("heavy", "two-handed"), weapon_base_damage=7.0,
                      ability_mod=3)
    without = resolve_attack([], ResolveContext(**greatsword))
    with_ = resolve_attack([], ResolveContext(great_weapon_master=True, **greatsword))
    assert should_use_power_attack(without, with_, 10)
    assert not should_use_power_attack(without, with_, 20)
    # a profile without the trade is never "better with power attack"
    assert not should_use_power_attack(without, without, 10)

def test_dice_helpers():
    assert dice_expected_value(DiceRoll(count=2, die=6)) == 7.0
    roll = parse_dice("2d6+3")
    assert roll is not None and damage_roll_expected(roll) == 10.0
    assert parse_dice("two dice") is None

def test_flat_damage_never_lowers_dpr():
    base = resolve_attack([], ResolveContext(ability_mod=3, weapon_base_damage=4.5))
    for k in (0.5, 1, 2.5, 10):
        boosted = resolve_attack([DamageMod(id="flat", name="Flat", source="Test", value=k)],
                                 ResolveContext(ability_mod=3, weapon_base_damage=4.5))
        for ac in range(10, 31):
            assert calculate_dpr_from_resolved(boosted, ac) >= calculate_dpr_from_resolved(base, ac)

def test_sneak_attack_counts_once_per_turn():
    rapier = dict(weapon_id="rapier", weapon_properties=("finesse",), weapon_base_damage=4.5)
    sneak = class_feature_to_modifiers("sneak_attack", BuildFacts(class_levels={"rogue": 5}))
    one = resolve_attack(sneak, ResolveContext(**rapier))
    two = resolve_attack(sneak + [ExtraAttackMod(id="extra_attack", name="Extra Attack", source="Test", value=1)],
                         ResolveContext(**rapier))
    # +2 vs AC 15: hit 0.35, crit 0.05; 3d6 rider lands on the first hit
    per_landing = (0.35 * 10.5 + 0.05 * 21) / 0.4
    assert calculate_dpr_from_resolved(one, 15) == pytest.approx(2.025 + 0.4 * per_landing)
    assert calculate_dpr_from_resolved(two, 15) == pytest.approx(2 * 2.025 + (1 - 0.6 ** 2) * per_landing)
