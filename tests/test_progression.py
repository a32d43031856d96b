from dprlab.engine.loader import default_content
from dprlab.engine.progression import (
    class_dpr_bonus, class_profile, fallback_dpr, future_potential, gets_extra_attack, highest_slot_level,
    is_power_spike, spell_slots, synergy, weighted_slots,
)

def test_profile_from_catalog_or_tables():
    content = default_content()
    assert class_profile("fighter", content).asi_levels == [4, 6, 8, 12, 14, 16, 19]
    synthesized = class_profile("artificer")
    assert synthesized.caster == "none" and synthesized.hit_die == 8
    assert class_profile("paladin").caster == "half"

def test_extra_attack_and_spikes():
    fighter = class_profile("fighter", default_content())
    assert not gets_extra_attack(fighter, 4) and gets_extra_attack(fighter, 5)
    assert not gets_extra_attack(class_profile("wizard"), 20)
    assert is_power_spike(fighter, 11) and not is_power_spike(fighter, 12)

def test_single_class_slots():
    assert spell_slots({"wizard": 5}) == {1: 4, 2: 3, 3: 2}
    assert spell_slots({"fighter": 10}) == {}
    assert spell_slots({"paladin": 1}) == {}

def test_multiclass_slots():
    # 3 full + 4 half // 2 = caster level 5
    assert spell_slots({"paladin": 4, "wizard": 3}) == {1: 4, 2: 3, 3: 2}

def test_pact_slots_stack():
    assert spell_slots({"warlock": 5}) == {3: 2}
    assert spell_slots({"warlock": 2, "wizard": 1}) == {1: 4}
    assert highest_slot_level(spell_slots({"warlock": 5, "fighter": 3})) == 3

def test_slot_helpers():
    assert highest_slot_level({}) == 0
    assert highest_slot_level({1: 4, 2: 0}) == 1
    assert weighted_slots({1: 4, 3: 2}) == 10

def test_synergy_defaults_to_one():
    assert synergy("fighter", "wizard") == 3
    assert synergy("druid", "monk") == 1

def test_future_potential():
    # fighter 4 -> spikes at 5 (distance 1) and 11 (distance 7) within 8 more levels, plus rogue synergy 2 x 3
    score = future_potential("fighter", 4, {"fighter": 8, "rogue": 3})
    assert score == 10 / 1 + 10 / 7 + 2 * 3
    assert future_potential("druid", 1, {"druid": 0}) == 0

def test_fallback_dpr():
    assert class_dpr_bonus("fighter", 5) == 6
    assert fallback_dpr("fighter", 5, 5) == 9
    assert fallback_dpr("rogue", 3, 3) == 3 + 0 + 7 + (ord("r") % 3 - 1)
    assert fallback_dpr("druid", 1, 1) >= 1
