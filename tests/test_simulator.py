import pytest
from dprlab.engine.calculations import AdvantageState
from dprlab.engine.errors import UnknownWeaponError
from dprlab.engine.loader import ContentIndex, default_content
from dprlab.engine.models import AbilityScores, Build, FeatDefinition, LevelEntry
from dprlab.engine.simulator import (
    DPRConfig, average_dpr, build_to_combat_state, calculate_build_dpr, generate_dpr_curves, get_weapon_config,
    is_power_attack_feat, proficiency_bonus,
)
from dprlab.engine.trace import TraceSession

def _fighter(levels, weapon="longsword", feat_at=None, **kw):
    feat_at = feat_at or {}
    timeline = []
    for lvl in range(1, levels + 1):
        feat = feat_at.get(lvl)
        timeline.append(LevelEntry(level=lvl, class_id="fighter", asi_or_feat="feat" if feat else None,
                                   feat_id=feat))
    return Build(id=f"fighter{levels}", name="Test Fighter", ability_scores=AbilityScores(str_=16, dex=14),
                 level_timeline=timeline, main_hand_weapon=weapon, **kw)

def test_proficiency_bonus():
    assert [proficiency_bonus(l) for l in (1, 4, 5, 8, 9, 13, 17, 20)] == [2, 2, 3, 3, 4, 5, 6, 6]

def test_get_weapon_config():
    w = get_weapon_config("greatsword")
    assert w is not None and w.has("heavy")
    assert get_weapon_config("lightsaber") is None

def test_level_one_fighter_longsword():
    # +5 to hit, 1d8+3: 0.5 * 7.5 + 0.05 * 12
    assert average_dpr(_fighter(1), target_ac=15) == pytest.approx(4.35)

def test_action_surge_spent_in_first_round():
    state = build_to_combat_state(_fighter(2))
    result = calculate_build_dpr(state, 15, DPRConfig(rounds=3))
    assert [r.action_surge for r in result.rounds] == [True, False, False]
    assert [r.dpr for r in result.rounds] == pytest.approx([8.70, 4.35, 4.35])
    assert result.total == pytest.approx(17.4)
    assert result.expected_dpr == pytest.approx(5.8)

def test_no_resources_without_greedy_use():
    state = build_to_combat_state(_fighter(2))
    result = calculate_build_dpr(state, 15, DPRConfig(greedy_resource_use=False))
    assert all(not r.action_surge for r in result.rounds)
    assert result.expected_dpr == pytest.approx(4.35)

def test_extra_attack_from_catalog():
    five = build_to_combat_state(_fighter(5))
    four = build_to_combat_state(_fighter(4))
    assert "extra_attack" in five.features and "extra_attack" not in four.features
    cfg = DPRConfig(greedy_resource_use=False)
    assert calculate_build_dpr(five, 15, cfg).expected_dpr > 1.8 * calculate_build_dpr(four, 15, cfg).expected_dpr

def test_finesse_uses_better_ability():
    build = Build(ability_scores=AbilityScores(str_=8, dex=18), main_hand_weapon="rapier",
                  level_timeline=[LevelEntry(level=1, class_id="rogue")])
    state = build_to_combat_state(build)
    assert state.ability_mod == 4

def test_ranged_weapon_preferred_over_main_hand():
    build = _fighter(1, ranged_weapon="longbow")
    state = build_to_combat_state(build)
    assert state.weapon.id == "longbow"
    assert state.ability_mod == 2

def test_unknown_weapon_falls_back_to_longsword():
    known = average_dpr(_fighter(3), 15)
    assert average_dpr(_fighter(3, weapon="vorpal_spoon"), 15) == pytest.approx(known)

def test_missing_default_weapon_is_an_error():
    empty = ContentIndex(weapons={}, classes={}, feats={}, buffs={})
    with pytest.raises(UnknownWeaponError, match="Invalid weapon"):
        build_to_combat_state(Build(), content=empty)

def test_toggle_buffs_and_concentration():
    build = _fighter(1, active_buffs=["bless", "haste"])
    state = build_to_combat_state(build)
    assert state.concentration_active
    assert "haste_attack" in {m.id for m in state.modifiers}
    # bless is a resolver toggle, not a compiled modifier
    assert not any("bless" in m.id for m in state.modifiers)
    assert average_dpr(build, 15) > average_dpr(_fighter(1), 15)

def test_round0_buffs_only_when_enabled():
    build = _fighter(1, round0_buffs=["haste"])
    off = average_dpr(build, 15, config=DPRConfig(round0_buffs=False))
    on = average_dpr(build, 15, config=DPRConfig(round0_buffs=True))
    assert on > off

def test_advantage_helper():
    build = _fighter(3)
    normal = average_dpr(build, 15)
    assert average_dpr(build, 15, AdvantageState.ADVANTAGE) > normal > average_dpr(build, 15,
                                                                                  AdvantageState.DISADVANTAGE)

def test_curves_cover_ac_range():
    result = generate_dpr_curves(_fighter(5), DPRConfig(ac_min=10, ac_max=20))
    assert [p.ac for p in result.normal_curve] == list(range(10, 21))
    normal = [p.dpr for p in result.normal_curve]
    assert all(a >= b for a, b in zip(normal, normal[1:]))
    for n, a, d in zip(result.normal_curve, result.advantage_curve, result.disadvantage_curve):
        assert d.dpr <= n.dpr <= a.dpr
    assert len(result.round_breakdown) == 3
    assert result.average_dpr == pytest.approx(sum(result.round_breakdown) / 3)
    assert result.power_attack_breakpoints == []

def test_curves_default_config():
    result = generate_dpr_curves(_fighter(1))
    assert result.config.ac_min == 10 and result.config.ac_max == 30
    assert len(result.normal_curve) == 21

def test_power_attack_breakpoints_flip_once():
    build = _fighter(4, weapon="greatsword", feat_at={4: "great_weapon_master"})
    result = generate_dpr_curves(build, DPRConfig(ac_min=10, ac_max=20))
    flags = [b.use_power_attack for b in result.power_attack_breakpoints]
    assert len(flags) == 11
    assert flags[0] is True and flags[-1] is False
    flips = sum(1 for a, b in zip(flags, flags[1:]) if a != b)
    assert flips == 1
    for b in result.power_attack_breakpoints:
        assert b.use_power_attack == (b.with_power_attack > b.without_power_attack)

def test_auto_power_attack_picks_better_profile():
    build = _fighter(4, weapon="greatsword", feat_at={4: "great_weapon_master"})
    state = build_to_combat_state(build)
    auto = calculate_build_dpr(state, 12).expected_dpr
    forced_on = calculate_build_dpr(state, 12, power_attack=True).expected_dpr
    forced_off = calculate_build_dpr(state, 12, power_attack=False).expected_dpr
    assert auto == pytest.approx(max(forced_on, forced_off))
    disabled = calculate_build_dpr(state, 12, DPRConfig(auto_power_attack=False)).expected_dpr
    assert disabled == pytest.approx(forced_off)

def test_trace_collects_lines():
    t = TraceSession()
    generate_dpr_curves(_fighter(2), DPRConfig(ac_min=15, ac_max=15), trace=t)
    assert any("fighter2" in line for line in t.dump())
    assert any(line.startswith("AC 15") for line in t.dump())

def test_catalog_is_shared():
    assert default_content() is default_content()

def test_curve_ordering_over_full_ac_range():
    result = generate_dpr_curves(_fighter(5, weapon="greatsword", feat_at={4: "great_weapon_master"}))
    assert [p.ac for p in result.normal_curve] == list(range(10, 31))
    for n, a, d in zip(result.normal_curve, result.advantage_curve, result.disadvantage_curve):
        assert d.dpr <= n.dpr <= a.dpr

def test_power_attack_breakpoints_over_full_range():
    # natural 20s only at AC 25+, where the +10 rides on crits alone
    build = _fighter(4, weapon="greatsword", feat_at={4: "great_weapon_master"})
    by_ac = {b.ac: b for b in generate_dpr_curves(build).power_attack_breakpoints}
    assert sorted(by_ac) == list(range(10, 31))
    assert all(by_ac[ac].use_power_attack for ac in range(10, 16))
    assert not any(by_ac[ac].use_power_attack for ac in range(17, 24))
    assert all(by_ac[ac].use_power_attack for ac in range(25, 31))
    for ac in (16, 24):
        assert by_ac[ac].with_power_attack == pytest.approx(by_ac[ac].without_power_attack)

def test_power_attack_needs_a_matching_weapon():
    longsword = build_to_combat_state(_fighter(4, feat_at={4: "great_weapon_master"}))
    assert not longsword.has_power_attack
    greatsword = build_to_combat_state(_fighter(4, weapon="greatsword", feat_at={4: "great_weapon_master"}))
    assert greatsword.has_power_attack

def test_catalog_power_attack_flag_enables_toggle():
    base = default_content()
    feats = dict(base.feats)
    feats["savage_swing"] = FeatDefinition(id="savage_swing", name="Savage Swing", power_attack=True)
    content = ContentIndex(weapons=base.weapons, classes=base.classes, feats=feats, buffs=base.buffs)
    assert is_power_attack_feat("savage_swing", content)
    assert not is_power_attack_feat("lucky", content)

    state = build_to_combat_state(_fighter(4, feat_at={4: "savage_swing"}), content)
    assert state.has_power_attack
    forced = calculate_build_dpr(state, 10, power_attack=True)
    assert all(r.power_attack for r in forced.rounds)
    assert calculate_build_dpr(state, 10).rounds[0].power_attack
