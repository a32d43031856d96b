import pytest
from pydantic import ValidationError
from dprlab.engine.schema_models import (
    CritRangeMod, ModifierAdapter, ModifierListAdapter, PassiveMod, ToHitMod, TriggerMod, Uses, WeaponTrainingMod,
)

def test_modifier_discriminated_on_kind():
    m = ModifierAdapter.validate_python({"kind": "to_hit", "id": "archery", "name": "Archery",
                                         "source": "Fighting Style", "value": 2, "condition": "ranged_weapon"})
    assert isinstance(m, ToHitMod)
    assert m.value == 2

def test_modifier_unknown_kind_rejected():
    with pytest.raises(ValidationError):
        ModifierAdapter.validate_python({"kind": "teleport", "id": "x", "name": "X", "source": "S"})

def test_modifier_unknown_condition_rejected():
    with pytest.raises(ValidationError):
        ModifierAdapter.validate_python({"kind": "damage", "id": "x", "name": "X", "source": "S",
                                         "value": 1, "condition": "on_tuesdays"})

def test_crit_range_must_widen():
    with pytest.raises(ValidationError, match="widen"):
        CritRangeMod(id="bad", name="Bad", source="S", value=-1)
    CritRangeMod(id="ok", name="Ok", source="S", value=1)

def test_weapon_training_bonuses_not_negative():
    with pytest.raises(ValidationError):
        WeaponTrainingMod(id="wt", name="WT", source="Downtime", weapon_id="longsword", attack_bonus=-1)
    m = WeaponTrainingMod(id="wt", name="WT", source="Downtime", weapon_id="longsword", attack_bonus=1)
    assert m.condition == "specific_weapon"

def test_uses_requires_positive_max():
    with pytest.raises(ValidationError):
        Uses(max=0)

def test_pool_defaults_to_modifier_id():
    m = PassiveMod(id="lucky_reroll", name="Lucky", source="Lucky", uses=Uses(max=3))
    assert m.pool == "lucky_reroll"
    shared = PassiveMod(id="sacred_weapon", name="Sacred Weapon", source="Devotion",
                        uses=Uses(max=1, recharge="short_rest", pool="channel_divinity"))
    assert shared.pool == "channel_divinity"

def test_modifier_list_keeps_kinds():
    mods = ModifierListAdapter.validate_python([
        {"kind": "passive", "id": "gwm", "name": "GWM", "source": "Feat", "effect": "power_attack"},
        {"kind": "trigger", "id": "sa", "name": "Sneak Attack", "source": "Rogue", "event": "on_hit",
         "effect": {"damage": 3.5, "dice": True}},
    ])
    assert isinstance(mods[0], PassiveMod) and mods[0].effect == "power_attack"
    assert isinstance(mods[1], TriggerMod) and mods[1].effect.dice

def test_modifiers_are_frozen():
    m = ToHitMod(id="x", name="X", source="S", value=1)
    with pytest.raises(ValidationError):
        m.value = 3
