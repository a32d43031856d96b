import math
import pytest
from dprlab.engine.errors import UnknownGoalError
from dprlab.engine.expr import eval_expr, expr_cache_info, unknown_variables
from dprlab.engine.goals import GOALS, LevelMetrics, OptimizationGoal, expression_goal, get_goal, list_goals

def _metrics(**kw):
    base = dict(level=5, dpr=10.0, dpr_with_spells=12.0, survival_score=20.0, utility_score=4.0,
                spell_slots={1: 4, 2: 2}, has_extra_attack=True)
    base.update(kw)
    return LevelMetrics(**base)

def test_builtin_goals_listed():
    ids = [g.id for g in list_goals()]
    assert ids == ["early_power", "sustained_dpr", "burst_damage", "balanced_progression", "caster_focus",
                   "martial_focus"]

def test_goal_formulas():
    m = _metrics()
    assert GOALS["early_power"].score(m) == pytest.approx(12 * 2 + 20 * 0.5)
    assert GOALS["early_power"].score(_metrics(level=11)) == pytest.approx(12 * 0.3)
    assert GOALS["sustained_dpr"].score(m) == pytest.approx(10 * 1.5 + 2 * 0.3)
    assert GOALS["burst_damage"].score(_metrics(has_haste=True)) == pytest.approx(12 * 1.8 + 10)
    assert GOALS["balanced_progression"].score(m) == pytest.approx(12 + 20 + 4)
    assert GOALS["caster_focus"].score(m) == pytest.approx(8 * 5 + 6 + 8)
    assert GOALS["martial_focus"].score(_metrics(has_power_attack_feat=True)) == pytest.approx(20 + 15 + 10)

def test_nan_scores_as_zero():
    g = OptimizationGoal("broken", "Broken", "", "combat", lambda m: math.nan)
    assert g.score(_metrics()) == 0.0

def test_unknown_goal():
    with pytest.raises(UnknownGoalError):
        get_goal("speedrun")
    assert get_goal("martial_focus").category == "combat"

def test_metric_variables():
    v = _metrics().variables()
    assert v["slots"] == 8
    assert v["extra_attack"] == 1 and v["haste"] == 0
    assert v["survival"] == 20.0

def test_expression_goal():
    g = expression_goal("dpr * 2 + extra_attack * 15", goal_id="mine")
    assert g.id == "mine"
    assert g.score(_metrics()) == pytest.approx(35)
    with pytest.raises(ValueError, match="unknown variable"):
        expression_goal("dps * 2")

def test_expression_helpers():
    assert eval_expr("max(dpr, survival) + floor(2.7)", {"dpr": 3, "survival": 5}) == 7
    assert eval_expr(4) == 4
    assert unknown_variables("min(dpr, 3) + bogus") == {"bogus"}
    assert expr_cache_info().startswith("expr-cache:")

def test_expression_goal_syntax_error():
    with pytest.raises(ValueError, match="invalid goal expression"):
        expression_goal("dpr * * (")
