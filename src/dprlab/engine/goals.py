from __future__ import annotations
from dataclasses import dataclass
from typing import Callable, Dict, List, Literal, Optional
import math

from pydantic import BaseModel, Field

from .errors import UnknownGoalError
from .expr import eval_expr, unknown_variables
from .progression import weighted_slots

class LevelMetrics(BaseModel):
    level: int
    dpr: float
    dpr_with_spells: float
    survival_score: float = 0.0
    utility_score: float = 0.0
    spell_slots: Dict[int, int] = Field(default_factory=dict)
    has_haste: bool = False
    has_extra_attack: bool = False
    has_power_attack_feat: bool = False

    def variables(self) -> Dict[str, float]:
        """Flat name -> number table for goal expressions."""
        return {
            "dpr": self.dpr,
            "dpr_with_spells": self.dpr_with_spells,
            "survival": self.survival_score,
            "utility": self.utility_score,
            "slots": weighted_slots(self.spell_slots),
            "level": self.level,
            "extra_attack": 1 if self.has_extra_attack else 0,
            "haste": 1 if self.has_haste else 0,
            "power_attack": 1 if self.has_power_attack_feat else 0,
        }

GoalCategory = Literal["combat", "utility", "balanced"]

@dataclass(frozen=True)
class OptimizationGoal:
    id: str
    name: str
    description: str
    category: GoalCategory
    evaluate: Callable[[LevelMetrics], float]

    def score(self, metrics: LevelMetrics) -> float:
        value = self.evaluate(metrics)
        return 0.0 if value is None or math.isnan(value) else float(value)

def _early_power(m: LevelMetrics) -> float:
    if m.level <= 10:
        return m.dpr_with_spells * 2 + m.survival_score * 0.5
    return m.dpr_with_spells * 0.3

def _sustained(m: LevelMetrics) -> float:
    # base DPR weighs more than spell-enhanced DPR
    return m.dpr * 1.5 + (m.dpr_with_spells - m.dpr) * 0.3

def _burst(m: LevelMetrics) -> float:
    return m.dpr_with_spells * 1.8 + (10 if m.has_haste else 0)

def _balanced(m: LevelMetrics) -> float:
    return m.dpr_with_spells + m.survival_score + m.utility_score

def _caster(m: LevelMetrics) -> float:
    return weighted_slots(m.spell_slots) * 5 + m.dpr_with_spells * 0.5 + m.utility_score * 2

def _martial(m: LevelMetrics) -> float:
    return m.dpr * 2 + (15 if m.has_extra_attack else 0) + (10 if m.has_power_attack_feat else 0)

GOALS: Dict[str, OptimizationGoal] = {g.id: g for g in [
    OptimizationGoal("early_power", "Early Power Spike", "Maximize combat effectiveness in levels 1-10",
                     "combat", _early_power),
    OptimizationGoal("sustained_dpr", "Sustained DPR", "Consistent damage without resource dependency",
                     "combat", _sustained),
    OptimizationGoal("burst_damage", "Burst Damage", "Maximize single-round damage potential",
                     "combat", _burst),
    OptimizationGoal("balanced_progression", "Balanced Progression", "Balance combat, survival, and utility",
                     "balanced", _balanced),
    OptimizationGoal("caster_focus", "Caster Focus", "Prioritize spell progression and spell slots",
                     "utility", _caster),
    OptimizationGoal("martial_focus", "Martial Focus", "Prioritize weapon attacks and physical features",
                     "combat", _martial),
]}

def get_goal(goal_id: str) -> OptimizationGoal:
    try:
        return GOALS[goal_id]
    except KeyError:
        raise UnknownGoalError(goal_id) from None

def list_goals() -> List[OptimizationGoal]:
    return list(GOALS.values())

def expression_goal(expr: str, goal_id: str = "custom", name: Optional[str] = None,
                    category: GoalCategory = "balanced") -> OptimizationGoal:
    """
    Goal scored by an expression over the metric variables, e.g. "dpr * 2 + extra_attack * 15".
    Unknown variable names are rejected up front.
    """
    try:
        bad = unknown_variables(expr)
    except Exception as e:  # py_expression_eval raises bare Exception on syntax errors
        raise ValueError(f"invalid goal expression {expr!r}: {e}") from e
    if bad:
        raise ValueError(f"unknown variable(s) in goal expression: {sorted(bad)}")
    return OptimizationGoal(goal_id, name or goal_id, expr, category,
                            lambda m: eval_expr(expr, m.variables()))
