from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Literal, Optional, Sequence, Tuple
import hashlib
import logging
import math

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .errors import InvalidTargetError
from .goals import LevelMetrics, OptimizationGoal, expression_goal, get_goal
from .loader import ContentIndex, default_content
from .models import AbilityScores, Build, LevelEntry
from .progression import (
    class_profile, fallback_dpr, future_potential, gets_extra_attack, highest_slot_level,
    is_power_spike, spell_slots,
)
from .simulator import DPRConfig, average_dpr, is_power_attack_feat
from .trace import NULL_TRACE, NullTrace

log = logging.getLogger(__name__)

MAX_LEVEL = 20
LOOKAHEAD_DISCOUNT = 0.8
BALANCED_IMMEDIATE = 0.7
BALANCED_FUTURE = 0.3
MILESTONE_PENALTY = 50
MIN_CREDIBLE_DPR = 0.5
EARLY_LEVELS = 10

MARTIAL_FEAT_CLASSES = ("fighter", "ranger", "paladin", "barbarian")
FIGHTING_STYLE_LEVEL = {"fighter": 1, "paladin": 2, "ranger": 2}

class Strategy(str, Enum):
    GREEDY = "greedy"
    LOOKAHEAD = "lookahead"
    BALANCED = "balanced"
    BEAM = "beam"

# ---------------- milestones & constraints ----------------

class Milestone(BaseModel):
    id: str
    name: str
    description: str
    deadline_level: int

def _has_extra_attack(class_levels: Dict[str, int], content: Optional[ContentIndex]) -> bool:
    return any(gets_extra_attack(class_profile(c, content), n) for c, n in class_levels.items())

def _has_third_level_spells(class_levels: Dict[str, int], content: Optional[ContentIndex]) -> bool:
    return highest_slot_level(spell_slots(class_levels, content)) >= 3

MILESTONES: Dict[str, Milestone] = {m.id: m for m in [
    Milestone(id="extra_attack", name="Extra Attack", description="Gain the Extra Attack feature",
              deadline_level=5),
    Milestone(id="sneak_attack_2d6", name="Sneak Attack +2d6",
              description="Have at least 3 rogue levels (2d6 sneak attack)", deadline_level=8),
    Milestone(id="spellcasting_3rd", name="3rd Level Spells", description="Access to 3rd level spells",
              deadline_level=10),
]}

_MILESTONE_CHECKS: Dict[str, Callable[[Dict[str, int], Optional[ContentIndex]], bool]] = {
    "extra_attack": _has_extra_attack,
    "sneak_attack_2d6": lambda cl, content: cl.get("rogue", 0) >= 3,
    "spellcasting_3rd": _has_third_level_spells,
}

class PathConstraints(BaseModel):
    max_classes: int = Field(3, ge=1)
    must_hit_milestones: List[str] = Field(default_factory=list)
    allowed_classes: Optional[List[str]] = None
    forbidden_combos: List[List[str]] = Field(default_factory=list)

    @field_validator("must_hit_milestones")
    @classmethod
    def _known_milestones(cls, v: List[str]) -> List[str]:
        unknown = [m for m in v if m not in MILESTONES]
        if unknown:
            raise ValueError(f"unknown milestone id(s): {unknown}")
        return v

CONSTRAINT_PRESETS: Dict[str, PathConstraints] = {
    "martial_dpr": PathConstraints(max_classes=2, must_hit_milestones=["extra_attack"],
                                   allowed_classes=["fighter", "ranger", "paladin", "barbarian", "rogue"],
                                   forbidden_combos=[["barbarian", "monk"]]),
    "spellsword": PathConstraints(max_classes=2, must_hit_milestones=["extra_attack", "spellcasting_3rd"],
                                  allowed_classes=["fighter", "paladin", "ranger", "wizard", "sorcerer",
                                                   "warlock"]),
    "rogue_hybrid": PathConstraints(max_classes=3, must_hit_milestones=["sneak_attack_2d6"],
                                    allowed_classes=["rogue", "fighter", "ranger", "cleric"]),
}

def constraint_preset(name: str) -> PathConstraints:
    if name not in CONSTRAINT_PRESETS:
        raise ValueError(f"unknown constraint preset: {name} (known: {sorted(CONSTRAINT_PRESETS)})")
    return CONSTRAINT_PRESETS[name].model_copy(deep=True)

def _standard_array() -> AbilityScores:
    return AbilityScores(str_=15, dex=14, con=13, int_=12, wis=10, cha=8)

class OptimizationConfig(BaseModel):
    target: Dict[str, int]
    goal_id: str = "sustained_dpr"
    goal_expression: Optional[str] = None  # overrides goal_id when set
    objective: Literal["l20_dpr", "tier_average", "custom"] = "l20_dpr"
    constraints: PathConstraints = Field(default_factory=PathConstraints)
    beam_width: int = Field(5, ge=1)
    max_paths: int = Field(3, ge=1)
    lookahead_depth: int = Field(2, ge=0)
    target_ac: int = 15

    base_ability_scores: AbilityScores = Field(default_factory=_standard_array)
    race: str = "human"
    main_hand_weapon: Optional[str] = None
    ranged_weapon: Optional[str] = None
    subclasses: Dict[str, str] = Field(default_factory=dict)
    fighting_styles: Dict[str, str] = Field(default_factory=dict)
    active_buffs: List[str] = Field(default_factory=list)

    @property
    def total_levels(self) -> int:
        return sum(self.target.values())

# ---------------- results ----------------

class SpellInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    level: int
    impact: Literal["buff", "damage", "utility"]
    dpr_contribution: float = 0.0

class LevelStep(BaseModel):
    """One character level on a path. Frozen; arena prefixes hand the same instance to every descendant."""
    model_config = ConfigDict(frozen=True)

    level: int
    class_id: str
    class_level: int
    subclass_id: Optional[str] = None
    fighting_style: Optional[str] = None
    asi_or_feat: Optional[Literal["asi", "feat"]] = None
    feat_id: Optional[str] = None
    ability_increases: Dict[str, int] = Field(default_factory=dict)
    spells_available: List[SpellInfo] = Field(default_factory=list)
    key_features: List[str] = Field(default_factory=list)
    dpr: float = 0.0
    fallback_dpr: bool = False
    role_scores: Dict[str, float] = Field(default_factory=dict)
    power_spike: bool = False

    def to_entry(self) -> LevelEntry:
        return LevelEntry(level=self.level, class_id=self.class_id, subclass_id=self.subclass_id,
                          fighting_style=self.fighting_style, asi_or_feat=self.asi_or_feat,
                          feat_id=self.feat_id, ability_increases=self.ability_increases)

class PathMilestone(BaseModel):
    level: int
    name: str
    description: str
    impact: Literal["major", "moderate", "minor"]
    category: Literal["combat", "spells", "utility"]

class MilestoneResult(BaseModel):
    id: str
    name: str
    deadline_level: int
    achieved: bool
    level_achieved: Optional[int] = None

class PathSummary(BaseModel):
    class_breakdown: Dict[str, int]
    final_level: int
    average_early_dpr: float
    average_late_dpr: float
    peak_dpr_level: int
    survival_score: float
    utility_score: float
    complexity: Literal["simple", "moderate", "complex"]
    spell_caster_levels: int
    martial_levels: int

class LevelingPath(BaseModel):
    id: str
    name: str
    strategy: Strategy
    sequence: List[LevelStep]
    total_score: float
    level_metrics: List[LevelMetrics]
    milestones: List[PathMilestone]
    required_milestones: List[MilestoneResult] = Field(default_factory=list)
    summary: PathSummary

    @property
    def class_order(self) -> List[str]:
        return [s.class_id for s in self.sequence]

    def to_build(self, template: Optional[Build] = None) -> Build:
        base = template or Build()
        return base.model_copy(update={
            "id": self.id, "name": self.name,
            "level_timeline": [s.to_entry() for s in self.sequence],
            "current_level": len(self.sequence),
        })

# ---------------- path arena ----------------

@dataclass(frozen=True)
class PathNode:
    step: Optional[LevelStep]
    metrics: Optional[LevelMetrics]
    parent: int
    class_levels: Tuple[Tuple[str, int], ...]
    depth: int
    step_score: float = 0.0
    total_score: float = 0.0  # cumulative goal score
    dpr_total: float = 0.0
    tier_total: float = 0.0   # cumulative dpr x tier

class PathArena:
    """Append-only store of path prefixes; a prefix is an index, siblings share their parent."""

    def __init__(self) -> None:
        self._nodes: List[PathNode] = [PathNode(step=None, metrics=None, parent=-1, class_levels=(), depth=0)]

    ROOT = 0

    def __getitem__(self, idx: int) -> PathNode:
        return self._nodes[idx]

    def __len__(self) -> int:
        return len(self._nodes)

    def push(self, node: PathNode) -> int:
        self._nodes.append(node)
        return len(self._nodes) - 1

    def steps(self, idx: int) -> List[LevelStep]:
        out: List[LevelStep] = []
        while idx > 0:
            node = self._nodes[idx]
            out.append(node.step)
            idx = node.parent
        out.reverse()
        return out

    def ancestor_at(self, idx: int, depth: int) -> int:
        while self._nodes[idx].depth > depth:
            idx = self._nodes[idx].parent
        return idx

# ---------------- optimizer ----------------

def _spells_available(class_id: str, class_level: int) -> List[SpellInfo]:
    spells: List[SpellInfo] = []
    if class_id in ("wizard", "sorcerer") and class_level >= 5:
        spells.append(SpellInfo(id="haste", name="Haste", level=3, impact="buff", dpr_contribution=10))
        spells.append(SpellInfo(id="fireball", name="Fireball", level=3, impact="damage", dpr_contribution=28))
    if class_id in ("ranger", "warlock"):
        spells.append(SpellInfo(id="hunters_mark", name="Hunter's Mark", level=1, impact="buff",
                                dpr_contribution=3.5))
    if class_id == "warlock":
        spells.append(SpellInfo(id="hex", name="Hex", level=1, impact="buff", dpr_contribution=3.5))
    return spells

def _ordinal(n: int) -> str:
    return {1: "1st", 2: "2nd", 3: "3rd"}.get(n, f"{n}th")

class PathOptimizer:
    """
    Searches level-by-level class orderings for a fixed per-class target.

    Every strategy shares one arena of prefixes and one DPR memo, so running several
    strategies on the same instance reuses evaluations.
    """

    def __init__(self, config: OptimizationConfig, content: Optional[ContentIndex] = None,
                 trace: NullTrace = NULL_TRACE, template: Optional[Build] = None):
        self.config = config
        self.content = content or default_content()
        self.trace = trace
        self.template = template
        self.goal: OptimizationGoal = (expression_goal(config.goal_expression) if config.goal_expression
                                       else get_goal(config.goal_id))
        self._validate_target()
        self._classes = list(config.target)
        self._arena = PathArena()
        self._children: Dict[Tuple[int, str], int] = {}
        self._future: Dict[Tuple[int, int], float] = {}
        self._dpr_memo: Dict[Tuple[Tuple[Tuple[str, int], ...], int], Tuple[float, bool]] = {}
        self._dpr_config = DPRConfig(typical_ac=config.target_ac)

    # ---- construction helpers ----

    @classmethod
    def from_build(cls, build: Build, goal_id: str = "sustained_dpr", content: Optional[ContentIndex] = None,
                   trace: NullTrace = NULL_TRACE, **overrides) -> "PathOptimizer":
        subclasses = {}
        styles = {}
        for e in build.level_timeline:
            if e.subclass_id:
                subclasses.setdefault(e.class_id, e.subclass_id)
            if e.fighting_style:
                styles.setdefault(e.class_id, e.fighting_style)
        data = dict(target=build.class_levels(), goal_id=goal_id, base_ability_scores=build.ability_scores,
                    race=build.race, main_hand_weapon=build.main_hand_weapon,
                    ranged_weapon=build.ranged_weapon, subclasses=subclasses, fighting_styles=styles,
                    active_buffs=list(build.active_buffs))
        data.update(overrides)
        return cls(OptimizationConfig(**data), content=content, trace=trace, template=build)

    @classmethod
    def from_custom_target(cls, target: Dict[str, int], goal_id: str = "sustained_dpr",
                           content: Optional[ContentIndex] = None, trace: NullTrace = NULL_TRACE,
                           **overrides) -> "PathOptimizer":
        return cls(OptimizationConfig(target=target, goal_id=goal_id, **overrides), content=content, trace=trace)

    def _validate_target(self) -> None:
        target = self.config.target
        cons = self.config.constraints
        if not target:
            raise InvalidTargetError("target breakdown is empty")
        bad = {c: n for c, n in target.items() if n <= 0}
        if bad:
            raise InvalidTargetError(f"class level counts must be positive: {bad}")
        if self.config.total_levels > MAX_LEVEL:
            raise InvalidTargetError(f"target totals {self.config.total_levels} levels; maximum is {MAX_LEVEL}")
        if len(target) > cons.max_classes:
            raise InvalidTargetError(f"target uses {len(target)} classes; constraint allows {cons.max_classes}")
        if cons.allowed_classes is not None:
            outside = sorted(set(target) - set(cons.allowed_classes))
            if outside:
                raise InvalidTargetError(f"classes not allowed by constraints: {outside}")
        for combo in cons.forbidden_combos:
            if sum(1 for c in combo if c in target) > 1:
                raise InvalidTargetError(f"target combines forbidden classes: {combo}")

    # ---- per-step evaluation ----

    def _template_entry(self, class_id: str, class_level: int) -> Optional[LevelEntry]:
        if self.template is None:
            return None
        same_class = [e for e in sorted(self.template.level_timeline, key=lambda e: e.level)
                      if e.class_id == class_id]
        return same_class[class_level - 1] if class_level <= len(same_class) else None

    def _choose_asi(self, class_id: str, char_level: int) -> Tuple[str, Optional[str], Dict[str, int]]:
        profile = class_profile(class_id, self.content)
        if char_level in (4, 6) and class_id in MARTIAL_FEAT_CLASSES:
            if self.config.ranged_weapon:
                return "feat", "sharpshooter", {}
            weapon = self.content.get_weapon(self.config.main_hand_weapon or "")
            if weapon is not None and weapon.has("heavy"):
                return "feat", "great_weapon_master", {}
        return "asi", None, {profile.primary_ability: 2}

    def _progression_entry(self, class_id: str, class_level: int, char_level: int) -> LevelStep:
        fields: Dict[str, Any] = dict(level=char_level, class_id=class_id, class_level=class_level,
                                      subclass_id=self.config.subclasses.get(class_id))
        profile = class_profile(class_id, self.content)
        entry = self._template_entry(class_id, class_level)
        if entry is not None:
            fields.update(subclass_id=entry.subclass_id or fields["subclass_id"],
                          fighting_style=entry.fighting_style, asi_or_feat=entry.asi_or_feat,
                          feat_id=entry.feat_id, ability_increases=dict(entry.ability_increases))
        else:
            if FIGHTING_STYLE_LEVEL.get(class_id) == class_level:
                fields["fighting_style"] = self.config.fighting_styles.get(class_id)
            if class_level in profile.asi_levels:
                asi, feat, increases = self._choose_asi(class_id, char_level)
                fields.update(asi_or_feat=asi, feat_id=feat, ability_increases=increases)
        return LevelStep(**fields)

    def _partial_build(self, steps: Sequence[LevelStep]) -> Build:
        base = dict(id="partial", name="Partial Path", race=self.config.race,
                    ability_scores=self.config.base_ability_scores,
                    main_hand_weapon=self.config.main_hand_weapon, ranged_weapon=self.config.ranged_weapon,
                    active_buffs=list(self.config.active_buffs))
        if self.template is not None:
            base.update(weapon_enhancement_bonus=self.template.weapon_enhancement_bonus,
                        weapon_training=self.template.weapon_training, round0_buffs=self.template.round0_buffs)
        return Build(level_timeline=[s.to_entry() for s in steps], current_level=len(steps), **base)

    def _step_dpr(self, steps: Sequence[LevelStep], class_levels: Dict[str, int]) -> Tuple[float, bool]:
        last = steps[-1]
        key = (tuple(sorted(class_levels.items())), last.level)
        if key in self._dpr_memo:
            return self._dpr_memo[key]
        try:
            value = average_dpr(self._partial_build(steps), target_ac=self.config.target_ac,
                                content=self.content, config=self._dpr_config)
            if not math.isfinite(value) or value < MIN_CREDIBLE_DPR:
                raise ValueError(f"implausible DPR {value!r}")
            result = (value, False)
        except Exception as e:  # one bad evaluation must not abort the search
            result = (fallback_dpr(last.class_id, last.class_level, last.level), True)
            log.debug("DPR fallback for %s at level %d (%s): %.2f", dict(class_levels), last.level, e, result[0])
        self._dpr_memo[key] = result
        return result

    def _metrics(self, steps: Sequence[LevelStep], class_levels: Dict[str, int]) -> LevelMetrics:
        survival = 0.0
        utility = 0.0
        for s in steps:
            survival += class_profile(s.class_id, self.content).hit_die / 2 + 1
            if s.class_id in ("barbarian", "monk"):
                survival += 2  # unarmored defense
            utility += 5 * sum(1 for sp in s.spells_available if sp.impact == "utility")
            if s.class_id in ("rogue", "bard"):
                utility += 3
        last = steps[-1]
        return LevelMetrics(
            level=last.level, dpr=last.dpr, dpr_with_spells=last.dpr * 1.2,
            survival_score=survival, utility_score=utility,
            spell_slots=spell_slots(class_levels, self.content),
            has_haste=any(sp.id == "haste" for s in steps for sp in s.spells_available),
            has_extra_attack=_has_extra_attack(class_levels, self.content),
            has_power_attack_feat=any(s.feat_id and is_power_attack_feat(s.feat_id, self.content) for s in steps),
        )

    def _child(self, parent: int, class_id: str) -> int:
        key = (parent, class_id)
        if key in self._children:
            return self._children[key]
        node = self._arena[parent]
        class_levels = dict(node.class_levels)
        class_levels[class_id] = class_levels.get(class_id, 0) + 1
        class_level = class_levels[class_id]
        char_level = node.depth + 1

        draft = self._progression_entry(class_id, class_level, char_level)
        profile = class_profile(class_id, self.content)
        cls = self.content.get_class(class_id)
        features = [f.name for f in cls.features_at(class_level, draft.subclass_id)] if cls is not None else []

        prefix = self._arena.steps(parent)
        dpr, fallback = self._step_dpr(prefix + [draft], class_levels)
        draft = draft.model_copy(update={
            "key_features": features,
            "spells_available": _spells_available(class_id, class_level),
            "power_spike": is_power_spike(profile, class_level),
            "dpr": dpr, "fallback_dpr": fallback,
        })
        metrics = self._metrics(prefix + [draft], class_levels)
        step = draft.model_copy(update={
            "role_scores": {"survival": metrics.survival_score, "utility": metrics.utility_score}})
        score = self.goal.score(metrics)

        idx = self._arena.push(PathNode(
            step=step, metrics=metrics, parent=parent, class_levels=tuple(sorted(class_levels.items())),
            depth=char_level, step_score=score, total_score=node.total_score + score,
            dpr_total=node.dpr_total + step.dpr,
            tier_total=node.tier_total + step.dpr * math.ceil(char_level / 5),
        ))
        self._children[key] = idx
        return idx

    def _remaining(self, idx: int) -> Dict[str, int]:
        have = dict(self._arena[idx].class_levels)
        return {c: self.config.target[c] - have.get(c, 0) for c in self._classes}

    def _choices(self, idx: int) -> List[str]:
        present = {c for c, _ in self._arena[idx].class_levels}
        cons = self.config.constraints
        out = []
        for c, left in self._remaining(idx).items():
            if left <= 0:
                continue
            if c not in present and len(present) + 1 > cons.max_classes:
                continue
            if any(c in combo and any(o in present for o in combo if o != c) for combo in cons.forbidden_combos):
                continue
            out.append(c)
        return out

    # ---- strategies ----

    def _walk(self, pick: Callable[[int, List[str]], str], label: str) -> int:
        idx = PathArena.ROOT
        while True:
            choices = self._choices(idx)
            if not choices:
                return idx
            choice = pick(idx, choices)
            if self.trace.enabled:
                self.trace.add(f"{label} L{self._arena[idx].depth + 1}: {choice} (of {', '.join(choices)})")
            idx = self._child(idx, choice)

    def _best_future(self, idx: int, depth: int) -> float:
        """Best discounted continuation score from `idx`, `depth` levels deep, without recursion."""
        memo = self._future
        stack = [(idx, depth)]
        while stack:
            node, d = stack[-1]
            if (node, d) in memo:
                stack.pop()
                continue
            choices = self._choices(node) if d > 0 else []
            if not choices:
                memo[(node, d)] = 0.0
                stack.pop()
                continue
            kids = [self._child(node, c) for c in choices]
            pending = [(k, d - 1) for k in kids if (k, d - 1) not in memo]
            if pending:
                stack.extend(pending)
                continue
            memo[(node, d)] = max(self._arena[k].step_score + LOOKAHEAD_DISCOUNT * memo[(k, d - 1)]
                                  for k in kids)
            stack.pop()
        return memo[(idx, depth)]

    def _greedy_pick(self, idx: int, choices: List[str]) -> str:
        return max(choices, key=lambda c: self._arena[self._child(idx, c)].step_score)

    def _lookahead_pick(self, depth: int) -> Callable[[int, List[str]], str]:
        def pick(idx: int, choices: List[str]) -> str:
            def value(c: str) -> float:
                k = self._child(idx, c)
                return self._arena[k].step_score + LOOKAHEAD_DISCOUNT * self._best_future(k, depth - 1)
            return max(choices, key=value)
        return pick

    def _balanced_pick(self, idx: int, choices: List[str]) -> str:
        def value(c: str) -> float:
            k = self._child(idx, c)
            node = self._arena[k]
            potential = future_potential(c, dict(node.class_levels)[c], self._remaining(k), self.content)
            return BALANCED_IMMEDIATE * node.step_score + BALANCED_FUTURE * potential
        return max(choices, key=value)

    def greedy(self) -> LevelingPath:
        return self._finalize(self._walk(self._greedy_pick, "greedy"), Strategy.GREEDY)

    def lookahead(self, depth: Optional[int] = None) -> LevelingPath:
        depth = self.config.lookahead_depth if depth is None else depth
        if depth <= 0:
            return self._finalize(self._walk(self._greedy_pick, "lookahead"), Strategy.LOOKAHEAD)
        return self._finalize(self._walk(self._lookahead_pick(depth), "lookahead"), Strategy.LOOKAHEAD)

    def balanced(self) -> LevelingPath:
        return self._finalize(self._walk(self._balanced_pick, "balanced"), Strategy.BALANCED)

    # ---- beam search ----

    def _missed_milestones(self, idx: int) -> List[str]:
        node = self._arena[idx]
        missed = []
        for mid in self.config.constraints.must_hit_milestones:
            m = MILESTONES[mid]
            if node.depth < m.deadline_level:
                continue
            at_deadline = dict(self._arena[self._arena.ancestor_at(idx, m.deadline_level)].class_levels)
            if not _MILESTONE_CHECKS[mid](at_deadline, self.content):
                missed.append(mid)
        return missed

    def _objective(self, idx: int) -> float:
        node = self._arena[idx]
        if self.config.objective == "l20_dpr":
            return node.step.dpr * (self.config.total_levels / node.depth)
        if self.config.objective == "tier_average":
            return node.tier_total
        return node.total_score

    def _beam_indices(self) -> List[int]:
        beam = [PathArena.ROOT]
        for level in range(1, self.config.total_levels + 1):
            candidates = [self._child(idx, c) for idx in beam for c in self._choices(idx)]
            if not candidates:
                break
            ranked = sorted(candidates, key=lambda k: (self._objective(k), self._arena[k].dpr_total),
                            reverse=True)
            valid = [k for k in ranked if not self._missed_milestones(k)]
            if not valid:
                # nothing meets its deadlines; keep the least-bad prefixes
                valid = sorted(ranked, key=lambda k: self._objective(k)
                               - MILESTONE_PENALTY * len(self._missed_milestones(k)), reverse=True)
            beam = valid[:self.config.beam_width]
            log.debug("beam level %d: %d candidates, kept %d", level, len(candidates), len(beam))
            if self.trace.enabled:
                self.trace.add(f"beam L{level}: " + "; ".join(
                    "/".join(s.class_id for s in self._arena.steps(k)) for k in beam))
        return beam

    def beam(self) -> List[LevelingPath]:
        return [self._finalize(k, Strategy.BEAM) for k in self._beam_indices()]

    def optimize_paths(self) -> List[LevelingPath]:
        return self.beam()[:self.config.max_paths]

    def generate_optimized_paths(self) -> List[LevelingPath]:
        paths = [self.greedy(), self.lookahead(), self.balanced()]
        return sorted(paths, key=lambda p: p.total_score, reverse=True)

    def run(self, strategy: Strategy) -> LevelingPath:
        strategy = Strategy(strategy)
        if strategy == Strategy.GREEDY:
            return self.greedy()
        if strategy == Strategy.LOOKAHEAD:
            return self.lookahead()
        if strategy == Strategy.BALANCED:
            return self.balanced()
        return self.beam()[0]

    # ---- results ----

    def _finalize(self, idx: int, strategy: Strategy) -> LevelingPath:
        steps = self._arena.steps(idx)
        metrics: List[LevelMetrics] = []
        i = idx
        while i > 0:
            metrics.append(self._arena[i].metrics)
            i = self._arena[i].parent
        metrics.reverse()
        order = "/".join(s.class_id for s in steps)
        digest = hashlib.sha1(order.encode("utf-8")).hexdigest()[:10]
        return LevelingPath(
            id=f"{strategy.value}_{digest}",
            name=self._path_name(steps),
            strategy=strategy,
            sequence=[s.model_copy(deep=True) for s in steps],
            total_score=self._arena[idx].total_score,
            level_metrics=[m.model_copy(deep=True) for m in metrics],
            milestones=self._identify_milestones(steps, metrics),
            required_milestones=self._milestone_results(idx),
            summary=self._summary(steps, metrics),
        )

    def _milestone_results(self, idx: int) -> List[MilestoneResult]:
        out = []
        for mid in self.config.constraints.must_hit_milestones:
            m = MILESTONES[mid]
            level_achieved = None
            for d in range(1, self._arena[idx].depth + 1):
                cl = dict(self._arena[self._arena.ancestor_at(idx, d)].class_levels)
                if _MILESTONE_CHECKS[mid](cl, self.content):
                    level_achieved = d
                    break
            out.append(MilestoneResult(id=mid, name=m.name, deadline_level=m.deadline_level,
                                       achieved=level_achieved is not None and level_achieved <= m.deadline_level,
                                       level_achieved=level_achieved))
        return out

    def _identify_milestones(self, steps: List[LevelStep], metrics: List[LevelMetrics]) -> List[PathMilestone]:
        out: List[PathMilestone] = []
        best_slot = 0
        for step, m in zip(steps, metrics):
            profile = class_profile(step.class_id, self.content)
            if profile.extra_attack_level is not None and step.class_level == profile.extra_attack_level:
                out.append(PathMilestone(level=step.level, name="Extra Attack",
                                         description=f"{step.class_id} gains Extra Attack",
                                         impact="major", category="combat"))
            top = highest_slot_level(m.spell_slots)
            if top > best_slot:
                best_slot = top
                out.append(PathMilestone(level=step.level, name=f"{_ordinal(top)} Level Spells",
                                         description=f"Access to {_ordinal(top)} level spell slots",
                                         impact="major" if top >= 3 else "moderate", category="spells"))
            if step.class_level in profile.asi_levels:
                out.append(PathMilestone(level=step.level, name="ASI/Feat",
                                         description="Ability Score Improvement or Feat",
                                         impact="moderate", category="utility"))
            if step.power_spike:
                out.append(PathMilestone(level=step.level, name=f"{profile.name} Power Spike",
                                         description=f"{step.class_id} level {step.class_level}",
                                         impact="minor", category="combat"))
        return out

    def _summary(self, steps: List[LevelStep], metrics: List[LevelMetrics]) -> PathSummary:
        breakdown: Dict[str, int] = {}
        for s in steps:
            breakdown[s.class_id] = max(breakdown.get(s.class_id, 0), s.class_level)

        def avg(ms: List[LevelMetrics]) -> float:
            return sum(m.dpr_with_spells for m in ms) / len(ms) if ms else 0.0

        values = [m.dpr_with_spells for m in metrics]
        peak = values.index(max(values)) + 1 if values else 1
        casters = 0
        martial = 0
        for class_id, n in breakdown.items():
            profile = class_profile(class_id, self.content)
            if profile.caster != "none":
                casters += n
            if gets_extra_attack(profile, n):
                martial += n
        distinct = len(breakdown)
        return PathSummary(
            class_breakdown=breakdown, final_level=len(steps),
            average_early_dpr=avg(metrics[:EARLY_LEVELS]), average_late_dpr=avg(metrics[EARLY_LEVELS:]),
            peak_dpr_level=peak,
            survival_score=metrics[-1].survival_score if metrics else 0.0,
            utility_score=metrics[-1].utility_score if metrics else 0.0,
            complexity="complex" if distinct > 2 else "moderate" if distinct > 1 else "simple",
            spell_caster_levels=casters, martial_levels=martial,
        )

    def _path_name(self, steps: List[LevelStep]) -> str:
        if not steps:
            return "Empty Path"
        order = [s.class_id for s in steps]
        unique = list(dict.fromkeys(order))
        if len(unique) == 1:
            return f"{unique[0].title()} Focused"
        first = order[0]
        if order[:5].count(first) >= 4:
            return f"{first.title()} Front-loaded"
        if all(order[i] != order[i - 1] for i in range(1, min(6, len(order)))):
            return "Alternating Build"
        late = order[len(order) // 2:]
        dominant = max(dict.fromkeys(late), key=late.count)
        if dominant != first:
            return f"{dominant.title()} Finisher"
        return f"{self.goal.name} Path"

def optimize_paths(config: OptimizationConfig, content: Optional[ContentIndex] = None,
                   trace: NullTrace = NULL_TRACE, template: Optional[Build] = None) -> List[LevelingPath]:
    return PathOptimizer(config, content=content, trace=trace, template=template).optimize_paths()

def generate_optimized_paths(config: OptimizationConfig, content: Optional[ContentIndex] = None,
                             trace: NullTrace = NULL_TRACE, template: Optional[Build] = None) -> List[LevelingPath]:
    return PathOptimizer(config, content=content, trace=trace, template=template).generate_optimized_paths()
