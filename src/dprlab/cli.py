from __future__ import annotations
from pathlib import Path
from typing import Dict, List, Optional
import json

import typer
import yaml
from rich.console import Console
from rich.table import Table

from dprlab.engine.errors import DprLabError
from dprlab.engine.goals import list_goals
from dprlab.engine.loader import ContentIndex, default_content, load_content
from dprlab.engine.models import Build
from dprlab.engine.optimizer import (
    LevelingPath, OptimizationConfig, PathOptimizer, Strategy, constraint_preset,
)
from dprlab.engine.settings import load_settings
from dprlab.engine.simulator import DPRConfig, generate_dpr_curves
from dprlab.engine.trace import NULL_TRACE, TraceSession
from dprlab.logging_setup import setup_logging
from dprlab.tools.validate import app as validate_app

app = typer.Typer(add_completion=False, help="D&D 5e damage-per-round calculator and leveling path optimizer.")
app.add_typer(validate_app, name="validate")
console = Console()

@app.callback()
def main(log_level: Optional[str] = typer.Option(None, "--log-level", help="DEBUG, INFO, WARNING...")):
    setup_logging(log_level or load_settings().log_level)

def _content() -> ContentIndex:
    s = load_settings()
    return load_content(Path(s.content_dir)) if s.content_dir else default_content()

def _read_build(path: Path) -> Build:
    text = path.read_text(encoding="utf-8")
    data = yaml.safe_load(text) if path.suffix.lower() in (".yaml", ".yml") else json.loads(text)
    return Build.model_validate(data or {})

def _parse_target(pairs: List[str]) -> Dict[str, int]:
    target: Dict[str, int] = {}
    for p in pairs:
        cid, sep, n = p.partition("=")
        if not sep or not n.strip().lstrip("-").isdigit():
            raise typer.BadParameter(f"expected CLASS=LEVELS, got {p!r}")
        target[cid.strip().lower()] = target.get(cid.strip().lower(), 0) + int(n)
    return target

def _print_path(path: LevelingPath, verbose: bool) -> None:
    s = path.summary
    breakdown = " / ".join(f"{c.title()} {n}" for c, n in s.class_breakdown.items())
    console.print(f"[bold]{path.name}[/bold] ({path.strategy.value}) score={path.total_score:.1f}  {breakdown}")
    console.print(f"  early DPR {s.average_early_dpr:.2f}, late DPR {s.average_late_dpr:.2f}, "
                  f"peak at level {s.peak_dpr_level}, {s.complexity}")
    console.print("  order: " + " ".join(c[:3] for c in path.class_order))
    if not verbose:
        return
    table = Table(pad_edge=False)
    for col in ("Lvl", "Class", "DPR", "Score", "Features"):
        table.add_column(col)
    for step, m in zip(path.sequence, path.level_metrics):
        dpr = f"{step.dpr:.2f}" + ("*" if step.fallback_dpr else "")
        table.add_row(str(step.level), f"{step.class_id} {step.class_level}", dpr,
                      f"{m.dpr_with_spells:.2f}", ", ".join(step.key_features))
    console.print(table)
    for ms in path.milestones:
        console.print(f"  L{ms.level}: {ms.name} ({ms.impact})")
    for r in path.required_milestones:
        mark = "ok" if r.achieved else "MISSED"
        console.print(f"  required {r.name} by {r.deadline_level}: {mark}")

@app.command()
def curves(build_file: Path = typer.Argument(..., exists=True, readable=True),
           ac_min: Optional[int] = typer.Option(None, "--ac-min"),
           ac_max: Optional[int] = typer.Option(None, "--ac-max"),
           trace: bool = typer.Option(False, "--trace", help="Print resolver/calculator trace for the typical AC")):
    """DPR by target AC for a build file (YAML or JSON)."""
    build = _read_build(build_file)
    config = DPRConfig.from_settings(load_settings())
    if ac_min is not None or ac_max is not None:
        config = DPRConfig(**{**config.model_dump(), "ac_min": ac_min if ac_min is not None else config.ac_min,
                              "ac_max": ac_max if ac_max is not None else config.ac_max})
    session = TraceSession() if trace else NULL_TRACE
    try:
        result = generate_dpr_curves(build, config, content=_content(), trace=session)
    except DprLabError as e:
        typer.echo(f"[ERROR] {e}", err=True)
        raise typer.Exit(code=1)

    table = Table(title=f"{build.name} - DPR by AC", pad_edge=False)
    for col in ("AC", "Normal", "Advantage", "Disadvantage"):
        table.add_column(col, justify="right")
    pa = {b.ac: b for b in result.power_attack_breakpoints}
    if pa:
        table.add_column("Power attack")
    for n, a, d in zip(result.normal_curve, result.advantage_curve, result.disadvantage_curve):
        row = [str(n.ac), f"{n.dpr:.2f}", f"{a.dpr:.2f}", f"{d.dpr:.2f}"]
        if pa:
            b = pa[n.ac]
            row.append(f"{'yes' if b.use_power_attack else 'no'} "
                       f"({b.with_power_attack:.2f} vs {b.without_power_attack:.2f})")
        table.add_row(*row)
    console.print(table)
    console.print(f"AC {config.typical_ac}: {result.average_dpr:.2f} DPR/round, "
                  f"rounds {', '.join(f'{x:.2f}' for x in result.round_breakdown)}")
    if trace:
        for line in session.dump():
            typer.echo(line)

def _optimizer(target: List[str], build_file: Optional[Path], goal: str, goal_expr: Optional[str],
               objective: str, preset: Optional[str], weapon: Optional[str], ranged: Optional[str],
               trace: bool) -> PathOptimizer:
    s = load_settings()
    overrides = dict(objective=objective, beam_width=s.beam_width, max_paths=s.max_paths,
                     lookahead_depth=s.lookahead_depth, target_ac=s.typical_ac, goal_expression=goal_expr)
    if preset:
        overrides["constraints"] = constraint_preset(preset)
    if weapon:
        overrides["main_hand_weapon"] = weapon
    if ranged:
        overrides["ranged_weapon"] = ranged
    session = TraceSession() if trace else NULL_TRACE
    if build_file is not None:
        build = _read_build(build_file)
        if target:
            overrides["target"] = _parse_target(target)
        return PathOptimizer.from_build(build, goal_id=goal, content=_content(), trace=session, **overrides)
    if not target:
        raise typer.BadParameter("give a target (e.g. fighter=5 rogue=3) or --build")
    return PathOptimizer(OptimizationConfig(target=_parse_target(target), goal_id=goal, **overrides),
                         content=_content(), trace=session)

@app.command()
def optimize(target: List[str] = typer.Argument(None, help="CLASS=LEVELS pairs, e.g. fighter=5 rogue=3"),
             build_file: Optional[Path] = typer.Option(None, "--build", exists=True),
             goal: str = typer.Option("sustained_dpr", "--goal"),
             goal_expr: Optional[str] = typer.Option(None, "--goal-expr", help="Custom goal expression"),
             objective: str = typer.Option("l20_dpr", "--objective", help="l20_dpr | tier_average | custom"),
             preset: Optional[str] = typer.Option(None, "--preset", help="martial_dpr | spellsword | rogue_hybrid"),
             weapon: Optional[str] = typer.Option(None, "--weapon"),
             ranged: Optional[str] = typer.Option(None, "--ranged"),
             verbose: bool = typer.Option(False, "-v", "--verbose"),
             trace: bool = typer.Option(False, "--trace")):
    """Beam search over class orderings for a target breakdown."""
    try:
        opt = _optimizer(target, build_file, goal, goal_expr, objective, preset, weapon, ranged, trace)
        paths = opt.optimize_paths()
    except (DprLabError, ValueError) as e:
        typer.echo(f"[ERROR] {e}", err=True)
        raise typer.Exit(code=1)
    for p in paths:
        _print_path(p, verbose)
    if trace:
        for line in opt.trace.dump():
            typer.echo(line)

@app.command()
def paths(target: List[str] = typer.Argument(None, help="CLASS=LEVELS pairs, e.g. paladin=6 warlock=2"),
          build_file: Optional[Path] = typer.Option(None, "--build", exists=True),
          goal: str = typer.Option("sustained_dpr", "--goal"),
          goal_expr: Optional[str] = typer.Option(None, "--goal-expr"),
          strategy: Optional[Strategy] = typer.Option(None, "--strategy", help="Run a single strategy"),
          weapon: Optional[str] = typer.Option(None, "--weapon"),
          ranged: Optional[str] = typer.Option(None, "--ranged"),
          verbose: bool = typer.Option(False, "-v", "--verbose"),
          trace: bool = typer.Option(False, "--trace")):
    """Greedy, lookahead and balanced orderings, ranked by goal score."""
    try:
        opt = _optimizer(target, build_file, goal, goal_expr, "custom", None, weapon, ranged, trace)
        results = [opt.run(strategy)] if strategy else opt.generate_optimized_paths()
    except (DprLabError, ValueError) as e:
        typer.echo(f"[ERROR] {e}", err=True)
        raise typer.Exit(code=1)
    for p in results:
        _print_path(p, verbose)
    if trace:
        for line in opt.trace.dump():
            typer.echo(line)

@app.command()
def goals():
    """List the built-in optimization goals."""
    table = Table(title="Optimization goals", pad_edge=False)
    for col in ("Id", "Name", "Category", "Description"):
        table.add_column(col)
    for g in list_goals():
        table.add_row(g.id, g.name, g.category, g.description)
    console.print(table)

if __name__ == "__main__":
    app()
