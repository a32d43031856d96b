from __future__ import annotations
from pathlib import Path
from typing import Dict, List, Set, Tuple
import typer
from pydantic import TypeAdapter, ValidationError

from dprlab.engine.expr import METRIC_VARIABLES, unknown_variables
from dprlab.engine.loader import WeaponAdapter, ClassAdapter, FeatAdapter, BuffAdapter, iter_files, load_file, records
from dprlab.engine.models import ClassDefinition
from dprlab.engine.modifiers import TOGGLE_BUFFS, buff_to_modifiers, feat_to_modifiers, known_feature_ids
from dprlab.util.paths import content_dir as bundled_content_dir

app = typer.Typer(add_completion=False, help="Validate content catalogs and goal expressions.")

def check_goal_expression(expr: str) -> List[str]:
    """Syntax and name check for a custom goal expression; returns error strings."""
    try:
        unknown = unknown_variables(expr)
    except Exception as e:  # py_expression_eval raises bare Exception on syntax errors
        return [f"invalid expression syntax: {e}"]
    if unknown:
        return [f"unknown variable(s): {sorted(unknown)}; allowed: {sorted(METRIC_VARIABLES)}"]
    return []

def _class_feature_warnings(cls: ClassDefinition, fp: Path, known: Set[str]) -> List[str]:
    out = []
    levels = [(f"features[{lvl}]", feats) for lvl, feats in cls.features.items()]
    for sid, sub in cls.subclasses.items():
        levels.extend((f"subclasses.{sid}.features[{lvl}]", feats) for lvl, feats in sub.features.items())
    for where, feats in levels:
        for f in feats:
            key = f.rules_key or f.id
            if f.rules_key and key not in known:
                out.append(f"{fp}:{cls.id}.{where}: rules_key '{key}' compiles to no modifiers")
    return out

def validate_dir(root: Path, warn_unknown: bool = False) -> Tuple[List[str], List[str]]:
    """Returns (errors, warnings) for a content directory."""
    errors: List[str] = []
    warnings: List[str] = []
    groups: List[Tuple[str, TypeAdapter]] = [
        ("weapons", WeaponAdapter), ("classes", ClassAdapter), ("feats", FeatAdapter), ("buffs", BuffAdapter),
    ]
    seen: Dict[str, Dict[str, Path]] = {}
    known = set(known_feature_ids())
    for sub, adapter in groups:
        ids = seen.setdefault(sub, {})
        for fp in iter_files(root / sub):
            for i, data in enumerate(records(load_file(fp))):
                try:
                    obj = adapter.validate_python(data)
                except ValidationError as e:
                    errors.append(f"{fp}[{i}]: {e}")
                    continue
                if obj.id in ids:
                    errors.append(f"{fp}: duplicate {sub} id '{obj.id}' (first in {ids[obj.id]})")
                    continue
                ids[obj.id] = fp
                if not warn_unknown:
                    continue
                if sub == "classes":
                    warnings.extend(_class_feature_warnings(obj, fp, known))
                elif sub == "feats" and not feat_to_modifiers(obj.id) and not obj.power_attack:
                    warnings.append(f"{fp}: feat '{obj.id}' compiles to no modifiers")
                elif sub == "buffs" and obj.id not in TOGGLE_BUFFS and not buff_to_modifiers(obj.id):
                    warnings.append(f"{fp}: buff '{obj.id}' compiles to no modifiers")
    return errors, warnings

@app.command("content")
def validate_content(
    content_dir: Path = typer.Argument(None, help="Defaults to the bundled SRD content"),
    warn_unknown: bool = typer.Option(False, "--warn-unknown", help="Warn on ids that compile to no modifiers"),
):
    root = content_dir or bundled_content_dir()
    errors, warnings = validate_dir(root, warn_unknown)
    for w in warnings:
        typer.echo(f"[WARN] {w}")
    for e in errors:
        typer.echo(f"[ERROR] {e}", err=True)
    if errors:
        raise typer.Exit(code=1)
    typer.echo("Content validated successfully.")

@app.command("goal")
def validate_goal(expr: str = typer.Argument(..., help='e.g. "dpr * 2 + extra_attack * 15"')):
    errs = check_goal_expression(expr)
    for e in errs:
        typer.echo(f"[ERROR] {e}", err=True)
    if errs:
        raise typer.Exit(code=1)
    typer.echo("Goal expression is valid.")

@app.command("export-schemas")
def export_schemas_cmd(out: Path = typer.Option(Path("docs/schemas"), "--out")):
    from dprlab.tools.export_schemas import export_schemas
    export_schemas(out)
    typer.echo(f"Exported schemas to {out}")

if __name__ == "__main__":
    app()
