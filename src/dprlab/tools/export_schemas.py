from __future__ import annotations
from pathlib import Path
import json
from dprlab.engine.models import Build, Weapon, ClassDefinition, FeatDefinition, BuffDefinition
from dprlab.engine.optimizer import OptimizationConfig
from dprlab.engine.schema_models import ModifierAdapter

def export_schemas(out_dir: Path) -> None:
    out_dir.mkdir(parents=True, exist_ok=True)
    schemas = {
        "Build.schema.json": Build.model_json_schema(),
        "Weapon.schema.json": Weapon.model_json_schema(),
        "ClassDefinition.schema.json": ClassDefinition.model_json_schema(),
        "FeatDefinition.schema.json": FeatDefinition.model_json_schema(),
        "BuffDefinition.schema.json": BuffDefinition.model_json_schema(),
        "OptimizationConfig.schema.json": OptimizationConfig.model_json_schema(),
        "Modifier.schema.json": ModifierAdapter.json_schema(),
    }
    for name, schema in schemas.items():
        (out_dir / name).write_text(json.dumps(schema, indent=2), encoding="utf-8")

if __name__ == "__main__":
    root = Path(__file__).resolve().parents[3] / "docs" / "schemas"
    export_schemas(root)
    print(f"Exported schemas to {root}")
