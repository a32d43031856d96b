import json
import pytest
from typer.testing import CliRunner
from dprlab import cli
from dprlab.engine.settings import Settings

runner = CliRunner()

@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch):
    monkeypatch.setattr(cli, "load_settings", lambda: Settings())

def _build_file(tmp_path, **extra):
    data = {
        "id": "gwm_fighter", "name": "GWM Fighter",
        "ability_scores": {"str": 16, "dex": 14, "con": 14},
        "main_hand_weapon": "greatsword",
        "level_timeline": [
            {"level": 1, "class_id": "fighter"},
            {"level": 2, "class_id": "fighter"},
            {"level": 3, "class_id": "fighter", "subclass_id": "champion"},
            {"level": 4, "class_id": "fighter", "asi_or_feat": "feat", "feat_id": "great_weapon_master"},
        ],
    }
    data.update(extra)
    path = tmp_path / "build.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return path

def test_goals_command():
    result = runner.invoke(cli.app, ["goals"])
    assert result.exit_code == 0
    assert "sustained_dpr" in result.output

def test_curves_command(tmp_path):
    result = runner.invoke(cli.app, ["curves", str(_build_file(tmp_path)), "--ac-min", "12", "--ac-max", "16"])
    assert result.exit_code == 0, result.output
    assert "DPR by AC" in result.output
    assert "Power attack" in result.output

def test_curves_with_trace(tmp_path):
    result = runner.invoke(cli.app, ["curves", str(_build_file(tmp_path)), "--ac-min", "15", "--ac-max", "15",
                                     "--trace"])
    assert result.exit_code == 0, result.output
    assert "resolved greatsword" in result.output

def test_optimize_command():
    result = runner.invoke(cli.app, ["optimize", "fighter=3", "rogue=2", "-v"])
    assert result.exit_code == 0, result.output
    assert "score=" in result.output

def test_optimize_rejects_bad_target():
    result = runner.invoke(cli.app, ["optimize", "fighter=15", "rogue=6"])
    assert result.exit_code == 1

def test_optimize_rejects_malformed_pair():
    result = runner.invoke(cli.app, ["optimize", "fighter"])
    assert result.exit_code != 0

def test_paths_single_strategy(tmp_path):
    result = runner.invoke(cli.app, ["paths", "--build", str(_build_file(tmp_path)), "--strategy", "greedy"])
    assert result.exit_code == 0, result.output
    assert "(greedy)" in result.output

def test_validate_subcommands():
    assert runner.invoke(cli.app, ["validate", "content"]).exit_code == 0
    assert runner.invoke(cli.app, ["validate", "goal", "dpr * 2"]).exit_code == 0
    assert runner.invoke(cli.app, ["validate", "goal", "dps * 2"]).exit_code == 1

def test_export_schemas(tmp_path):
    out = tmp_path / "schemas"
    result = runner.invoke(cli.app, ["validate", "export-schemas", "--out", str(out)])
    assert result.exit_code == 0, result.output
    assert (out / "Build.schema.json").exists()
