from __future__ import annotations
from pathlib import Path
from pydantic import BaseModel, Field, model_validator
from typing import Optional

SETTINGS_PATH = Path.home() / ".dprlab" / "settings.json"

class Settings(BaseModel):
    ac_min: int = 10
    ac_max: int = 30
    ac_step: int = Field(1, ge=1)
    typical_ac: int = 15
    rounds: int = Field(3, ge=1)
    greedy_resource_use: bool = True
    auto_power_attack: bool = True
    beam_width: int = Field(5, ge=1)
    max_paths: int = Field(3, ge=1)
    lookahead_depth: int = Field(2, ge=0)
    log_level: str = "WARNING"
    content_dir: Optional[str] = None  # overrides the bundled SRD content

    @model_validator(mode="after")
    def _validate(self):
        if self.ac_min > self.ac_max:
            raise ValueError("ac_min must not exceed ac_max")
        return self

def load_settings(path: Path = SETTINGS_PATH) -> Settings:
    if path.exists():
        return Settings.model_validate_json(path.read_text(encoding="utf-8"))
    path.parent.mkdir(parents=True, exist_ok=True)
    s = Settings()
    path.write_text(s.model_dump_json(indent=2), encoding="utf-8")
    return s

def save_settings(s: Settings, path: Path = SETTINGS_PATH) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(s.model_dump_json(indent=2), encoding="utf-8")
