from __future__ import annotations
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple
import json
import logging
import yaml
from pydantic import TypeAdapter

from .models import Weapon, ClassDefinition, FeatDefinition, BuffDefinition
from ..util.paths import content_dir

log = logging.getLogger(__name__)

WeaponAdapter = TypeAdapter(Weapon)
ClassAdapter = TypeAdapter(ClassDefinition)
FeatAdapter = TypeAdapter(FeatDefinition)
BuffAdapter = TypeAdapter(BuffDefinition)

def load_file(path: Path) -> Any:
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() in [".yaml", ".yml"]:
        return yaml.safe_load(text) or {}
    return json.loads(text)

def iter_files(root: Path, exts: Tuple[str, ...] = (".json", ".yaml", ".yml")) -> Iterable[Path]:
    if not root.exists():
        return []
    return sorted(p for p in root.rglob("*") if p.is_file() and p.suffix.lower() in exts)

def records(data: Any) -> List[dict]:
    # a file holds either one definition or a list of them
    if isinstance(data, list):
        return data
    return [data] if data else []

def _load_kind(root: Path, adapter: TypeAdapter, label: str) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for fp in iter_files(root):
        for data in records(load_file(fp)):
            obj = adapter.validate_python(data)
            if obj.id in out:
                raise RuntimeError(f"Duplicate {label} id {obj.id} in {fp}")
            out[obj.id] = obj
    return out

@dataclass
class ContentIndex:
    weapons: Dict[str, Weapon]
    classes: Dict[str, ClassDefinition]
    feats: Dict[str, FeatDefinition]
    buffs: Dict[str, BuffDefinition]

    # lookups return None for unknown ids; callers decide on a fallback
    def get_weapon(self, wid: str) -> Optional[Weapon]:
        return self.weapons.get(wid)

    def get_class(self, cid: str) -> Optional[ClassDefinition]:
        return self.classes.get(cid)

    def get_feat(self, fid: str) -> Optional[FeatDefinition]:
        return self.feats.get(fid)

    def get_buff(self, bid: str) -> Optional[BuffDefinition]:
        return self.buffs.get(bid)

def load_content(base_dir: Path) -> ContentIndex:
    idx = ContentIndex(
        weapons=_load_kind(base_dir / "weapons", WeaponAdapter, "weapon"),
        classes=_load_kind(base_dir / "classes", ClassAdapter, "class"),
        feats=_load_kind(base_dir / "feats", FeatAdapter, "feat"),
        buffs=_load_kind(base_dir / "buffs", BuffAdapter, "buff"),
    )
    log.debug("loaded %d weapons, %d classes, %d feats, %d buffs from %s",
              len(idx.weapons), len(idx.classes), len(idx.feats), len(idx.buffs), base_dir)
    return idx

@lru_cache(maxsize=1)
def default_content() -> ContentIndex:
    return load_content(content_dir())
