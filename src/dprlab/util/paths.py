from __future__ import annotations
from pathlib import Path
import sys

def frozen_base_dir() -> Path:
    # When packaged with PyInstaller --onefile, data is unpacked to sys._MEIPASS
    if hasattr(sys, "_MEIPASS"):
        return Path(sys._MEIPASS) / "dprlab"  # type: ignore[attr-defined]
    # installed or dev mode: src/dprlab
    return Path(__file__).resolve().parent.parent

def content_dir() -> Path:
    # bundled SRD catalogs: src/dprlab/content/{weapons,classes,feats,buffs}
    return frozen_base_dir() / "content"
