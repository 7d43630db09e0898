# src/musicxml2events/config.py
from __future__ import annotations
from pathlib import Path
from typing import Any, Dict, Optional
import copy
import logging
import yaml

from .dom import Time

logger = logging.getLogger(__name__)

# Paket-Root: .../src/musicxml2events
PKG_ROOT = Path(__file__).resolve().parent
DEFAULT_CFG_PATH = PKG_ROOT / "config.default.yaml"
USER_CFG_PATH = Path.home() / ".config" / "musicxml2events" / "config.yaml"

BACKUP_POLICIES = ("clamp", "allow")

FALLBACKS: Dict[str, Any] = {
    "default_divisions": 1,
    "default_tempo": 60.0,
    "default_time": {"beats": 4, "beat_type": 4},
    "backup_policy": "clamp",
    "metronome_as_tempo": True,
    "log_level": "WARNING",
}

def _read_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        # kaputte Datei → Defaults statt Abbruch
        logger.warning("ignoring unreadable config %s: %s", path, exc)
        return {}
    if not isinstance(data, dict):
        logger.warning("ignoring config %s: top level is not a mapping", path)
        return {}
    return data

def _overlay(base: Dict[str, Any], top: Dict[str, Any]) -> Dict[str, Any]:
    """Nested dicts are merged key by key; everything else in `top` wins."""
    merged = copy.deepcopy(base)
    for key, value in top.items():
        below = merged.get(key)
        merged[key] = _overlay(below, value) if isinstance(below, dict) and isinstance(value, dict) else copy.deepcopy(value)
    return merged

def load_config(
    user_path: Optional[Path] = None,
    default_path: Optional[Path] = None,
) -> Dict[str, Any]:
    """
    Layers built-in fallbacks, the packaged YAML defaults and the user file,
    then normalizes the timing keys so callers get usable values:
    positive divisions/tempo, a complete time signature and a known
    backup policy.
    """
    cfg = FALLBACKS
    for path in (Path(default_path) if default_path else DEFAULT_CFG_PATH,
                 Path(user_path) if user_path else USER_CFG_PATH):
        cfg = _overlay(cfg, _read_yaml(path))

    ts = get_default_time(cfg)
    cfg["default_divisions"] = get_default_divisions(cfg)
    cfg["default_tempo"] = get_default_tempo(cfg)
    cfg["default_time"] = {"beats": ts.beats, "beat_type": ts.beat_type}
    cfg["backup_policy"] = get_backup_policy(cfg)
    return cfg

def get_default_divisions(cfg: Dict[str, Any]) -> int:
    try:
        dv = int(cfg.get("default_divisions", 1))
    except (TypeError, ValueError):
        return 1
    return dv if dv > 0 else 1

def get_default_tempo(cfg: Dict[str, Any]) -> float:
    try:
        bpm = float(cfg.get("default_tempo", 60.0))
    except (TypeError, ValueError):
        return 60.0
    return bpm if bpm > 0 else 60.0

def get_default_time(cfg: Dict[str, Any]) -> Time:
    ts = cfg.get("default_time") or {}
    try:
        return Time(int(ts.get("beats", 4)), int(ts.get("beat_type", 4)))
    except (AttributeError, TypeError, ValueError):
        return Time(4, 4)

def get_backup_policy(cfg: Dict[str, Any]) -> str:
    policy = str(cfg.get("backup_policy", "clamp")).lower()
    if policy not in BACKUP_POLICIES:
        logger.warning("unknown backup_policy %r, using 'clamp'", policy)
        return "clamp"
    return policy
