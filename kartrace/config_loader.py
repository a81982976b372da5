# kartrace/config_loader.py
from __future__ import annotations
"""
Configuration loader for the kart race tracker.

Single source of truth:
    config/config.yaml

Design notes
------------
- If the file is missing or broken, we raise a friendly RuntimeError that
  prints absolute paths for quick fixes.
- Unknown keys are fine; we pass the full dict through untouched.
- Helpers return {} or sensible defaults when sections are absent.
- Paths are absolute (resolved against the repo root) unless already absolute.
- The race engine never reads this module; callers pass values in.

Public API
----------
- CONFIG: dict                              # contents of config/config.yaml ({} if absent)
- load_config(path: str|Path|None = None)   # explicit (re)load, also updates CONFIG
- get_race_cfg() -> RaceConfig
- get_feed_cfg() -> dict
- get_osc_cfg() -> dict
- get_log_level(default: str = "INFO") -> str
- get_server_bind() -> tuple[str, int]
"""

import os
from pathlib import Path
from typing import Any, Dict, Tuple

import yaml

from .race_engine import RaceConfig

# ---------- Files & roots ----------
PROJECT_ROOT = Path(__file__).resolve().parents[1]
CONFIG_DIR   = PROJECT_ROOT / "config"
DEFAULT_CFG  = CONFIG_DIR / "config.yaml"

DEFAULT_TOTAL_LAPS = 4
DEFAULT_MAX_KARTS  = 5
DEFAULT_FEED_PATH  = "karttimes.csv"


# ---------- I/O helpers ----------
def _load_yaml(path: Path) -> Dict[str, Any]:
    """Load a YAML mapping from `path`. Human-friendly errors, strict root type."""
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise RuntimeError(
            f"Missing configuration file: {path}\n"
            f"Expected a YAML mapping with a 'race:' section.\n"
            f"Repo root: {PROJECT_ROOT}"
        )
    except OSError as ex:
        raise RuntimeError(f"Failed to read {path}: {type(ex).__name__}: {ex}")

    try:
        data = yaml.safe_load(text) or {}
    except yaml.YAMLError as ex:
        raise RuntimeError(f"Failed to parse YAML {path}: {type(ex).__name__}: {ex}")

    if not isinstance(data, dict):
        raise RuntimeError(f"Root of {path} must be a mapping/object, not {type(data).__name__}")
    return data


def resolve_path(p: str | os.PathLike[str]) -> Path:
    """Return absolute path; resolve relative to repo root."""
    pth = Path(p)
    return pth if pth.is_absolute() else (PROJECT_ROOT / pth).resolve()


# ---------- Loader ----------
def load_config(path: str | os.PathLike[str] | None = None) -> Dict[str, Any]:
    """
    Load a single YAML file (default: config/config.yaml), validate the
    race section's types and return the raw dict. The module-level CONFIG
    is replaced so the accessors below read the same data.
    """
    global CONFIG
    cfg_path = resolve_path(path) if path else DEFAULT_CFG
    cfg = _load_yaml(cfg_path)

    race = cfg.get("race") or {}
    if not isinstance(race, dict):
        raise RuntimeError(f"'race' in {cfg_path} must be a mapping, not {type(race).__name__}")
    for key in ("total_laps", "max_kart_count"):
        val = race.get(key)
        if val is not None and (isinstance(val, bool) or not isinstance(val, int)):
            raise RuntimeError(f"race.{key} in {cfg_path} must be an integer, got {val!r}")

    CONFIG = cfg
    return cfg


# Eagerly load once when the repo ships a config file
CONFIG: Dict[str, Any] = load_config() if DEFAULT_CFG.exists() else {}


# ---------- Accessors ----------
def get_race_cfg() -> RaceConfig:
    """Return lap count / kart cap with the operator defaults (4 laps, 5 karts)."""
    race = CONFIG.get("race", {}) or {}
    return RaceConfig(
        total_laps=int(race.get("total_laps", DEFAULT_TOTAL_LAPS)),
        max_kart_count=int(race.get("max_kart_count", DEFAULT_MAX_KARTS)),
    )


def get_feed_cfg() -> Dict[str, Any]:
    """Return feed block with `path` resolved and `skip_header`/`strict` filled in."""
    feed = dict(CONFIG.get("feed", {}) or {})
    feed["path"] = resolve_path(feed.get("path") or DEFAULT_FEED_PATH)
    feed.setdefault("skip_header", True)
    feed.setdefault("strict", False)
    return feed


def get_osc_cfg() -> Dict[str, Any]:
    """Return integrations.osc_out block or {} (disabled)."""
    return ((CONFIG.get("integrations", {}) or {}).get("osc_out", {}) or {})


def get_log_level(default: str = "INFO") -> str:
    lvl = (CONFIG.get("log", {}) or {}).get("level", default)
    # normalize common variants
    return str(lvl).upper()


def get_server_bind() -> Tuple[str, int]:
    """Return (host, port) for the results API; defaults to 127.0.0.1:8000."""
    server = (CONFIG.get("server", {}) or {})
    host = server.get("host")
    port = server.get("port")
    if isinstance(host, str) and isinstance(port, int):
        return host, port
    return "127.0.0.1", 8000
# ---------- End of config_loader.py ----------
