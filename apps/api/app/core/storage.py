"""
Local filesystem layout for campaign projects.

Defaults:
- PROJECTS_ROOT: ~/Documents/DnDCampaigns
- per project: assets/maps, notes, characters, db.sqlite, project.json
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict

DEFAULT_PROJECTS_DIRNAME = "DnDCampaigns"

MAPS_SUBDIR = "assets/maps"
NOTES_SUBDIR = "notes"
CHARACTERS_SUBDIR = "characters"
PROJECT_MARKER_FILE = "project.json"

PROJECT_SUBDIRS = (MAPS_SUBDIR, NOTES_SUBDIR, CHARACTERS_SUBDIR)


def get_projects_root() -> Path:
    raw = os.getenv("PROJECTS_ROOT")
    if not raw:
        return Path.home() / "Documents" / DEFAULT_PROJECTS_DIRNAME
    p = Path(raw).expanduser()
    return p if p.is_absolute() else p.resolve()


def ensure_projects_root() -> Path:
    root = get_projects_root()
    root.mkdir(parents=True, exist_ok=True)
    return root


def ensure_project_layout(project_dir: Path) -> None:
    project_dir.mkdir(parents=True, exist_ok=True)
    for sub in PROJECT_SUBDIRS:
        (project_dir / sub).mkdir(parents=True, exist_ok=True)


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def max_map_bytes() -> int:
    return _int_env("MAX_MAP_BYTES", 40 * 1024 * 1024)


def max_photo_bytes() -> int:
    return _int_env("MAX_PHOTO_BYTES", 10 * 1024 * 1024)


def note_max_bytes() -> int:
    return _int_env("NOTE_MAX_BYTES", 300 * 1024)


def storage_health() -> Dict[str, Any]:
    try:
        root = ensure_projects_root()
        probe = root / ".probe_write"
        probe.write_text("ok", encoding="utf-8")
        try:
            probe.unlink()
        except OSError:
            pass
        return {"status": "ok", "kind": "local_fs", "root": str(root.as_posix())}
    except Exception as e:
        return {"status": "error", "kind": "local_fs", "root": str(get_projects_root().as_posix()), "error": str(e)}
