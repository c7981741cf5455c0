from __future__ import annotations

import json
import shutil
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional, Tuple

from sqlalchemy import literal_column
from sqlmodel import select

from app.core.db import registry_session
from app.core.errors import StorageFailure, ValidationFailed, not_found
from app.core.files import write_atomic_text
from app.core.ids import new_ulid
from app.core.observability import emit, now_iso
from app.core.project_store import project_store
from app.core.storage import PROJECT_MARKER_FILE, ensure_project_layout, ensure_projects_root
from app.modules.assets.service import slugify

from .models import Project

GAME_SYSTEMS = ("generic", "dnd5e", "vtm", "cyberpunk", "wh40k_rt")


def list_projects() -> List[Project]:
    # registry insertion order; EntityLocator scans in this order
    with registry_session() as s:
        stmt = select(Project).order_by(Project.created_at, literal_column("rowid"))
        return list(s.exec(stmt).all())


def get_project(project_id: str) -> Project:
    with registry_session() as s:
        p = s.get(Project, project_id)
    if p is None:
        raise not_found("project")
    return p


@contextmanager
def open_project(project_id: str) -> Iterator[Tuple[Project, sqlite3.Connection]]:
    project = get_project(project_id)
    with project_store(project.path) as conn:
        yield project, conn


def _free_project_dir(root: Path, base: str) -> Path:
    candidate = root / base
    if not candidate.exists():
        return candidate
    i = 2
    while (root / f"{base}-{i}").exists():
        i += 1
    return root / f"{base}-{i}"


def create_project(
    name: str,
    root_path: Optional[str] = None,
    system: str = "generic",
    request_id: Optional[str] = None,
) -> Project:
    name = (name or "").strip()
    if not name:
        raise ValidationFailed("name is required", fields=["name"])
    if system not in GAME_SYSTEMS:
        raise ValidationFailed(f"unknown game system: {system}", fields=["system"])

    if root_path:
        root = Path(root_path)
        if not root.is_absolute():
            raise ValidationFailed("root_path must be absolute", code="ROOT_NOT_ABSOLUTE", fields=["root_path"])
    else:
        root = ensure_projects_root()

    project_id = new_ulid()
    created_at = now_iso()

    try:
        root.mkdir(parents=True, exist_ok=True)
        project_dir = _free_project_dir(root, slugify(name, fallback="project")).resolve()
        ensure_project_layout(project_dir)
        write_atomic_text(
            project_dir / PROJECT_MARKER_FILE,
            json.dumps({"id": project_id, "name": name, "system": system, "created_at": created_at}, ensure_ascii=False, indent=2),
        )
    except OSError as e:
        raise StorageFailure("cannot create project directory", details={"type": type(e).__name__}) from e

    # creates db.sqlite with the current schema
    with project_store(project_dir):
        pass

    project = Project(id=project_id, name=name, path=str(project_dir), system=system, created_at=created_at)
    with registry_session() as s:
        s.add(project)
        s.commit()
        s.refresh(project)

    emit("info", "project.create", f"project {name!r} at {project_dir}", request_id, __name__, project_id=project_id)
    return project


def delete_project(project_id: str, delete_files: bool = True, request_id: Optional[str] = None) -> None:
    project = get_project(project_id)
    project_dir = Path(project.path or "")

    if not project.path or not project_dir.is_absolute() or len(project.path.strip()) < 3:
        raise StorageFailure("refusing to delete: invalid project path", code="BAD_PROJECT_PATH")

    # check the folder before touching the registry so a suspicious folder stays listed
    if delete_files and not (project_dir / PROJECT_MARKER_FILE).is_file():
        raise ValidationFailed(
            "refusing to delete: project.json not found in project folder",
            code="PROJECT_MARKER_NOT_FOUND",
        )

    with registry_session() as s:
        row = s.get(Project, project_id)
        if row is not None:
            s.delete(row)
            s.commit()

    removed_files = False
    if delete_files:
        try:
            shutil.rmtree(project_dir)
            removed_files = True
        except OSError as e:
            emit(
                "warning",
                "asset.cleanup_failed",
                f"could not remove project folder {project_dir}",
                request_id,
                __name__,
                error=type(e).__name__,
            )

    emit(
        "info",
        "project.delete",
        f"project {project.name!r} removed",
        request_id,
        __name__,
        project_id=project_id,
        removed_files=removed_files,
    )
