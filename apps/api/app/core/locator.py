"""
Resolve a bare entity id to the project store that owns it.

There is no id -> project index: ScanningLocator opens every registered
project in registry order and returns the first store holding the row. The
cost is O(projects) per lookup; callers only use the EntityLocator interface
so an indexed implementation can replace the scan later.
"""
from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

from app.core.errors import NotFoundError, StorageFailure
from app.core.observability import emit
from app.core.project_store import ENTITY_TABLES, open_project_store

_log = logging.getLogger(__name__)

# table -> error entity name
_ENTITY_NAMES: Dict[str, str] = {
    "maps": "map",
    "markers": "marker",
    "notes": "note",
    "characters": "character",
    "relationships": "relationship",
}


class OwnedEntity:
    """A located row together with its (still open) project store."""

    def __init__(self, project: Any, conn: sqlite3.Connection, row: sqlite3.Row):
        self.project = project
        self.conn = conn
        self.row = row

    @property
    def root(self) -> Path:
        return Path(self.project.path)

    def close(self) -> None:
        self.conn.close()


class EntityLocator:
    def find_owner(self, entity_id: str, table: str) -> OwnedEntity:
        raise NotImplementedError


class ScanningLocator(EntityLocator):
    def find_owner(self, entity_id: str, table: str) -> OwnedEntity:
        if table not in ENTITY_TABLES:
            raise ValueError(f"unknown entity table: {table!r}")

        from app.modules.projects.service import list_projects

        for project in list_projects():
            if not Path(project.path).is_dir():
                emit("warning", "locator.skip", f"project folder missing: {project.path}", None, __name__, project_id=project.id)
                continue
            try:
                conn = open_project_store(project.path)
            except StorageFailure as e:
                emit("warning", "locator.skip", e.message, None, __name__, project_id=project.id)
                continue

            try:
                row = conn.execute(f"SELECT * FROM {table} WHERE id=? LIMIT 1;", (entity_id,)).fetchone()
            except sqlite3.Error as e:
                conn.close()
                raise StorageFailure("project store lookup failed", details={"type": type(e).__name__}) from e
            if row is not None:
                _log.debug("%s %s found in project %s", table, entity_id, project.id)
                return OwnedEntity(project, conn, row)
            conn.close()

        entity = _ENTITY_NAMES[table]
        raise NotFoundError(f"{entity.capitalize()} not found", code=f"{entity.upper()}_NOT_FOUND", details={"id": entity_id})


_locator: Optional[EntityLocator] = None


def get_locator() -> EntityLocator:
    global _locator
    if _locator is None:
        _locator = ScanningLocator()
    return _locator


def set_locator(locator: Optional[EntityLocator]) -> None:
    global _locator
    _locator = locator


@contextmanager
def locate(entity_id: str, table: str) -> Iterator[OwnedEntity]:
    owned = get_locator().find_owner(entity_id, table)
    try:
        yield owned
    except sqlite3.Error as e:
        raise StorageFailure("project store operation failed", details={"type": type(e).__name__, "error": str(e)}) from e
    finally:
        owned.close()
