"""project registry (app_projects)

Revision ID: 0001_registry
Revises:
Create Date: 2026-10-18
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

revision = "0001_registry"
down_revision = None
branch_labels = None
depends_on = None


def _table_exists(conn, name: str) -> bool:
    rows = conn.execute(sa.text("SELECT name FROM sqlite_master WHERE type='table' AND name=:n"), {"n": name}).fetchall()
    return len(rows) > 0


def upgrade() -> None:
    conn = op.get_bind()

    # registries created before alembic managed this file already have the table
    if not _table_exists(conn, "app_projects"):
        op.execute("""
        CREATE TABLE app_projects (
          id TEXT NOT NULL PRIMARY KEY,
          name TEXT NOT NULL,
          path TEXT NOT NULL,
          created_at TEXT NOT NULL
        );
        """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_app_projects_created ON app_projects (created_at);")


def downgrade() -> None:
    op.execute("DROP INDEX IF EXISTS idx_app_projects_created;")
    op.execute("DROP TABLE IF EXISTS app_projects;")
