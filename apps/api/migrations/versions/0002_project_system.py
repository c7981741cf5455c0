"""game-system tag on registry rows

Revision ID: 0002_project_system
Revises: 0001_registry
Create Date: 2026-10-18
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

revision = "0002_project_system"
down_revision = "0001_registry"
branch_labels = None
depends_on = None


def _column_exists(conn, table: str, col: str) -> bool:
    rows = conn.execute(sa.text(f"PRAGMA table_info('{table}')")).fetchall()
    # (cid, name, type, notnull, dflt_value, pk)
    return any(r[1] == col for r in rows)


def upgrade() -> None:
    conn = op.get_bind()
    if not _column_exists(conn, "app_projects", "system"):
        op.execute("ALTER TABLE app_projects ADD COLUMN system TEXT NOT NULL DEFAULT 'generic';")


def downgrade() -> None:
    # SQLite drop-column is non-trivial; the column is additive and harmless
    pass
