from __future__ import annotations

from sqlmodel import SQLModel, Field


# schema owned by migrations/versions (0001_registry, 0002_project_system)
class Project(SQLModel, table=True):
    __tablename__ = "app_projects"

    id: str = Field(primary_key=True)
    name: str
    path: str  # absolute project root
    system: str = Field(default="generic")  # generic|dnd5e|vtm|cyberpunk|wh40k_rt

    created_at: str
