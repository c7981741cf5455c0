from __future__ import annotations

from fastapi import APIRouter, Path, Query, Request

from app.core.http import request_id

from .schemas import ProjectCreateIn, ProjectOut, ProjectsListOut
from .service import create_project, delete_project, get_project, list_projects

router = APIRouter(tags=["projects"])


@router.get("/projects", response_model=ProjectsListOut)
def api_list_projects() -> ProjectsListOut:
    return ProjectsListOut(items=[ProjectOut(**p.model_dump()) for p in list_projects()])


@router.post("/projects", response_model=ProjectOut)
def api_create_project(request: Request, body: ProjectCreateIn) -> ProjectOut:
    p = create_project(body.name, root_path=body.root_path, system=body.system, request_id=request_id(request))
    return ProjectOut(**p.model_dump())


@router.get("/projects/{project_id}", response_model=ProjectOut)
def api_get_project(project_id: str = Path(...)) -> ProjectOut:
    return ProjectOut(**get_project(project_id).model_dump())


@router.delete("/projects/{project_id}")
def api_delete_project(
    request: Request,
    project_id: str = Path(...),
    delete_files: bool = Query(True),
) -> dict:
    delete_project(project_id, delete_files=delete_files, request_id=request_id(request))
    return {"id": project_id, "status": "deleted"}
