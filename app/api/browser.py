"""Browser endpoints served from the local TestRail cache."""

from fastapi import APIRouter, Depends, Path

from app.core.dependencies import get_case_cache
from app.models.responses import BrowserCase, BrowserProject, BrowserSection, BrowserSuite

router = APIRouter(prefix="/api/browser", tags=["browser"])


def _clip(value, limit: int) -> str:
    return (value or "")[:limit]


@router.get("/projects", response_model=list[BrowserProject])
def browser_projects(cache=Depends(get_case_cache)):
    """Active projects, ordered by name."""
    projects = []
    for project in cache.list_projects():
        project_id = int(project.get("id") or 0)
        if project_id <= 0:
            continue
        projects.append(
            {
                "id": project_id,
                "name": _clip(project.get("name"), 255),
                "is_completed": 1 if project.get("is_completed") else 0,
                "suite_mode": int(project.get("suite_mode") or 1),
                "announcement": _clip(project.get("announcement"), 1000),
            }
        )
    return projects


@router.get("/suites/{project_id}", response_model=list[BrowserSuite])
def browser_suites(project_id: int = Path(..., gt=0), cache=Depends(get_case_cache)):
    """Active suites of a project, ordered by name."""
    return [
        {
            "id": int(suite["id"]),
            "project_id": int(suite.get("project_id") or 0),
            "name": _clip(suite.get("name"), 255),
            "description": _clip(suite.get("description"), 1000),
            "is_master": 1 if suite.get("is_master") else 0,
        }
        for suite in cache.list_suites(project_id)
    ]


@router.get("/sections/{suite_id}", response_model=list[BrowserSection])
def browser_sections(suite_id: int = Path(..., gt=0), cache=Depends(get_case_cache)):
    """Active sections of a suite, top-level first."""
    return cache.list_sections(suite_id)


@router.get("/cases/{suite_id}", response_model=list[BrowserCase])
def browser_cases(suite_id: int = Path(..., gt=0), cache=Depends(get_case_cache)):
    """Active cases of a suite whose section is active too."""
    return cache.list_cases(suite_id)
