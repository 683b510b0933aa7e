# projects.py -- In-memory project records for the CRUD API
# Independent of the relay. Sync routes run in the threadpool, hence the lock.

from __future__ import annotations

import logging
import threading
import uuid

from pydantic import BaseModel, Field, ValidationError

log = logging.getLogger(__name__)

REQUIRED_MESSAGES = {
    "name": "Project name is required.",
    "description": "Project description is required.",
}


class ProjectInput(BaseModel):
    name: str = Field(min_length=1)
    description: str = Field(min_length=1)


class Project(ProjectInput):
    id: str


def field_errors(exc: ValidationError) -> dict[str, list[str]]:
    """Flatten a ValidationError into {field: [messages]}."""
    errors: dict[str, list[str]] = {}
    for err in exc.errors():
        field = str(err["loc"][0]) if err["loc"] else "project"
        if err["type"] in ("missing", "string_too_short") and field in REQUIRED_MESSAGES:
            msg = REQUIRED_MESSAGES[field]
        else:
            msg = err["msg"]
        errors.setdefault(field, []).append(msg)
    return errors


class ProjectStore:
    def __init__(self) -> None:
        self._projects: list[Project] = []
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._projects)

    def create(self, data: ProjectInput) -> Project:
        project = Project(id=str(uuid.uuid4()), **data.model_dump())
        with self._lock:
            self._projects.append(project)
        log.info("Project created: %s", project.model_dump_json())
        return project

    def list_all(self) -> list[Project]:
        with self._lock:
            return list(self._projects)

    def get(self, project_id: str) -> Project | None:
        with self._lock:
            for project in self._projects:
                if project.id == project_id:
                    return project
        return None
