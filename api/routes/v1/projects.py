"""
api/routes/v1/projects.py -- Project, task, and team routes for the UpTrack REST API.

Routes:
  POST   /projects                                   -- create (caller becomes manager)
  GET    /projects                                   -- projects the caller manages or belongs to
  GET    /projects/{project_id}                      -- detail incl. tasks         [read_project]
  PUT    /projects/{project_id}                      -- edit name/client/desc      [update_project]
  DELETE /projects/{project_id}                      -- delete with tasks          [delete_project]
  POST   /projects/{project_id}/tasks                -- create task                [create_task]
  GET    /projects/{project_id}/tasks                -- list tasks                 [read_task]
  GET    /projects/{project_id}/tasks/{task_id}      -- task detail                [read_task]
  PUT    /projects/{project_id}/tasks/{task_id}      -- edit task                  [update_task]
  DELETE /projects/{project_id}/tasks/{task_id}      -- delete task                [delete_task]
  POST   /projects/{project_id}/tasks/{task_id}/status -- set status               [update_task_status]
  POST   /projects/{project_id}/tasks/{task_id}/notes  -- comment on a task      [create_note]
  GET    /projects/{project_id}/tasks/{task_id}/notes  -- list notes             [read_task]
  DELETE /projects/{project_id}/tasks/{task_id}/notes/{note_id} -- delete own note [delete_note]
  POST   /projects/{project_id}/team/find            -- look up user by email      [manage_team]
  GET    /projects/{project_id}/team                 -- list team                  [read_project]
  POST   /projects/{project_id}/team                 -- add member by id           [manage_team]
  DELETE /projects/{project_id}/team/{user_id}       -- remove member              [manage_team]

Access control:
  Every project-scoped route resolves the project through project_for(action),
  which applies projects.guard.authorize(). A caller who is neither manager nor
  team member gets exactly the same 404 as for a project that does not exist,
  so project IDs cannot be enumerated. A team member attempting a manager-only
  action gets 403.
"""

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from api.models import (
    CreatedResponse,
    EmailRequest,
    MessageResponse,
    NoteCreate,
    NoteResponse,
    ProjectCreate,
    ProjectResponse,
    TaskCreate,
    TaskResponse,
    TaskStatusUpdate,
    TeamMemberAdd,
    UserResponse,
)
from auth.dependencies import get_current_user
from auth.models import AuthContext
from auth.store import AccountStore
from projects.guard import Action, authorize, is_member, is_note_author
from projects.models import Note, Project, Task
from projects.store import ProjectStore

# All project routes require authentication.
router = APIRouter(dependencies=[Depends(get_current_user)])


def _store(request: Request) -> ProjectStore:
    return request.app.state.project_store


def _not_found(message: str) -> HTTPException:
    return HTTPException(status_code=404, detail={"code": "not_found", "message": message})


def project_for(action: Action):
    """Dependency factory: load the path's project and require `action` on it."""

    def _dependency(
        request: Request,
        project_id: int,
        ctx: AuthContext = Depends(get_current_user),
    ) -> Project:
        project = _store(request).get_project(project_id)
        if project is None or not is_member(ctx.user_id, project):
            raise _not_found("Project not found.")
        if not authorize(ctx.user_id, project, action):
            raise HTTPException(
                status_code=403,
                detail={"code": "forbidden", "message": "Only the project manager can do that."},
            )
        return project

    return _dependency


def _load_task(request: Request, project: Project, task_id: int) -> Task:
    task = _store(request).get_task(project.id, task_id)
    if task is None:
        raise _not_found("Task not found.")
    return task


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------


@router.post("/projects", response_model=CreatedResponse, status_code=201)
def create_project(
    request: Request,
    body: ProjectCreate,
    ctx: AuthContext = Depends(get_current_user),
) -> CreatedResponse:
    project_id = _store(request).create_project(
        Project(
            project_name=body.project_name,
            client_name=body.client_name,
            description=body.description,
            manager_id=ctx.user_id,
        )
    )
    return CreatedResponse(id=project_id, message="Project created.")


@router.get("/projects", response_model=list[ProjectResponse])
def list_projects(request: Request, ctx: AuthContext = Depends(get_current_user)) -> list[ProjectResponse]:
    projects = _store(request).list_projects_for_user(ctx.user_id)
    return [ProjectResponse.from_project(p) for p in projects]


@router.get("/projects/{project_id}", response_model=ProjectResponse)
def get_project(
    request: Request,
    project: Project = Depends(project_for(Action.READ_PROJECT)),
) -> ProjectResponse:
    tasks = _store(request).list_tasks(project.id)
    return ProjectResponse.from_project(project, tasks)


@router.put("/projects/{project_id}", response_model=MessageResponse)
def update_project(
    request: Request,
    body: ProjectCreate,
    project: Project = Depends(project_for(Action.UPDATE_PROJECT)),
) -> MessageResponse:
    _store(request).update_project(
        project.id,
        project_name=body.project_name,
        client_name=body.client_name,
        description=body.description,
    )
    return MessageResponse(message="Project updated.")


@router.delete("/projects/{project_id}", response_model=MessageResponse)
def delete_project(
    request: Request,
    project: Project = Depends(project_for(Action.DELETE_PROJECT)),
) -> MessageResponse:
    _store(request).delete_project(project.id)
    return MessageResponse(message="Project deleted.")


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


@router.post("/projects/{project_id}/tasks", response_model=CreatedResponse, status_code=201)
def create_task(
    request: Request,
    body: TaskCreate,
    project: Project = Depends(project_for(Action.CREATE_TASK)),
) -> CreatedResponse:
    task_id = _store(request).create_task(Task(project_id=project.id, name=body.name, description=body.description))
    return CreatedResponse(id=task_id, message="Task created.")


@router.get("/projects/{project_id}/tasks", response_model=list[TaskResponse])
def list_tasks(
    request: Request,
    project: Project = Depends(project_for(Action.READ_TASK)),
) -> list[TaskResponse]:
    return [TaskResponse.from_task(t) for t in _store(request).list_tasks(project.id)]


@router.get("/projects/{project_id}/tasks/{task_id}", response_model=TaskResponse)
def get_task(
    request: Request,
    task_id: int,
    project: Project = Depends(project_for(Action.READ_TASK)),
) -> TaskResponse:
    return TaskResponse.from_task(_load_task(request, project, task_id))


@router.put("/projects/{project_id}/tasks/{task_id}", response_model=MessageResponse)
def update_task(
    request: Request,
    task_id: int,
    body: TaskCreate,
    project: Project = Depends(project_for(Action.UPDATE_TASK)),
) -> MessageResponse:
    task = _load_task(request, project, task_id)
    _store(request).update_task(project.id, task.id, name=body.name, description=body.description)
    return MessageResponse(message="Task updated.")


@router.delete("/projects/{project_id}/tasks/{task_id}", response_model=MessageResponse)
def delete_task(
    request: Request,
    task_id: int,
    project: Project = Depends(project_for(Action.DELETE_TASK)),
) -> MessageResponse:
    task = _load_task(request, project, task_id)
    _store(request).delete_task(project.id, task.id)
    return MessageResponse(message="Task deleted.")


@router.post("/projects/{project_id}/tasks/{task_id}/status", response_model=MessageResponse)
def update_task_status(
    request: Request,
    task_id: int,
    body: TaskStatusUpdate,
    project: Project = Depends(project_for(Action.UPDATE_TASK_STATUS)),
) -> MessageResponse:
    task = _load_task(request, project, task_id)
    _store(request).update_task(project.id, task.id, status=body.status.value)
    return MessageResponse(message="Task status updated.")


# ---------------------------------------------------------------------------
# Notes
# ---------------------------------------------------------------------------


@router.post("/projects/{project_id}/tasks/{task_id}/notes", response_model=CreatedResponse, status_code=201)
def create_note(
    request: Request,
    task_id: int,
    body: NoteCreate,
    project: Project = Depends(project_for(Action.CREATE_NOTE)),
    ctx: AuthContext = Depends(get_current_user),
) -> CreatedResponse:
    task = _load_task(request, project, task_id)
    note_id = _store(request).create_note(Note(task_id=task.id, content=body.content, created_by=ctx.user_id))
    return CreatedResponse(id=note_id, message="Note created.")


@router.get("/projects/{project_id}/tasks/{task_id}/notes", response_model=list[NoteResponse])
def list_notes(
    request: Request,
    task_id: int,
    project: Project = Depends(project_for(Action.READ_TASK)),
) -> list[NoteResponse]:
    task = _load_task(request, project, task_id)
    return [NoteResponse.from_note(n) for n in _store(request).list_notes(task.id)]


@router.delete("/projects/{project_id}/tasks/{task_id}/notes/{note_id}", response_model=MessageResponse)
def delete_note(
    request: Request,
    task_id: int,
    note_id: int,
    project: Project = Depends(project_for(Action.DELETE_NOTE)),
    ctx: AuthContext = Depends(get_current_user),
) -> MessageResponse:
    """Delete a note. Only its author may, the project manager included."""
    task = _load_task(request, project, task_id)
    note = _store(request).get_note(task.id, note_id)
    if note is None:
        raise _not_found("Note not found.")
    if not is_note_author(ctx.user_id, note):
        raise HTTPException(
            status_code=403,
            detail={"code": "forbidden", "message": "Only the author can delete a note."},
        )
    _store(request).delete_note(task.id, note.id)
    return MessageResponse(message="Note deleted.")


# ---------------------------------------------------------------------------
# Team
# ---------------------------------------------------------------------------


@router.post("/projects/{project_id}/team/find", response_model=UserResponse)
def find_member_by_email(
    request: Request,
    body: EmailRequest,
    project: Project = Depends(project_for(Action.MANAGE_TEAM)),
) -> UserResponse:
    account_store: AccountStore = request.app.state.account_store
    user = account_store.get_by_email(body.email)
    if user is None:
        raise _not_found("User not found.")
    return UserResponse.from_user(user)


@router.get("/projects/{project_id}/team", response_model=list[UserResponse])
def get_project_team(
    request: Request,
    project: Project = Depends(project_for(Action.READ_PROJECT)),
) -> list[UserResponse]:
    account_store: AccountStore = request.app.state.account_store
    members = []
    for user_id in _store(request).list_members(project.id):
        user = account_store.get_by_id(user_id)
        if user is not None:
            members.append(UserResponse.from_user(user))
    return members


@router.post("/projects/{project_id}/team", response_model=MessageResponse)
def add_member(
    request: Request,
    body: TeamMemberAdd,
    project: Project = Depends(project_for(Action.MANAGE_TEAM)),
) -> MessageResponse:
    account_store: AccountStore = request.app.state.account_store
    if account_store.get_by_id(body.id) is None:
        raise _not_found("User not found.")
    if body.id == project.manager_id or not _store(request).add_member(project.id, body.id):
        raise HTTPException(
            status_code=409,
            detail={"code": "conflict", "message": "User is already part of this project."},
        )
    return MessageResponse(message="Member added.")


@router.delete("/projects/{project_id}/team/{user_id}", status_code=204)
def remove_member(
    request: Request,
    user_id: int,
    project: Project = Depends(project_for(Action.MANAGE_TEAM)),
) -> Response:
    if not _store(request).remove_member(project.id, user_id):
        raise _not_found("User is not part of this project.")
    return Response(status_code=204)
