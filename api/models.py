"""
API request and response models for UpTrack REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
projects/models.py, which own the internal domain representation. Route
handlers map between the two.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from auth.models import User
from auth.tokens import PASSWORD_MAX_BYTES
from projects.models import Note, Project, Task

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

_PASSWORD_MIN = 8


def _fits_bcrypt(value: str) -> str:
    """Reject passwords bcrypt would silently cut short (limit is in UTF-8 bytes)."""
    if len(value.encode("utf-8")) > PASSWORD_MAX_BYTES:
        raise ValueError(f"Password must be at most {PASSWORD_MAX_BYTES} bytes.")
    return value


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class TaskStatusEnum(str, Enum):
    pending = "pending"
    on_hold = "on_hold"
    in_progress = "in_progress"
    under_review = "under_review"
    completed = "completed"


# ---------------------------------------------------------------------------
# Auth -- request models
# ---------------------------------------------------------------------------


class _EmailBody(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(min_length=3, max_length=255, pattern=EMAIL_PATTERN)

    @field_validator("email", mode="after")
    @classmethod
    def lower_email(cls, value: str) -> str:
        return value.lower()


class RegisterRequest(_EmailBody):
    """Request body for POST /api/v1/auth/register."""

    name: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=_PASSWORD_MIN)
    password_confirmation: str

    @field_validator("password", mode="after")
    @classmethod
    def password_fits_bcrypt(cls, value: str) -> str:
        return _fits_bcrypt(value)

    @field_validator("password_confirmation", mode="after")
    @classmethod
    def passwords_match(cls, value: str, info) -> str:
        if value != info.data.get("password"):
            raise ValueError("Passwords do not match.")
        return value


class LoginRequest(_EmailBody):
    password: str = Field(min_length=1)

    @field_validator("password", mode="after")
    @classmethod
    def password_fits_bcrypt(cls, value: str) -> str:
        return _fits_bcrypt(value)


class EmailRequest(_EmailBody):
    """Body for request-code and forgot-password."""


class TokenRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    token: str = Field(min_length=1, max_length=128)


class NewPasswordRequest(BaseModel):
    password: str = Field(min_length=_PASSWORD_MIN)
    password_confirmation: str

    @field_validator("password", mode="after")
    @classmethod
    def password_fits_bcrypt(cls, value: str) -> str:
        return _fits_bcrypt(value)

    @field_validator("password_confirmation", mode="after")
    @classmethod
    def passwords_match(cls, value: str, info) -> str:
        if value != info.data.get("password"):
            raise ValueError("Passwords do not match.")
        return value


class ChangePasswordRequest(NewPasswordRequest):
    current_password: str = Field(min_length=1)

    @field_validator("current_password", mode="after")
    @classmethod
    def current_password_fits_bcrypt(cls, value: str) -> str:
        return _fits_bcrypt(value)


class CheckPasswordRequest(BaseModel):
    password: str = Field(min_length=1)

    @field_validator("password", mode="after")
    @classmethod
    def password_fits_bcrypt(cls, value: str) -> str:
        return _fits_bcrypt(value)


class ProfileUpdate(_EmailBody):
    name: str = Field(min_length=1, max_length=255)


# ---------------------------------------------------------------------------
# Auth -- response models
# ---------------------------------------------------------------------------


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class LoginResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    access_token: str
    token_type: str = "bearer"
    expires_in: int


class UserResponse(BaseModel):
    """Public view of an identity. Never includes the password hash."""

    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    name: str

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(id=user.id, email=user.email, name=user.name)


# ---------------------------------------------------------------------------
# Projects and tasks
# ---------------------------------------------------------------------------


class ProjectCreate(BaseModel):
    """Request body for POST /api/v1/projects and PUT /api/v1/projects/{id}."""

    model_config = ConfigDict(str_strip_whitespace=True)

    project_name: str = Field(min_length=1, max_length=255)
    client_name: str = Field(min_length=1, max_length=255)
    description: str = Field(min_length=1, max_length=5000)


class TaskResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    project_id: int
    name: str
    description: str
    status: TaskStatusEnum
    created_at: str
    updated_at: str

    @classmethod
    def from_task(cls, task: Task) -> "TaskResponse":
        return cls(
            id=task.id,
            project_id=task.project_id,
            name=task.name,
            description=task.description,
            status=TaskStatusEnum(task.status),
            created_at=task.created_at,
            updated_at=task.updated_at,
        )


class ProjectResponse(BaseModel):
    """A project as seen by one of its members.

    tasks is only filled on the detail endpoint.
    """

    model_config = ConfigDict(frozen=True)

    id: int
    project_name: str
    client_name: str
    description: str
    manager_id: int
    team: list[int]
    created_at: str
    tasks: Optional[list[TaskResponse]] = None

    @classmethod
    def from_project(cls, project: Project, tasks: Optional[list[Task]] = None) -> "ProjectResponse":
        return cls(
            id=project.id,
            project_name=project.project_name,
            client_name=project.client_name,
            description=project.description,
            manager_id=project.manager_id,
            team=sorted(project.team),
            created_at=project.created_at,
            tasks=[TaskResponse.from_task(t) for t in tasks] if tasks is not None else None,
        )


class CreatedResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    message: str


class TaskCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=255)
    description: str = Field(min_length=1, max_length=5000)


class TaskStatusUpdate(BaseModel):
    status: TaskStatusEnum


class TeamMemberAdd(BaseModel):
    id: int = Field(gt=0)


class NoteCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    content: str = Field(min_length=1, max_length=2000)


class NoteResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    task_id: int
    content: str
    created_by: int
    created_at: str

    @classmethod
    def from_note(cls, note: Note) -> "NoteResponse":
        return cls(
            id=note.id,
            task_id=note.task_id,
            content=note.content,
            created_by=note.created_by,
            created_at=note.created_at,
        )


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
