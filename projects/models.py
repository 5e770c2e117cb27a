"""
projects/models.py -- Domain dataclasses for projects and tasks.

These are pure data containers with zero logic. Access rules live in
projects/guard.py; persistence lives in projects/store.py.
"""

from dataclasses import dataclass, field
from typing import Optional

TASK_STATUSES = ("pending", "on_hold", "in_progress", "under_review", "completed")


@dataclass
class Project:
    """A project owned by one manager and shared with a team.

    manager_id is the user who created the project. team holds the user IDs
    of members; it never contains the manager.

    id is None before the record is written to the database.
    """

    project_name: str
    client_name: str
    description: str
    manager_id: int
    team: set[int] = field(default_factory=set)
    id: Optional[int] = None
    created_at: str = ""  # ISO 8601, set by store on insert


@dataclass
class Task:
    """A unit of work inside exactly one project.

    A task has no access list of its own: who may touch it is decided by the
    parent project's manager and team.
    """

    project_id: int
    name: str
    description: str
    status: str = "pending"  # one of TASK_STATUSES
    id: Optional[int] = None
    created_at: str = ""
    updated_at: str = ""


@dataclass
class Note:
    """A comment left on a task by one of the project's members.

    Only the author may delete it; everyone who can read the task can read
    its notes.
    """

    task_id: int
    content: str
    created_by: int
    id: Optional[int] = None
    created_at: str = ""
