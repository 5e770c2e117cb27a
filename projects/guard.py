"""
projects/guard.py -- Who may do what to a project and its tasks.

The whole access-control rule of the system:

  manager      -- every action.
  team member  -- read the project, and create/read/update/delete tasks or
                  change their status. Comment on tasks.
  anyone else  -- nothing, not even read.

Notes add one rule on top: a note can only be deleted by its author, even
by the project manager.

authorize() is a pure function over (user, project, action). It does no I/O
and never raises; the API layer decides how a denial is reported.
"""

from enum import Enum

from projects.models import Note, Project


class Action(str, Enum):
    READ_PROJECT = "read_project"
    UPDATE_PROJECT = "update_project"
    DELETE_PROJECT = "delete_project"
    MANAGE_TEAM = "manage_team"
    CREATE_TASK = "create_task"
    READ_TASK = "read_task"
    UPDATE_TASK = "update_task"
    DELETE_TASK = "delete_task"
    UPDATE_TASK_STATUS = "update_task_status"
    CREATE_NOTE = "create_note"
    DELETE_NOTE = "delete_note"


MANAGER_ONLY_ACTIONS = frozenset({Action.UPDATE_PROJECT, Action.DELETE_PROJECT, Action.MANAGE_TEAM})

TEAM_ACTIONS = frozenset(Action) - MANAGER_ONLY_ACTIONS


def is_manager(user_id: int, project: Project) -> bool:
    return project.manager_id == user_id


def is_member(user_id: int, project: Project) -> bool:
    """True for the manager or anyone on the team."""
    return is_manager(user_id, project) or user_id in project.team


def authorize(user_id: int, project: Project, action: Action) -> bool:
    """Return True if `user_id` may perform `action` on `project`."""
    if is_manager(user_id, project):
        return True
    if user_id in project.team:
        return action in TEAM_ACTIONS
    return False


def is_note_author(user_id: int, note: Note) -> bool:
    return note.created_by == user_id
