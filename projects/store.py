"""
projects/store.py -- SQLAlchemy-backed persistence for projects, teams, tasks, and notes.

Uses SQLAlchemy Core (not ORM) so the dataclasses in projects/models.py remain
the authoritative domain representation. Swapping SQLite for PostgreSQL is a
connection string change, not a rewrite.

Pattern: Repository + Data Mapper. ProjectStore is the repository; the
_row_to_* functions are the mappers. Route handlers never touch SQL directly.

The store does no access control. Callers run projects.guard.authorize()
first.

Security: all queries use bound parameters. No f-strings in SQL.

Usage:
    store = ProjectStore()
    project_id = store.create_project(Project(project_name="Site", client_name="ACME",
                                              description="Relaunch", manager_id=1))
    store.add_member(project_id, 2)
    store.create_task(Task(project_id=project_id, name="Wireframes", description="..."))
    store.close()
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    Column,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    event,
    or_,
    select,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from core.config import get_settings
from projects.models import TASK_STATUSES, Note, Project, Task


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_projects = Table(
    "projects",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("project_name", String(255), nullable=False),
    Column("client_name", String(255), nullable=False),
    Column("description", Text, nullable=False),
    Column("manager_id", Integer, nullable=False, index=True),
    Column("created_at", String(32), nullable=False),
)

_members = Table(
    "project_members",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("project_id", Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False),
    Column("user_id", Integer, nullable=False, index=True),
    UniqueConstraint("project_id", "user_id", name="uq_project_member"),
)

_tasks = Table(
    "tasks",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("project_id", Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("name", String(255), nullable=False),
    Column("description", Text, nullable=False),
    Column("status", String(30), nullable=False, server_default="pending"),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_notes = Table(
    "notes",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("task_id", Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("content", Text, nullable=False),
    Column("created_by", Integer, nullable=False),
    Column("created_at", String(32), nullable=False),
)

_PROJECT_FIELDS = {"project_name", "client_name", "description"}
_TASK_FIELDS = {"name", "description", "status"}


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    dbapi_conn.execute("PRAGMA journal_mode=WAL")
    dbapi_conn.execute("PRAGMA foreign_keys=ON")


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class ProjectStore:
    def __init__(self, db_url: Optional[str] = None) -> None:
        db_url = db_url or get_settings().database_url
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_sqlite_pragmas)
        metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    def create_project(self, project: Project) -> int:
        """Insert a project (and its initial team, if any) and return its ID."""
        with self.engine.begin() as conn:
            result = conn.execute(
                _projects.insert().values(
                    project_name=project.project_name,
                    client_name=project.client_name,
                    description=project.description,
                    manager_id=project.manager_id,
                    created_at=_now_iso(),
                )
            )
            project_id = result.inserted_primary_key[0]
            for user_id in sorted(project.team - {project.manager_id}):
                conn.execute(_members.insert().values(project_id=project_id, user_id=user_id))
        return project_id

    def get_project(self, project_id: int) -> Optional[Project]:
        """Return the project with its team loaded, or None if it does not exist."""
        with self.engine.connect() as conn:
            row = conn.execute(_projects.select().where(_projects.c.id == project_id)).fetchone()
            if row is None:
                return None
            team = conn.execute(select(_members.c.user_id).where(_members.c.project_id == project_id)).scalars()
            return _row_to_project(row, set(team))

    def list_projects_for_user(self, user_id: int) -> list[Project]:
        """Every project the user manages or belongs to, oldest first."""
        member_of = select(_members.c.project_id).where(_members.c.user_id == user_id)
        with self.engine.connect() as conn:
            rows = conn.execute(
                _projects.select()
                .where(or_(_projects.c.manager_id == user_id, _projects.c.id.in_(member_of)))
                .order_by(_projects.c.id)
            ).fetchall()
            if not rows:
                return []
            ids = [r.id for r in rows]
            teams: dict[int, set[int]] = {pid: set() for pid in ids}
            for pid, uid in conn.execute(
                select(_members.c.project_id, _members.c.user_id).where(_members.c.project_id.in_(ids))
            ):
                teams[pid].add(uid)
        return [_row_to_project(r, teams[r.id]) for r in rows]

    def update_project(self, project_id: int, **fields) -> bool:
        """Update descriptive fields. Returns False if the project does not exist."""
        unknown = set(fields) - _PROJECT_FIELDS
        if unknown:
            raise ValueError(f"Unknown project fields: {unknown!r}")
        with self.engine.connect() as conn:
            result = conn.execute(_projects.update().where(_projects.c.id == project_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def delete_project(self, project_id: int) -> bool:
        """Delete a project together with its tasks, their notes, and team rows."""
        task_ids = select(_tasks.c.id).where(_tasks.c.project_id == project_id)
        with self.engine.begin() as conn:
            conn.execute(_notes.delete().where(_notes.c.task_id.in_(task_ids)))
            conn.execute(_tasks.delete().where(_tasks.c.project_id == project_id))
            conn.execute(_members.delete().where(_members.c.project_id == project_id))
            result = conn.execute(_projects.delete().where(_projects.c.id == project_id))
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Team
    # ------------------------------------------------------------------

    def add_member(self, project_id: int, user_id: int) -> bool:
        """Add a user to the team. Returns False if already a member or the project is gone."""
        try:
            with self.engine.connect() as conn:
                conn.execute(_members.insert().values(project_id=project_id, user_id=user_id))
                conn.commit()
        except IntegrityError:
            return False
        return True

    def remove_member(self, project_id: int, user_id: int) -> bool:
        """Remove a user from the team. Returns False if they were not on it."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _members.delete().where((_members.c.project_id == project_id) & (_members.c.user_id == user_id))
            )
            conn.commit()
        return result.rowcount > 0

    def list_members(self, project_id: int) -> list[int]:
        with self.engine.connect() as conn:
            rows = conn.execute(
                select(_members.c.user_id).where(_members.c.project_id == project_id).order_by(_members.c.id)
            ).scalars()
            return list(rows)

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    def create_task(self, task: Task) -> int:
        if task.status not in TASK_STATUSES:
            raise ValueError(f"Unknown task status: {task.status!r}")
        now = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _tasks.insert().values(
                    project_id=task.project_id,
                    name=task.name,
                    description=task.description,
                    status=task.status,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def list_tasks(self, project_id: int) -> list[Task]:
        with self.engine.connect() as conn:
            rows = conn.execute(
                _tasks.select().where(_tasks.c.project_id == project_id).order_by(_tasks.c.id)
            ).fetchall()
        return [_row_to_task(r) for r in rows]

    def get_task(self, project_id: int, task_id: int) -> Optional[Task]:
        """Return the task only if it belongs to `project_id`."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _tasks.select().where((_tasks.c.id == task_id) & (_tasks.c.project_id == project_id))
            ).fetchone()
        return _row_to_task(row) if row is not None else None

    def update_task(self, project_id: int, task_id: int, **fields) -> bool:
        """Update name, description, or status. Returns False if no such task in the project."""
        unknown = set(fields) - _TASK_FIELDS
        if unknown:
            raise ValueError(f"Unknown task fields: {unknown!r}")
        if "status" in fields and fields["status"] not in TASK_STATUSES:
            raise ValueError(f"Unknown task status: {fields['status']!r}")
        with self.engine.connect() as conn:
            result = conn.execute(
                _tasks.update()
                .where((_tasks.c.id == task_id) & (_tasks.c.project_id == project_id))
                .values(updated_at=_now_iso(), **fields)
            )
            conn.commit()
        return result.rowcount > 0

    def delete_task(self, project_id: int, task_id: int) -> bool:
        """Delete a task and its notes. Returns False if no such task in the project."""
        with self.engine.begin() as conn:
            result = conn.execute(
                _tasks.delete().where((_tasks.c.id == task_id) & (_tasks.c.project_id == project_id))
            )
            if result.rowcount == 0:
                return False
            conn.execute(_notes.delete().where(_notes.c.task_id == task_id))
        return True

    # ------------------------------------------------------------------
    # Notes
    # ------------------------------------------------------------------

    def create_note(self, note: Note) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                _notes.insert().values(
                    task_id=note.task_id,
                    content=note.content,
                    created_by=note.created_by,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def list_notes(self, task_id: int) -> list[Note]:
        with self.engine.connect() as conn:
            rows = conn.execute(_notes.select().where(_notes.c.task_id == task_id).order_by(_notes.c.id)).fetchall()
        return [_row_to_note(r) for r in rows]

    def get_note(self, task_id: int, note_id: int) -> Optional[Note]:
        """Return the note only if it belongs to `task_id`."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _notes.select().where((_notes.c.id == note_id) & (_notes.c.task_id == task_id))
            ).fetchone()
        return _row_to_note(row) if row is not None else None

    def delete_note(self, task_id: int, note_id: int) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(
                _notes.delete().where((_notes.c.id == note_id) & (_notes.c.task_id == task_id))
            )
            conn.commit()
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_project(row, team: set[int]) -> Project:
    return Project(
        id=row.id,
        project_name=row.project_name,
        client_name=row.client_name,
        description=row.description,
        manager_id=row.manager_id,
        team=team,
        created_at=row.created_at,
    )


def _row_to_task(row) -> Task:
    return Task(
        id=row.id,
        project_id=row.project_id,
        name=row.name,
        description=row.description,
        status=row.status,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_note(row) -> Note:
    return Note(
        id=row.id,
        task_id=row.task_id,
        content=row.content,
        created_by=row.created_by,
        created_at=row.created_at,
    )
