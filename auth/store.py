"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper (same as projects/store.py).
AccountStore is the repository; _row_to_user / _row_to_token are the mappers.
Route and lifecycle code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  users.email is UNIQUE. The lifecycle manager checks for an existing email
  before inserting, and the constraint is the backstop when two registrations
  race: the loser gets IntegrityError.

  Verification codes are stored as HMAC hashes (see auth/tokens.py). The raw
  code never reaches this module.

Redemption:
  redeem_token() deletes the token row and applies the user update inside a
  single transaction. The DELETE's rowcount decides the winner when two
  requests redeem the same code concurrently, so a code can only ever be
  spent once.

Layer rule: no imports from api/, notify/, or projects/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
)
from sqlalchemy.engine import Engine

from auth.models import User, VerificationToken
from core.config import get_settings

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("name", String(255), nullable=False),
    Column("hashed_password", Text, nullable=False),
    Column("confirmed", Integer, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
)

_tokens = Table(
    "verification_tokens",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("purpose", String(16), nullable=False),  # "confirm" | "reset"
    Column("token_hash", String(64), nullable=False, unique=True),  # HMAC-SHA256 hex
    Column("created_at", String(32), nullable=False),
    Column("expires_at", String(32), nullable=False),
    Index("ix_verification_tokens_expires_at", "expires_at"),
)


# ---------------------------------------------------------------------------
# SQLite pragmas
# ---------------------------------------------------------------------------


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode and foreign key enforcement.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool. Without foreign_keys=ON the ON DELETE CASCADE
    on verification_tokens.user_id would be ignored.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")
    dbapi_conn.execute("PRAGMA foreign_keys=ON")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def to_iso(dt: datetime) -> str:
    """Fixed-width UTC ISO 8601, so stored timestamps sort as strings."""
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _now_iso() -> str:
    return to_iso(datetime.now(timezone.utc))


def normalize_email(email: str) -> str:
    return email.strip().lower()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AccountStore:
    """Repository for User and VerificationToken entities.

    Usage:
        store = AccountStore()
        uid = store.create_user(User(email="a@x.com", name="A", hashed_password=hash_password("secret")))
        user = store.get_by_email("A@X.com")
        store.close()
    """

    _MUTABLE_USER_FIELDS: set = {"name", "email", "hashed_password", "confirmed"}

    def __init__(self, db_url: str | None = None) -> None:
        db_url = db_url or get_settings().database_url
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_sqlite_pragmas)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # User queries
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    email=normalize_email(user.email),
                    name=user.name,
                    hashed_password=user.hashed_password,
                    confirmed=1 if user.confirmed else 0,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by email (case-insensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == normalize_email(email))).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def update_user(self, user_id: int, **fields) -> bool:
        """Update mutable fields on an existing user.

        Accepted fields: name, email, hashed_password, confirmed. Unknown
        fields raise ValueError. Raises IntegrityError if a new email clashes
        with another account.

        Returns True if a row was updated, False if user_id was not found.
        """
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**_user_values(fields)))
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Verification token queries
    # ------------------------------------------------------------------

    def create_token(self, token: VerificationToken) -> int:
        """Insert a verification token and return its ID."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _tokens.insert().values(
                    user_id=token.user_id,
                    purpose=token.purpose,
                    token_hash=token.token_hash,
                    created_at=token.created_at,
                    expires_at=token.expires_at,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_token_by_hash(self, token_hash: str) -> VerificationToken | None:
        """Look up a token by its HMAC hash, expired or not. O(1) via UNIQUE index."""
        with self.engine.connect() as conn:
            row = conn.execute(_tokens.select().where(_tokens.c.token_hash == token_hash)).fetchone()
        return _row_to_token(row) if row is not None else None

    def list_tokens_for_user(self, user_id: int) -> list[VerificationToken]:
        """Return every stored token for a user, oldest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _tokens.select().where(_tokens.c.user_id == user_id).order_by(_tokens.c.id)
            ).fetchall()
        return [_row_to_token(r) for r in rows]

    def delete_token(self, token_id: int) -> bool:
        """Delete a token. Returns False if it was already gone."""
        with self.engine.connect() as conn:
            result = conn.execute(_tokens.delete().where(_tokens.c.id == token_id))
            conn.commit()
        return result.rowcount > 0

    def redeem_token(self, token: VerificationToken, **user_fields) -> bool:
        """Spend a token and apply its user update in one transaction.

        Returns False (and changes nothing) if another request deleted the
        token first.
        """
        values = _user_values(user_fields)
        with self.engine.begin() as conn:
            deleted = conn.execute(_tokens.delete().where(_tokens.c.id == token.id)).rowcount
            if deleted == 0:
                return False
            if values:
                conn.execute(_users.update().where(_users.c.id == token.user_id).values(**values))
        return True

    def purge_expired_tokens(self, now: datetime | None = None) -> int:
        """Delete every token whose expires_at is in the past. Returns the count."""
        cutoff = to_iso(now or datetime.now(timezone.utc))
        with self.engine.connect() as conn:
            result = conn.execute(_tokens.delete().where(_tokens.c.expires_at < cutoff))
            conn.commit()
        return result.rowcount

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _user_values(fields: dict) -> dict:
    unknown = set(fields) - AccountStore._MUTABLE_USER_FIELDS
    if unknown:
        raise ValueError(f"Unknown user fields: {unknown!r}")
    values = dict(fields)
    if "confirmed" in values:
        values["confirmed"] = 1 if values["confirmed"] else 0
    if "email" in values:
        values["email"] = normalize_email(values["email"])
    return values


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        name=row.name,
        hashed_password=row.hashed_password,
        confirmed=bool(row.confirmed),
        created_at=row.created_at,
    )


def _row_to_token(row) -> VerificationToken:
    return VerificationToken(
        id=row.id,
        user_id=row.user_id,
        purpose=row.purpose,
        token_hash=row.token_hash,
        created_at=row.created_at,
        expires_at=row.expires_at,
    )
