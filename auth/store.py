"""
auth/store.py -- SQLAlchemy Core persistence layer for identity entities.

Pattern: Repository + Data Mapper (same as catalog/store.py).
UserStore is the repository; _row_to_user is the mapper.
Service and route code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

Uniqueness:
  username_key holds strip().lower() of the username and carries the UNIQUE
  index, so "Alice", "alice" and " alice " collide at the database level. A
  concurrent duplicate registration therefore fails with IntegrityError
  instead of overwriting the first record.

  roles.normalized_name is UNIQUE for the same reason: two registrations that
  both request a brand-new role cannot create it twice. create_role() reports
  the loser of that race by returning False; create_user_with_role() absorbs it
  and assigns the surviving row.

DB path: auth/storefront_auth.db (sibling to catalog/storefront_catalog.db).

Layer rule: no imports from api/ or catalog/.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from pathlib import Path

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
    func,
    select,
)
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError

from auth.models import Role, User

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'storefront_auth.db'}"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", String(36), primary_key=True),
    Column("username", String(256), nullable=False),
    Column("username_key", String(256), nullable=False, unique=True),
    Column("email", String(256)),
    Column("normalized_email", String(256)),
    Column("name", String(256)),
    Column("hashed_password", Text, nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32)),
)

_roles = Table(
    "roles",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(256), nullable=False),
    Column("normalized_name", String(256), nullable=False, unique=True),
)

# id doubles as assignment order: the lowest id is the user's primary role.
_user_roles = Table(
    "user_roles",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", String(36), ForeignKey("users.id"), nullable=False),
    Column("role_id", Integer, ForeignKey("roles.id"), nullable=False),
    UniqueConstraint("user_id", "role_id", name="uq_user_role"),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    WAL (Write-Ahead Logging) allows readers to proceed without blocking
    during writes. Set per-connection because SQLite PRAGMAs are not
    inherited by new connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def normalize_username(username: str) -> str:
    """Return the lookup key for a username: surrounding whitespace trimmed, lower-cased."""
    return username.strip().lower()


def _normalize_role(name: str) -> str:
    return name.strip().upper()


def _insert_user(conn: Connection, user: User) -> str:
    user_id = user.id or str(uuid.uuid4())
    now = _now_iso()
    conn.execute(
        _users.insert().values(
            id=user_id,
            username=user.username,
            username_key=normalize_username(user.username),
            email=user.email,
            normalized_email=user.normalized_email,
            name=user.name,
            hashed_password=user.hashed_password,
            created_at=now,
            updated_at=now,
        )
    )
    return user_id


def _ensure_role(conn: Connection, name: str) -> None:
    """Create the role inside the caller's transaction unless it already exists.

    A concurrent creator of the same role is absorbed: SQLite skips the row
    via ON CONFLICT, other backends roll back a savepoint.
    """
    key = _normalize_role(name)
    if conn.execute(select(_roles.c.id).where(_roles.c.normalized_name == key)).first() is not None:
        return
    if conn.dialect.name == "sqlite":
        conn.execute(
            sqlite_insert(_roles).values(name=name, normalized_name=key).on_conflict_do_nothing(
                index_elements=["normalized_name"]
            )
        )
        return
    try:
        with conn.begin_nested():
            conn.execute(_roles.insert().values(name=name, normalized_name=key))
    except IntegrityError:
        pass


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User and Role entities.

    Usage:
        store = UserStore("sqlite:///:memory:")
        user_id = store.create_user(User(username="alice", hashed_password=hash_password("Secr3t!")))
        store.create_role("User")
        store.assign_role(user_id, "User")
        store.get_roles(user_id)   # ["User"]
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            # FastAPI runs sync handlers in a thread pool, so the same pooled
            # connection may be used from more than one thread.
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # User queries
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> str:
        """Insert a new user and return its assigned id.

        Raises sqlalchemy.exc.IntegrityError if the normalized username
        already exists. UserRegistry turns that into a RegistrationError.
        """
        with self.engine.begin() as conn:
            return _insert_user(conn, user)

    def create_user_with_role(self, user: User, role_name: str) -> str:
        """Insert a user holding role_name and return its id.

        The user row, the role (created if missing) and the assignment share
        one transaction: if any step fails nothing is persisted and the
        username stays free.

        Raises sqlalchemy.exc.IntegrityError on a duplicate username and any
        other SQLAlchemyError if the store fails.
        """
        with self.engine.begin() as conn:
            user_id = _insert_user(conn, user)
            _ensure_role(conn, role_name)
            self._grant_role(conn, user_id, role_name)
        return user_id

    def get_by_id(self, user_id: str) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_username(self, username: str) -> User | None:
        """Look up a user by username, ignoring case and surrounding whitespace."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _users.select().where(_users.c.username_key == normalize_username(username))
            ).fetchone()
        return _row_to_user(row) if row is not None else None

    def username_exists(self, username: str) -> bool:
        with self.engine.connect() as conn:
            found = conn.execute(
                select(_users.c.id).where(_users.c.username_key == normalize_username(username)).limit(1)
            ).first()
        return found is not None

    def list_users(self) -> list[User]:
        """Return all users ordered by username."""
        with self.engine.connect() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.username)).fetchall()
        return [_row_to_user(r) for r in rows]

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    def role_exists(self, name: str) -> bool:
        with self.engine.connect() as conn:
            found = conn.execute(
                select(_roles.c.id).where(_roles.c.normalized_name == _normalize_role(name)).limit(1)
            ).first()
        return found is not None

    def create_role(self, name: str) -> bool:
        """Insert a role. Returns False if it already exists (e.g. a concurrent creator won)."""
        try:
            with self.engine.begin() as conn:
                conn.execute(_roles.insert().values(name=name, normalized_name=_normalize_role(name)))
        except IntegrityError:
            return False
        return True

    def list_roles(self) -> list[Role]:
        with self.engine.connect() as conn:
            rows = conn.execute(_roles.select().order_by(_roles.c.id)).fetchall()
        return [Role(id=r.id, name=r.name) for r in rows]

    def count_roles(self, name: str) -> int:
        """Return how many role rows carry this name (0 or 1 while the UNIQUE index holds)."""
        with self.engine.connect() as conn:
            result = conn.execute(
                select(func.count()).select_from(_roles).where(_roles.c.normalized_name == _normalize_role(name))
            ).scalar()
        return result or 0

    def assign_role(self, user_id: str, role_name: str) -> None:
        """Add a role to a user.

        Raises ValueError if the role does not exist and IntegrityError if the
        user already holds it.
        """
        with self.engine.begin() as conn:
            self._grant_role(conn, user_id, role_name)

    def _grant_role(self, conn: Connection, user_id: str, role_name: str) -> None:
        role_id = conn.execute(
            select(_roles.c.id).where(_roles.c.normalized_name == _normalize_role(role_name))
        ).scalar()
        if role_id is None:
            raise ValueError(f"Role {role_name!r} does not exist")
        conn.execute(_user_roles.insert().values(user_id=user_id, role_id=role_id))
        conn.execute(_users.update().where(_users.c.id == user_id).values(updated_at=_now_iso()))

    def get_roles(self, user_id: str) -> list[str]:
        """Return the user's role names in assignment order (primary role first)."""
        stmt = (
            select(_roles.c.name)
            .select_from(_user_roles.join(_roles, _user_roles.c.role_id == _roles.c.id))
            .where(_user_roles.c.user_id == user_id)
            .order_by(_user_roles.c.id)
        )
        with self.engine.connect() as conn:
            return [r.name for r in conn.execute(stmt).fetchall()]

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        username=row.username,
        email=row.email,
        normalized_email=row.normalized_email,
        name=row.name,
        hashed_password=row.hashed_password,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
