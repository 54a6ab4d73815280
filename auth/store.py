"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper.
UserStore and InvitationStore are the repositories; _row_to_user /
_row_to_invitation are the mappers. Route and dependency code never touches
SQL directly.

Lookups take a `where` dict of column -> value pairs (equality, AND-ed).
Column names are checked against the table before any SQL is built, so an
unknown key raises ValueError instead of reaching the database.

Security:
  All queries use bound parameters. No f-strings in SQL.

DB path: userhub.db at the repository root unless DATABASE_URL is set.

Layer rule: no imports from api/, cache/, or mail/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
    select,
    text,
)
from sqlalchemy.engine import Engine

from auth.models import User, UserInvitation, UserRole
from core.config import get_settings

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_user_roles = Table(
    "user_roles",
    _metadata,
    Column("id", Integer, primary_key=True),
    Column("name", String(50), nullable=False, unique=True),
)

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("firstname", String(100)),
    Column("lastname", String(100)),
    Column("password", Text, nullable=False),  # bcrypt hash
    Column("active", Integer, nullable=False, server_default="1"),
    Column("role_id", Integer, ForeignKey("user_roles.id")),
    Column("created_at", String(32), nullable=False),
)

_user_invitations = Table(
    "user_invitations",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False),
    Column("hash", String(36), nullable=False, unique=True),
    Column("created_at", String(32), nullable=False),
)

# Seeded on every startup. Registration always assigns DEFAULT_ROLE.
DEFAULT_ROLE = UserRole(id=1, name="User")
_SEED_ROLES = (DEFAULT_ROLE,)

_USER_FIELDS = ("id", "email", "firstname", "lastname", "password", "active", "role", "created_at")
_WRITABLE_USER_FIELDS = {"email", "firstname", "lastname", "password", "active"}


# ---------------------------------------------------------------------------
# Engine helpers
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _make_engine(db_url: str) -> Engine:
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_wal_mode)
    _metadata.create_all(engine)
    return engine


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _where_clauses(table: Table, where: dict) -> list:
    unknown = set(where) - set(table.c.keys())
    if unknown:
        raise ValueError(f"Unknown {table.name} columns in filter: {sorted(unknown)!r}")
    clauses = []
    for key, value in where.items():
        if isinstance(value, bool):
            value = 1 if value else 0
        clauses.append(table.c[key] == value)
    return clauses


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore()
        user = store.save({"email": "a@acme.io", "password": hash_password("pw"), "role": DEFAULT_ROLE})
        store.read({"email": "a@acme.io", "active": True}, fields=["id", "email", "password"])
        store.delete(user)
        store.close()
    """

    def __init__(self, db_url: str | None = None) -> None:
        self.engine: Engine = _make_engine(db_url or get_settings().database_url)
        self._ensure_roles()

    def _ensure_roles(self) -> None:
        """Seed the fixed role rows. Idempotent -- safe to call on every startup."""
        with self.engine.connect() as conn:
            existing = {row.id for row in conn.execute(select(_user_roles.c.id))}
            for role in _SEED_ROLES:
                if role.id not in existing:
                    conn.execute(_user_roles.insert().values(id=role.id, name=role.name))
            conn.commit()

    def read(self, where: dict, fields: list[str] | None = None) -> User | None:
        """Return the first user matching every where-pair, or None.

        fields restricts the projection (id and email are always included);
        unselected User attributes keep their dataclass defaults.
        """
        wanted = set(fields) if fields else set(_USER_FIELDS)
        unknown = wanted - set(_USER_FIELDS)
        if unknown:
            raise ValueError(f"Unknown user fields: {sorted(unknown)!r}")
        wanted |= {"id", "email"}

        columns = [_users.c[name] for name in _USER_FIELDS if name in wanted and name != "role"]
        if "role" in wanted:
            columns += [_user_roles.c.id.label("role_id"), _user_roles.c.name.label("role_name")]

        stmt = (
            select(*columns)
            .select_from(_users.outerjoin(_user_roles, _users.c.role_id == _user_roles.c.id))
            .where(*_where_clauses(_users, where))
            .limit(1)
        )
        with self.engine.connect() as conn:
            row = conn.execute(stmt).fetchone()
        return _row_to_user(row) if row is not None else None

    def save(self, fields: dict) -> User:
        """Insert a new user and return the stored record.

        Keys outside the writable columns are ignored. A "role" entry
        (UserRole or {"id", "name"} dict) is linked by id.

        Raises ValueError if the role does not exist and
        sqlalchemy.exc.IntegrityError if the email already exists.
        """
        values = {k: v for k, v in fields.items() if k in _WRITABLE_USER_FIELDS}
        values["active"] = 1 if values.get("active", True) else 0
        values["created_at"] = _now_iso()

        role = fields.get("role")
        if isinstance(role, dict):
            role = UserRole(id=role["id"], name=role["name"])

        with self.engine.connect() as conn:
            if role is not None:
                found = conn.execute(select(_user_roles.c.id).where(_user_roles.c.id == role.id)).fetchone()
                if found is None:
                    raise ValueError(f"Unknown role id: {role.id}")
                values["role_id"] = role.id
            result = conn.execute(_users.insert().values(**values))
            conn.commit()
            user_id = result.inserted_primary_key[0]

        created = self.read({"id": user_id})
        if created is None:
            raise RuntimeError(f"User {user_id} not found after insert")
        return created

    def delete(self, user: User) -> bool:
        """Permanently delete a user record. Returns True if a row was removed."""
        with self.engine.connect() as conn:
            result = conn.execute(_users.delete().where(_users.c.id == user.id))
            conn.commit()
        return result.rowcount > 0

    def list_users(self) -> list[User]:
        """Return all users ordered by email."""
        stmt = (
            select(*[_users.c[name] for name in _USER_FIELDS if name != "role"])
            .add_columns(_user_roles.c.id.label("role_id"), _user_roles.c.name.label("role_name"))
            .select_from(_users.outerjoin(_user_roles, _users.c.role_id == _user_roles.c.id))
            .order_by(_users.c.email)
        )
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [_row_to_user(r) for r in rows]

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        with self.engine.connect() as conn:
            return conn.execute(text("SELECT 1")).scalar() == 1

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Invitations
# ---------------------------------------------------------------------------


class InvitationStore:
    """Repository for UserInvitation entities."""

    def __init__(self, db_url: str | None = None) -> None:
        self.engine: Engine = _make_engine(db_url or get_settings().database_url)

    def read_user_invitation(self, where: dict) -> UserInvitation | None:
        """Return the invitation matching every where-pair, or None."""
        stmt = _user_invitations.select().where(*_where_clauses(_user_invitations, where)).limit(1)
        with self.engine.connect() as conn:
            row = conn.execute(stmt).fetchone()
        return _row_to_invitation(row) if row is not None else None

    def save_user_invitation(self, invitation: UserInvitation) -> UserInvitation:
        """Insert an invitation and return it with id and created_at filled in.

        Raises sqlalchemy.exc.IntegrityError on a duplicate hash.
        """
        created_at = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _user_invitations.insert().values(
                    email=invitation.email,
                    hash=invitation.hash,
                    created_at=created_at,
                )
            )
            conn.commit()
        return UserInvitation(
            id=result.inserted_primary_key[0],
            email=invitation.email,
            hash=invitation.hash,
            created_at=created_at,
        )

    def delete_user_invitation(self, invitation: UserInvitation) -> bool:
        """Delete an invitation by hash. Returns True if a row was removed."""
        with self.engine.connect() as conn:
            result = conn.execute(_user_invitations.delete().where(_user_invitations.c.hash == invitation.hash))
            conn.commit()
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    mapping = row._mapping
    kwargs = {name: mapping[name] for name in _USER_FIELDS if name in mapping and name not in ("active", "role")}
    if "active" in mapping:
        kwargs["active"] = bool(mapping["active"])
    if "role_name" in mapping and mapping["role_id"] is not None:
        kwargs["role"] = UserRole(id=mapping["role_id"], name=mapping["role_name"])
    return User(**kwargs)


def _row_to_invitation(row) -> UserInvitation:
    return UserInvitation(
        id=row.id,
        email=row.email,
        hash=row.hash,
        created_at=row.created_at,
    )
