"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and routes do
the work.

Layer rule: no imports from api/, cache/, or mail/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class UserRole:
    id: int
    name: str


@dataclass
class User:
    """A registered account.

    Stores may return partial projections (UserStore.read(select=[...])):
    fields that were not selected keep their defaults. password holds the
    bcrypt hash and must never leave the API layer.
    """

    email: str
    id: int | None = None
    firstname: str | None = None
    lastname: str | None = None
    password: str | None = None  # bcrypt hash
    active: bool = True
    role: UserRole | None = None
    created_at: str | None = None


@dataclass
class UserInvitation:
    """A single-use registration ticket for a pre-approved email.

    hash is a uuid4 string (122 random bits). Invitations do not expire;
    registration deletes the row once it succeeds.
    """

    email: str
    hash: str
    id: int | None = None
    created_at: str | None = None
