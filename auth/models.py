"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Mirrors diary/models.py
-- dataclasses own domain shape; stores and routes do the work.

Layer rule: no imports from api/, web/, or diary/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class User:
    """A registered identity.

    password_hash and password_salt never leave the auth layer: routes hand
    templates the User object, and templates only read id and username.
    bcrypt embeds the salt in its hash string as well; the salt is stored on
    its own so verification recomputes the hash from (password, salt) and
    compares the result.
    """

    username: str
    id: int | None = None
    password_hash: str | None = None
    password_salt: str | None = None
    created_at: str | None = None

    @property
    def is_authenticated(self) -> bool:
        return True


class AnonymousUser:
    """Marker identity for a request with no live session."""

    id = None
    username = "anonymous"

    @property
    def is_authenticated(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "ANONYMOUS"


ANONYMOUS = AnonymousUser()


@dataclass
class Session:
    """A live login binding.

    created_at and expires_at are UNIX timestamps (float seconds). A session
    whose expires_at has passed is treated as absent by SessionManager.
    """

    token: str
    user_id: int
    created_at: float
    expires_at: float
