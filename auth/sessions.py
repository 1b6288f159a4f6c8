"""
auth/sessions.py -- Server-side session tokens with a fixed TTL.

A session is a row in the sessions table binding an opaque token to a user id
until expires_at. The browser only ever holds the token; it travels inside the
signed cookie managed by Starlette's SessionMiddleware (see api/main.py), so
the cookie is tamper-evident while the token itself stays unguessable:
secrets.token_urlsafe(32) gives 256 bits of entropy.

Expiry follows the same rule as a TTL cache: a row past its deadline is
treated as absent and deleted when it is looked up. purge_expired() sweeps
the rest and is called periodically from the app lifespan.

The clock is injectable so tests can move time forward without sleeping.

Layer rule: no imports from api/, web/, or diary/.
"""

from __future__ import annotations

import logging
import secrets
import time
from collections.abc import Callable
from typing import Optional

from sqlalchemy import Column, Float, Index, Integer, String, Table
from sqlalchemy.engine import Engine

from auth.models import Session
from auth.store import metadata

logger = logging.getLogger("beerdiary.auth")

_TOKEN_BYTES = 32

_sessions = Table(
    "sessions",
    metadata,
    Column("token", String(64), primary_key=True),
    Column("user_id", Integer, nullable=False),
    Column("created_at", Float, nullable=False),
    Column("expires_at", Float, nullable=False),
    Index("ix_sessions_user_id", "user_id"),
)


class SessionManager:
    """Issue, resolve and destroy session tokens.

    Usage:
        sessions = SessionManager(engine, ttl_seconds=3600)
        session = sessions.create_session(user_id)
        sessions.resolve_session(session.token)   # -> user_id
        sessions.destroy_session(session.token)
        sessions.resolve_session(session.token)   # -> None
    """

    def __init__(self, engine: Engine, ttl_seconds: int, clock: Callable[[], float] = time.time) -> None:
        self.engine = engine
        self.ttl = ttl_seconds
        self._clock = clock
        metadata.create_all(self.engine)

    def create_session(self, user_id: int) -> Session:
        """Bind a new random token to user_id and return the Session."""
        now = self._clock()
        session = Session(
            token=secrets.token_urlsafe(_TOKEN_BYTES),
            user_id=user_id,
            created_at=now,
            expires_at=now + self.ttl,
        )
        with self.engine.connect() as conn:
            conn.execute(
                _sessions.insert().values(
                    token=session.token,
                    user_id=session.user_id,
                    created_at=session.created_at,
                    expires_at=session.expires_at,
                )
            )
            conn.commit()
        logger.debug("Session created for user %d", user_id)
        return session

    def resolve_session(self, token: Optional[str]) -> Optional[int]:
        """Return the user id bound to token, or None if absent or expired.

        "No session" is a normal state, not an error.
        """
        if not token:
            return None
        with self.engine.connect() as conn:
            row = conn.execute(
                _sessions.select().where(_sessions.c.token == token)
            ).fetchone()
        if row is None:
            return None
        if self._clock() >= row.expires_at:
            self.destroy_session(token)
            return None
        return row.user_id

    def destroy_session(self, token: Optional[str]) -> None:
        """Remove the binding for token. Idempotent."""
        if not token:
            return
        with self.engine.connect() as conn:
            conn.execute(_sessions.delete().where(_sessions.c.token == token))
            conn.commit()

    def purge_expired(self) -> int:
        """Delete every expired session. Returns number of rows removed."""
        with self.engine.connect() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.expires_at <= self._clock()))
            conn.commit()
        return result.rowcount
