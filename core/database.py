"""
core/database.py -- Engine construction shared by every store.

One Engine is built at startup (api/main.py lifespan, or main.py for the CLI)
and handed to UserStore, SessionManager and DiaryStore. Nothing in the
codebase creates its own connection behind the caller's back.

Layer rule: core/ is the kernel. No imports from api/, web/, auth/, or diary/.
"""

from __future__ import annotations

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool. In-memory databases answer "memory" and keep
    their journal mode, which is harmless.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def create_db_engine(db_url: str) -> Engine:
    """Build an Engine for db_url.

    SQLite connections are shared across FastAPI's threadpool workers, so
    check_same_thread is disabled and WAL mode is switched on for every new
    connection.
    """
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_wal_mode)
    return engine


def ping(engine: Engine) -> bool:
    """Run a trivial query to verify the database is reachable."""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError:
        return False
