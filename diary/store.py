"""
diary/store.py -- SQLAlchemy-backed persistence for beers and their comments.

Uses SQLAlchemy Core (not ORM) so the dataclasses in diary/models.py remain
the authoritative domain representation.

Pattern: Repository + Data Mapper. DiaryStore is the repository; the _row_to_*
functions are the mappers. Route handlers never touch SQL directly.

Ownership model:
  A Beer owns an ordered, append-only sequence of Comment ids. The sequence is
  the beer_comments link table: one row per attachment, ordered by the link
  row's autoincrement id. Appending is a single INSERT, so two requests
  commenting on the same beer at the same time both land -- there is no
  read-modify-write of a list anywhere.

Two-phase comment attach:
  attach_comment() creates the Comment, then pushes its id onto the beer.
  If the beer turns out not to exist, BeerNotFound is raised and the Comment
  is left behind as an unreferenced row. That orphan is accepted: it is never
  shown anywhere, and no compensating delete is attempted.

Security: all queries use bound parameters. No f-strings in SQL.

Usage:
    store = DiaryStore(engine)
    beer_id = store.create_beer("IPA", "https://example.com/ipa.jpg", "Hoppy.")
    store.attach_comment(beer_id, "great!", author_id=1)
    beer = store.get_beer(beer_id)      # beer.comments -> [Comment(text="great!", ...)]
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, ForeignKey, Index, Integer, MetaData, String, Table, Text, literal, select
from sqlalchemy.engine import Engine

from core.errors import BeerNotFound, ValidationError
from diary.models import Beer, Comment

logger = logging.getLogger("beerdiary.diary")

_MAX_NAME = 255
_MAX_IMAGE = 2048
_MAX_DESCRIPTION = 5000
_MAX_COMMENT = 2000

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_beers = Table(
    "beers",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(_MAX_NAME), nullable=False),
    Column("image", String(_MAX_IMAGE), nullable=False),
    Column("description", Text, nullable=False),
    Column("created_at", String(32), nullable=False),
)

_comments = Table(
    "comments",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("text", Text, nullable=False),
    Column("author_id", Integer),  # users.id lives in the auth schema; not a FK
    Column("created_at", String(32), nullable=False),
)

_beer_comments = Table(
    "beer_comments",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),  # attachment order
    Column("beer_id", Integer, ForeignKey("beers.id"), nullable=False),
    Column("comment_id", Integer, ForeignKey("comments.id"), nullable=False, unique=True),
    Index("ix_beer_comments_beer_id", "beer_id"),
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _required(value: Optional[str], label: str, max_length: int) -> str:
    """Return value stripped, or raise ValidationError if empty or too long."""
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{label} is required.")
    value = value.strip()
    if len(value) > max_length:
        raise ValidationError(f"{label} must be {max_length} characters or fewer.")
    return value


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class DiaryStore:
    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Beers
    # ------------------------------------------------------------------

    def create_beer(self, name: str, image: str, description: str) -> int:
        """Validate and insert a beer with an empty comment sequence. Returns its id."""
        beer = Beer(
            name=_required(name, "Name", _MAX_NAME),
            image=_required(image, "Image URL", _MAX_IMAGE),
            description=_required(description, "Description", _MAX_DESCRIPTION),
        )
        with self.engine.connect() as conn:
            result = conn.execute(
                _beers.insert().values(
                    name=beer.name,
                    image=beer.image,
                    description=beer.description,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            beer_id = result.inserted_primary_key[0]
        logger.info("Created beer %d (%r)", beer_id, beer.name)
        return beer_id

    def list_beers(self) -> list[Beer]:
        """Return all beers, oldest first. Comments are not expanded."""
        with self.engine.connect() as conn:
            rows = conn.execute(_beers.select().order_by(_beers.c.id)).fetchall()
        return [_row_to_beer(r) for r in rows]

    def get_beer(self, beer_id: int) -> Optional[Beer]:
        """Return the beer with its comments expanded in attachment order, or None."""
        with self.engine.connect() as conn:
            row = conn.execute(_beers.select().where(_beers.c.id == beer_id)).fetchone()
            if row is None:
                return None
            comment_rows = conn.execute(
                select(_comments)
                .join(_beer_comments, _beer_comments.c.comment_id == _comments.c.id)
                .where(_beer_comments.c.beer_id == beer_id)
                .order_by(_beer_comments.c.id)
            ).fetchall()
        beer = _row_to_beer(row)
        beer.comments = [_row_to_comment(r) for r in comment_rows]
        beer.comment_ids = [c.id for c in beer.comments]
        return beer

    def comment_ids(self, beer_id: int) -> list[int]:
        """Return the attachment-ordered comment ids of a beer (empty if the beer is absent)."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                select(_beer_comments.c.comment_id)
                .where(_beer_comments.c.beer_id == beer_id)
                .order_by(_beer_comments.c.id)
            ).fetchall()
        return [r.comment_id for r in rows]

    # ------------------------------------------------------------------
    # Comments
    # ------------------------------------------------------------------

    def create_comment(self, text: str, author_id: Optional[int] = None) -> int:
        """Phase one: insert a standalone comment and return its id."""
        comment = Comment(text=_required(text, "Comment", _MAX_COMMENT), author_id=author_id)
        with self.engine.connect() as conn:
            result = conn.execute(
                _comments.insert().values(
                    text=comment.text,
                    author_id=comment.author_id,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_comment(self, comment_id: int) -> Optional[Comment]:
        with self.engine.connect() as conn:
            row = conn.execute(_comments.select().where(_comments.c.id == comment_id)).fetchone()
        return _row_to_comment(row) if row is not None else None

    def push_comment(self, beer_id: int, comment_id: int) -> None:
        """Phase two: append comment_id to the beer's sequence.

        One INSERT ... SELECT ... WHERE EXISTS statement: the existence check
        and the append happen together, and concurrent pushes on the same beer
        each add their own row. Raises BeerNotFound when nothing was inserted.
        """
        beer_exists = select(_beers.c.id).where(_beers.c.id == beer_id).exists()
        stmt = _beer_comments.insert().from_select(
            ["beer_id", "comment_id"],
            select(literal(beer_id, Integer), literal(comment_id, Integer)).where(beer_exists),
        )
        with self.engine.connect() as conn:
            result = conn.execute(stmt)
            conn.commit()
        if result.rowcount == 0:
            raise BeerNotFound(beer_id)

    def attach_comment(self, beer_id: int, text: str, author_id: Optional[int]) -> int:
        """Create a comment and attach it to a beer. Returns the comment id.

        Not atomic: on BeerNotFound the comment created in phase one stays in
        the comments table, unreferenced by any beer.
        """
        comment_id = self.create_comment(text, author_id)
        try:
            self.push_comment(beer_id, comment_id)
        except BeerNotFound:
            logger.warning("Beer %d not found; comment %d left unattached", beer_id, comment_id)
            raise
        return comment_id


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_beer(row) -> Beer:
    return Beer(
        id=row.id,
        name=row.name,
        image=row.image,
        description=row.description,
        created_at=row.created_at,
    )


def _row_to_comment(row) -> Comment:
    return Comment(
        id=row.id,
        text=row.text,
        author_id=row.author_id,
        created_at=row.created_at,
    )
