"""
diary/models.py -- Domain dataclasses for the tasting diary.

These are pure data containers with zero logic. Validation and the two-phase
comment attach live in diary/store.py.
"""

from dataclasses import dataclass, field
from typing import Optional


@dataclass
class Comment:
    """A comment on a beer.

    Created standalone, then attached to exactly one Beer. author_id is the
    id of the logged-in user who wrote it (None for legacy/seeded rows).

    id is None before the record is written to the database.
    """

    text: str
    author_id: Optional[int] = None
    id: Optional[int] = None
    created_at: str = ""  # ISO 8601, set by store on insert


@dataclass
class Beer:
    """A tasting entry.

    comment_ids -- attachment-ordered ids of the comments this beer owns.
    comments    -- the same sequence expanded into Comment records; only
                   filled in by DiaryStore.get_beer().

    id is None before the record is written to the database.
    """

    name: str
    image: str  # URI
    description: str
    id: Optional[int] = None
    comment_ids: list[int] = field(default_factory=list)
    comments: list[Comment] = field(default_factory=list)
    created_at: str = ""  # ISO 8601, set by store on insert
