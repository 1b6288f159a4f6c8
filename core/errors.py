"""
core/errors.py -- Domain exceptions shared by auth/ and diary/.

Every error here is recovered at the request boundary (web/routes.py turns it
into a re-rendered form or a redirect). None of them is fatal to the process.

Persistence failures are not wrapped: sqlalchemy.exc.SQLAlchemyError reaching
the app is the "store unavailable" case and is handled in api/main.py.
"""


class DiaryError(Exception):
    """Base class for recoverable domain errors."""


class ValidationError(DiaryError):
    """Missing or malformed input. Carries a user-facing message."""


class DuplicateUsername(DiaryError):
    def __init__(self, username: str) -> None:
        super().__init__(f"Username {username!r} is already taken.")
        self.username = username


class InvalidCredentials(DiaryError):
    """Unknown username or wrong password -- deliberately not distinguished."""

    def __init__(self) -> None:
        super().__init__("Invalid username or password.")


class NotFound(DiaryError):
    """A referenced resource does not exist."""


class BeerNotFound(NotFound):
    def __init__(self, beer_id: int) -> None:
        super().__init__(f"Beer {beer_id} not found.")
        self.beer_id = beer_id
