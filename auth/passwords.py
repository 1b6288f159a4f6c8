"""
auth/passwords.py -- Credential registration and verification.

Security design decisions:
  Passwords: bcrypt used directly (no passlib wrapper). A fresh salt is drawn
       with bcrypt.gensalt() for every registration; the cost factor comes from
       Settings.bcrypt_rounds. Verification recomputes bcrypt(password, salt)
       and compares it to the stored hash with hmac.compare_digest.

  Input limits: bcrypt only consumes the first 72 bytes of its input and
       bcrypt>=5 refuses longer input outright, so register_user() rejects
       passwords over 72 UTF-8 bytes with ValidationError instead of letting
       two different passwords collide.

  Enumeration: verify_user() raises a single InvalidCredentials for both an
       unknown username and a wrong password, and runs bcrypt against
       _DUMMY_HASH when the username does not exist so response time does not
       reveal which case occurred.

Layer rule: no imports from api/, web/, or diary/.
"""

from __future__ import annotations

import hmac
import logging

import bcrypt
from sqlalchemy.exc import IntegrityError

from auth.models import User
from auth.store import UserStore
from core.config import get_settings
from core.errors import DuplicateUsername, InvalidCredentials, ValidationError

logger = logging.getLogger("beerdiary.auth")

_settings = get_settings()

MAX_USERNAME_LENGTH = 255
MAX_PASSWORD_BYTES = 72

# ---------------------------------------------------------------------------
# Hashing
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> tuple[str, str]:
    """Return (hash, salt) for plain, both as ASCII strings."""
    salt = bcrypt.gensalt(rounds=_settings.bcrypt_rounds)
    hashed = bcrypt.hashpw(plain.encode("utf-8"), salt)
    return hashed.decode("utf-8"), salt.decode("utf-8")


def verify_password(plain: str, hashed: str, salt: str) -> bool:
    """Return True if bcrypt(plain, salt) equals hashed."""
    try:
        computed = bcrypt.hashpw(plain.encode("utf-8"), salt.encode("utf-8"))
    except ValueError:
        # Malformed salt or over-long input
        return False
    return hmac.compare_digest(computed, hashed.encode("utf-8"))


# Computed once at module load so the first failed login is not measurably
# slower than later ones.
_DUMMY_HASH, _DUMMY_SALT = hash_password("beerdiary_timing_dummy")


# ---------------------------------------------------------------------------
# Credential Store operations
# ---------------------------------------------------------------------------


def _validate(username: str, password: str) -> str:
    username = (username or "").strip()
    if not username:
        raise ValidationError("Username is required.")
    if len(username) > MAX_USERNAME_LENGTH:
        raise ValidationError(f"Username must be {MAX_USERNAME_LENGTH} characters or fewer.")
    if not password:
        raise ValidationError("Password is required.")
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValidationError(f"Password must be {MAX_PASSWORD_BYTES} bytes or fewer.")
    return username


def register_user(store: UserStore, username: str, password: str) -> int:
    """Create a user with a freshly salted bcrypt hash and return its id.

    Raises ValidationError for empty or oversized input and DuplicateUsername
    when the exact username is taken. The pre-check gives the common case a
    cheap answer; the UNIQUE constraint catches the concurrent case.
    """
    username = _validate(username, password)
    if store.get_by_username(username) is not None:
        raise DuplicateUsername(username)

    hashed, salt = hash_password(password)
    try:
        user_id = store.create_user(User(username=username, password_hash=hashed, password_salt=salt))
    except IntegrityError as exc:
        raise DuplicateUsername(username) from exc
    logger.info("Registered user %r (id=%d)", username, user_id)
    return user_id


def verify_user(store: UserStore, username: str, password: str) -> int:
    """Return the id of the user whose credentials match, else raise InvalidCredentials.

    The username is stripped the same way register_user() stored it.
    Always runs bcrypt whether or not the user exists. No side effects.
    """
    user = store.get_by_username((username or "").strip())
    if user is None or not user.password_hash or not user.password_salt:
        # Equalize timing -- do NOT return early before running bcrypt
        verify_password(password or "", _DUMMY_HASH, _DUMMY_SALT)
        raise InvalidCredentials()
    if not verify_password(password or "", user.password_hash, user.password_salt):
        raise InvalidCredentials()
    return user.id
