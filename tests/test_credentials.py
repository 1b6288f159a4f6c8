"""Unit tests for auth/passwords.py -- register_user() and verify_user().

Covers:
- duplicate username rejected, exactly one record left behind
- usernames are case-sensitive
- verify with wrong / right password, unknown username
- surrounding whitespace in a username is ignored at register and verify
- stored hash is salted bcrypt, never the plaintext
- input validation (empty, oversized)
- UNIQUE constraint race translated into DuplicateUsername
"""

import pytest

from auth.passwords import register_user, verify_password, verify_user
from core.errors import DuplicateUsername, InvalidCredentials, ValidationError


class TestRegister:
    def test_duplicate_username_rejected(self, user_store):
        register_user(user_store, "alice", "right")
        with pytest.raises(DuplicateUsername):
            register_user(user_store, "alice", "other")
        assert user_store.count_users("alice") == 1
        assert user_store.count_users() == 1

    def test_usernames_are_case_sensitive(self, user_store):
        first = register_user(user_store, "alice", "pw")
        second = register_user(user_store, "Alice", "pw")
        assert first != second
        assert user_store.count_users() == 2

    def test_password_is_salted_hash_not_plaintext(self, user_store):
        uid = register_user(user_store, "alice", "right")
        user = user_store.get_by_id(uid)
        assert user.password_hash != "right"
        assert "right" not in user.password_hash
        assert user.password_salt
        # bcrypt hashes start with the salt they were computed from
        assert user.password_hash.startswith(user.password_salt)
        assert verify_password("right", user.password_hash, user.password_salt)

    def test_same_password_gets_different_salts(self, user_store):
        a = user_store.get_by_id(register_user(user_store, "a", "same"))
        b = user_store.get_by_id(register_user(user_store, "b", "same"))
        assert a.password_salt != b.password_salt
        assert a.password_hash != b.password_hash

    @pytest.mark.parametrize(
        "username,password",
        [
            ("", "pw"),
            ("   ", "pw"),
            ("bob", ""),
            ("x" * 256, "pw"),
            ("bob", "p" * 73),
        ],
    )
    def test_invalid_input_rejected(self, user_store, username, password):
        with pytest.raises(ValidationError):
            register_user(user_store, username, password)
        assert user_store.count_users() == 0

    def test_concurrent_insert_maps_to_duplicate(self, user_store, monkeypatch):
        """A registration that loses the race trips the UNIQUE constraint, not a crash."""
        register_user(user_store, "alice", "pw")
        monkeypatch.setattr(user_store, "get_by_username", lambda username: None)
        with pytest.raises(DuplicateUsername):
            register_user(user_store, "alice", "pw")
        assert user_store.count_users("alice") == 1


class TestVerify:
    def test_wrong_password_fails(self, user_store):
        register_user(user_store, "alice", "right")
        with pytest.raises(InvalidCredentials):
            verify_user(user_store, "alice", "wrong")

    def test_right_password_returns_user_id(self, user_store):
        uid = register_user(user_store, "alice", "right")
        assert verify_user(user_store, "alice", "right") == uid

    def test_unknown_user_gives_same_error(self, user_store):
        register_user(user_store, "alice", "right")
        with pytest.raises(InvalidCredentials) as unknown:
            verify_user(user_store, "mallory", "right")
        with pytest.raises(InvalidCredentials) as wrong:
            verify_user(user_store, "alice", "nope")
        assert str(unknown.value) == str(wrong.value)

    def test_username_is_stripped_on_both_paths(self, user_store):
        uid = register_user(user_store, " bob ", "pw")
        assert user_store.get_by_id(uid).username == "bob"
        assert verify_user(user_store, " bob ", "pw") == uid
        assert verify_user(user_store, "bob", "pw") == uid

    def test_username_match_is_exact(self, user_store):
        register_user(user_store, "alice", "right")
        with pytest.raises(InvalidCredentials):
            verify_user(user_store, "ALICE", "right")

    def test_empty_password_fails(self, user_store):
        register_user(user_store, "alice", "right")
        with pytest.raises(InvalidCredentials):
            verify_user(user_store, "alice", "")
