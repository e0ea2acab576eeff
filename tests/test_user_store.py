"""
tests/test_user_store.py -- Unit tests for auth/store.py (UserStore).

Each test gets its own in-memory database through the db fixture.

Covers:
  - create_user normalization and validation
  - duplicate username / email reported as distinct errors
  - check_password by username and by email, and the failure cases
  - password hash never leaves the store
  - set_password / set_active revoke sessions in the same transaction
  - update_email collision and verification reset
  - case-sensitive username policy
"""

from __future__ import annotations

import pytest
from conftest import PASSWORD

from auth.store import UserStore, users
from core.errors import (
    DuplicateEmailError,
    DuplicateUsernameError,
    NotFoundError,
    ValidationError,
)


class TestCreateUser:
    def test_create_returns_user_with_id(self, user_store, alice):
        assert alice.id is not None
        assert alice.username == "alice"
        assert alice.email == "alice@example.com"
        assert alice.is_active is True
        assert alice.email_verified is False
        assert alice.last_login is None
        assert alice.created_at

    def test_user_has_no_password_attribute(self, alice):
        assert not hasattr(alice, "password_hash")
        assert not hasattr(alice, "hashed_password")

    def test_stored_hash_is_argon2_not_plaintext(self, db, alice):
        with db.connect() as conn:
            stored = conn.execute(users.select().where(users.c.id == alice.id)).fetchone().password_hash
        assert stored.startswith("$argon2id$")
        assert PASSWORD not in stored

    def test_username_and_email_normalized(self, user_store):
        user = user_store.create_user("  Bob ", "Bob@Example.COM", PASSWORD)
        assert user.username == "bob"
        assert user.email == "bob@example.com"

    def test_duplicate_username(self, user_store, alice):
        with pytest.raises(DuplicateUsernameError) as exc_info:
            user_store.create_user("alice", "other@example.com", PASSWORD)
        assert exc_info.value.code == "duplicate_username"

    def test_duplicate_username_differs_only_in_case(self, user_store, alice):
        with pytest.raises(DuplicateUsernameError):
            user_store.create_user("ALICE", "other@example.com", PASSWORD)

    def test_duplicate_email(self, user_store, alice):
        with pytest.raises(DuplicateEmailError) as exc_info:
            user_store.create_user("alice2", "ALICE@example.com", PASSWORD)
        assert exc_info.value.code == "duplicate_email"

    @pytest.mark.parametrize(
        "username,email",
        [("", "x@example.com"), ("   ", "x@example.com"), ("a@b", "x@example.com"), ("carol", "not-an-email")],
    )
    def test_invalid_input_rejected(self, user_store, username, email):
        with pytest.raises(ValidationError):
            user_store.create_user(username, email, PASSWORD)

    def test_empty_password_rejected(self, user_store):
        with pytest.raises(ValidationError):
            user_store.create_user("dave", "dave@example.com", "")

    def test_has_users(self, user_store):
        assert user_store.has_users() is False
        user_store.create_user("erin", "erin@example.com", PASSWORD)
        assert user_store.has_users() is True


class TestLookups:
    def test_get_by_username_is_case_insensitive(self, user_store, alice):
        assert user_store.get_by_username("ALICE").id == alice.id

    def test_find_by_username_or_email(self, user_store, alice):
        assert user_store.find_by_username_or_email("alice").id == alice.id
        assert user_store.find_by_username_or_email("Alice@Example.com").id == alice.id
        assert user_store.find_by_username_or_email("nobody") is None
        assert user_store.find_by_username_or_email("") is None

    def test_get_unknown_id(self, user_store):
        assert user_store.get_by_id(9999) is None

    def test_list_users_sorted(self, user_store):
        user_store.create_user("zed", "zed@example.com", PASSWORD)
        user_store.create_user("amy", "amy@example.com", PASSWORD)
        assert [u.username for u in user_store.list_users()] == ["amy", "zed"]


class TestCheckPassword:
    def test_correct_password_by_username(self, user_store, alice):
        assert user_store.check_password("alice", PASSWORD).id == alice.id

    def test_correct_password_by_email(self, user_store, alice):
        assert user_store.check_password("ALICE@example.com", PASSWORD).id == alice.id

    def test_wrong_password(self, user_store, alice):
        assert user_store.check_password("alice", "wrong-password") is None

    def test_unknown_user(self, user_store):
        assert user_store.check_password("ghost", PASSWORD) is None

    def test_blank_identifier(self, user_store):
        assert user_store.check_password("", PASSWORD) is None

    def test_inactive_user_still_verifies(self, user_store, alice):
        """Activity is policy, enforced by auth.service -- the store only checks the secret."""
        user_store.set_active(alice.id, False)
        user = user_store.check_password("alice", PASSWORD)
        assert user is not None
        assert user.is_active is False

    def test_corrupted_hash_is_a_failed_login(self, db, user_store, alice):
        """A non-ASCII stored hash must not escape as an encoding error."""
        corrupted = "$argon2id$v=19$m=65536,t=3,p=4$\u00e9$\u00e9"
        with db.begin() as conn:
            conn.execute(users.update().where(users.c.id == alice.id).values(password_hash=corrupted))
        assert user_store.check_password("alice", PASSWORD) is None


class TestSetPassword:
    def test_new_password_replaces_old(self, user_store, alice):
        user_store.set_password(alice.id, "brand-new-password")
        assert user_store.check_password("alice", PASSWORD) is None
        assert user_store.check_password("alice", "brand-new-password").id == alice.id

    def test_revokes_all_sessions(self, user_store, session_store, alice):
        t1 = session_store.create_session(alice.id, 3600)
        t2 = session_store.create_session(alice.id, 3600)
        user_store.set_password(alice.id, "brand-new-password")
        assert session_store.get(t1) is None
        assert session_store.get(t2) is None

    def test_keep_sessions_when_asked(self, user_store, session_store, alice):
        token = session_store.create_session(alice.id, 3600)
        user_store.set_password(alice.id, "brand-new-password", revoke_sessions=False)
        assert session_store.resolve(token) == alice.id

    def test_other_users_sessions_untouched(self, user_store, session_store, alice):
        bob = user_store.create_user("bob", "bob@example.com", PASSWORD)
        bob_token = session_store.create_session(bob.id, 3600)
        user_store.set_password(alice.id, "brand-new-password")
        assert session_store.resolve(bob_token) == bob.id

    def test_unknown_user(self, user_store):
        with pytest.raises(NotFoundError):
            user_store.set_password(9999, "whatever-password")


class TestProfileAndLifecycle:
    def test_touch_last_login(self, user_store, alice):
        user_store.touch_last_login(alice.id)
        assert user_store.get_by_id(alice.id).last_login is not None

    def test_update_email(self, user_store, alice):
        updated = user_store.update_email(alice.id, "New@Example.com")
        assert updated.email == "new@example.com"
        assert updated.email_verified is False
        assert user_store.get_by_email("new@example.com").id == alice.id

    def test_update_email_collision(self, user_store, alice):
        user_store.create_user("bob", "bob@example.com", PASSWORD)
        with pytest.raises(DuplicateEmailError):
            user_store.update_email(alice.id, "bob@example.com")

    def test_update_email_invalid(self, user_store, alice):
        with pytest.raises(ValidationError):
            user_store.update_email(alice.id, "nope")

    def test_update_email_same_address_keeps_verification(self, db, user_store, alice):
        with db.begin() as conn:
            conn.execute(users.update().where(users.c.id == alice.id).values(email_verified=True))
        updated = user_store.update_email(alice.id, "Alice@Example.com")
        assert updated.email == "alice@example.com"
        assert updated.email_verified is True

    def test_update_email_unknown_user(self, user_store):
        with pytest.raises(NotFoundError):
            user_store.update_email(9999, "ghost@example.com")

    def test_deactivate_revokes_sessions(self, user_store, session_store, alice):
        token = session_store.create_session(alice.id, 3600)
        user_store.set_active(alice.id, False)
        assert user_store.get_by_id(alice.id).is_active is False
        assert session_store.get(token) is None

    def test_reactivate(self, user_store, alice):
        user_store.set_active(alice.id, False)
        user_store.set_active(alice.id, True)
        assert user_store.get_by_id(alice.id).is_active is True

    def test_set_active_unknown_user(self, user_store):
        with pytest.raises(NotFoundError):
            user_store.set_active(9999, False)


class TestCaseSensitiveUsernames:
    def test_distinct_case_allowed(self, db):
        store = UserStore(db, username_case_sensitive=True)
        first = store.create_user("Alice", "a1@example.com", PASSWORD)
        second = store.create_user("alice", "a2@example.com", PASSWORD)
        assert first.username == "Alice"
        assert second.username == "alice"
        assert store.check_password("Alice", PASSWORD).id == first.id
        assert store.get_by_username("ALICE") is None
