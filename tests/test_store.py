"""Unit tests for auth/store.py -- users, roles, revocations.

Covers:
- UserStore create / lookup by id, email, registration token, reset-token hash
- consume_token() writes only while the one-time token still matches
- exists() flips once the first account is written
- RoleStore seeding is idempotent and exposes the super-admin role
- create_super_admin() claims the single slot; a second claim rolls back
- RevocationStore revoke is idempotent, is_revoked sees it at once, purge
  removes only naturally expired records
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import IntegrityError

from auth.models import SUPER_ADMIN_CODE, User
from auth.store import RevocationStore, RoleStore, UserStore


@pytest.fixture
def users(engine) -> UserStore:
    return UserStore(engine)


@pytest.fixture
def roles(engine) -> RoleStore:
    store = RoleStore(engine)
    store.ensure_default_roles()
    return store


@pytest.fixture
def revocations(engine) -> RevocationStore:
    return RevocationStore(engine)


class TestUserStore:
    def test_exists_false_on_empty_store(self, users: UserStore) -> None:
        assert users.exists() is False

    def test_create_and_get(self, users: UserStore, roles: RoleStore) -> None:
        editor = roles.get_by_code("strapi-editor")
        uid = users.create_user(User(email="ana@example.com", firstname="Ana", roles=[editor.id], is_active=True))
        assert users.exists() is True

        by_id = users.get_by_id(uid)
        by_email = users.get_by_email("ana@example.com")
        assert by_id == by_email
        assert by_id.firstname == "Ana"
        assert by_id.roles == [editor.id]
        assert by_id.is_active is True
        assert by_id.created_at

    def test_missing_lookups_return_none(self, users: UserStore) -> None:
        assert users.get_by_id(999) is None
        assert users.get_by_email("nobody@example.com") is None
        assert users.get_by_registration_token("nope") is None
        assert users.get_by_reset_token("nope") is None

    def test_duplicate_email_raises(self, users: UserStore) -> None:
        users.create_user(User(email="dup@example.com"))
        with pytest.raises(IntegrityError):
            users.create_user(User(email="dup@example.com"))

    def test_registration_token_lookup(self, users: UserStore) -> None:
        uid = users.create_user(User(email="invitee@example.com", registration_token="tok123"))
        assert users.get_by_registration_token("tok123").id == uid

    def test_update_user(self, users: UserStore) -> None:
        uid = users.create_user(User(email="upd@example.com", registration_token="tok"))
        assert users.update_user(uid, is_active=True, registration_token=None, reset_password_token="h" * 64)
        updated = users.get_by_id(uid)
        assert updated.is_active is True
        assert updated.registration_token is None
        assert users.get_by_reset_token("h" * 64).id == uid

    def test_update_missing_user(self, users: UserStore) -> None:
        assert users.update_user(999, is_active=True) is False

    def test_consume_token_once(self, users: UserStore) -> None:
        uid = users.create_user(User(email="inv@example.com", registration_token="tok"))
        assert users.consume_token(uid, "registration_token", "tok", is_active=True, registration_token=None)
        assert users.consume_token(uid, "registration_token", "tok", firstname="Late") is False
        stored = users.get_by_id(uid)
        assert stored.is_active is True
        assert stored.firstname is None

    def test_consume_token_wrong_value(self, users: UserStore) -> None:
        uid = users.create_user(User(email="rst@example.com", reset_password_token="a" * 64))
        assert users.consume_token(uid, "reset_password_token", "b" * 64, reset_password_token=None) is False
        assert users.get_by_id(uid).reset_password_token == "a" * 64

    def test_consume_token_rejects_other_columns(self, users: UserStore) -> None:
        uid = users.create_user(User(email="col@example.com"))
        with pytest.raises(ValueError):
            users.consume_token(uid, "email", "col@example.com", is_active=True)


class TestRoleStore:
    def test_super_admin_role_seeded(self, roles: RoleStore) -> None:
        role = roles.get_super_admin()
        assert role is not None
        assert role.code == SUPER_ADMIN_CODE
        assert role.is_super_admin is True

    def test_seeding_is_idempotent(self, engine, roles: RoleStore) -> None:
        first = roles.get_super_admin().id
        RoleStore(engine).ensure_default_roles()
        assert roles.get_super_admin().id == first

    def test_other_roles_are_not_super_admin(self, roles: RoleStore) -> None:
        assert roles.get_by_code("strapi-author").is_super_admin is False


class TestSuperAdminClaim:
    def test_first_claim_succeeds(self, users: UserStore, roles: RoleStore) -> None:
        role = roles.get_super_admin()
        uid = users.create_super_admin(User(email="root@example.com", is_active=True), role.id)
        assert users.get_by_id(uid).roles == [role.id]

    def test_second_claim_rolls_back(self, users: UserStore, roles: RoleStore) -> None:
        role = roles.get_super_admin()
        users.create_super_admin(User(email="root@example.com", is_active=True), role.id)
        with pytest.raises(IntegrityError):
            users.create_super_admin(User(email="second@example.com", is_active=True), role.id)
        # the losing user must not survive the rolled-back transaction
        assert users.get_by_email("second@example.com") is None
        assert users.count() == 1


class TestRevocationStore:
    def test_revoke_then_is_revoked(self, revocations: RevocationStore) -> None:
        assert revocations.is_revoked("tok-a") is False
        revocations.revoke("tok-a")
        assert revocations.is_revoked("tok-a") is True

    def test_revoke_is_idempotent(self, revocations: RevocationStore) -> None:
        revocations.revoke("tok-a")
        first = revocations.get("tok-a")
        revocations.revoke("tok-a")
        assert revocations.get("tok-a") == first

    def test_distinct_tokens_independent(self, revocations: RevocationStore) -> None:
        revocations.revoke("tok-a")
        assert revocations.is_revoked("tok-b") is False

    def test_purge_expired_only(self, revocations: RevocationStore) -> None:
        now = datetime.now(timezone.utc)
        revocations.revoke("old", expires_at=now - timedelta(minutes=1))
        revocations.revoke("fresh", expires_at=now + timedelta(minutes=10))
        revocations.revoke("forever")

        assert revocations.purge_expired(now) == 1
        assert revocations.is_revoked("old") is False
        assert revocations.is_revoked("fresh") is True
        assert revocations.is_revoked("forever") is True
