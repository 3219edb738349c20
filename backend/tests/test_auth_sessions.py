"""
Authentication and session tests.

Covers password policy, credential checks (including deactivated users and
businesses) and the session lifecycle: issue, validate, idle timeout,
revocation and cleanup.
"""

from datetime import timedelta

import pytest

from billing.errors import ConflictError, NotFoundError
from billing.models import SessionToken
from billing.services import auth_service, session_service
from billing.services.auth_service import PasswordValidationError
from billing.time_utils import utcnow


PASSWORD = "Password123!"


class TestPasswords:
    @pytest.mark.parametrize("password", [
        "Sh0rt!",
        "alllowercase1!",
        "ALLUPPERCASE1!",
        "NoDigitsHere!",
        "NoSpecials123",
    ])
    def test_weak_passwords_rejected(self, password):
        with pytest.raises(PasswordValidationError):
            auth_service.validate_password_strength(password)

    def test_hash_and_verify(self):
        hashed = auth_service.hash_password(PASSWORD)
        assert hashed != PASSWORD
        assert auth_service.verify_password(PASSWORD, hashed) is True
        assert auth_service.verify_password("Wrong123!", hashed) is False

    def test_malformed_hash_is_a_mismatch(self):
        assert auth_service.verify_password(PASSWORD, "not-a-bcrypt-hash") is False


class TestUsers:
    def test_create_user(self, db_session, business):
        user = auth_service.create_user("cashier", "cashier@sharma.test", PASSWORD, business.id, "Cashier")
        assert user.business_id == business.id
        assert user.password_hash != PASSWORD

    def test_duplicate_username(self, db_session, business, user):
        with pytest.raises(ConflictError):
            auth_service.create_user("owner", "new@sharma.test", PASSWORD, business.id)

    def test_unknown_business(self, db_session):
        with pytest.raises(NotFoundError):
            auth_service.create_user("x", "x@x.test", PASSWORD, 9999)

    def test_authenticate_by_username_or_email(self, db_session, user):
        assert auth_service.authenticate("owner", PASSWORD).id == user.id
        assert auth_service.authenticate("owner@sharma.test", PASSWORD).id == user.id
        assert auth_service.authenticate("owner", "Wrong123!") is None
        assert auth_service.authenticate("nobody", PASSWORD) is None

    def test_authenticate_stamps_last_login(self, db_session, user):
        assert user.last_login_at is None
        auth_service.authenticate("owner", PASSWORD)
        assert user.last_login_at is not None

    def test_deactivated_user_cannot_log_in(self, db_session, user):
        user.is_active = False
        db_session.commit()
        assert auth_service.authenticate("owner", PASSWORD) is None

    def test_deactivated_business_cannot_log_in(self, db_session, business, user):
        business.is_active = False
        db_session.commit()
        assert auth_service.authenticate("owner", PASSWORD) is None


class TestSessions:
    def test_issue_and_validate(self, db_session, user):
        session, token = session_service.create_session(user.id, user_agent="pytest")

        assert session.token_hash == session_service.hash_token(token)
        assert session.token_hash != token

        ctx = session_service.validate_session(token)
        assert ctx.user.id == user.id
        assert ctx.business_id == user.business_id

    def test_unknown_token(self, db_session, user):
        assert session_service.validate_session("f" * 64) is None

    def test_revoked_token(self, db_session, user):
        _, token = session_service.create_session(user.id)
        assert session_service.revoke_session(token) is True
        assert session_service.validate_session(token) is None
        assert session_service.revoke_session(token) is False

    def test_idle_timeout_revokes(self, db_session, user):
        session, token = session_service.create_session(user.id)
        session.last_used_at = utcnow() - timedelta(hours=3)
        db_session.commit()

        assert session_service.validate_session(token) is None
        db_session.refresh(session)
        assert session.is_revoked is True
        assert session.revoked_reason == "Idle timeout"

    def test_absolute_timeout(self, db_session, user):
        session, token = session_service.create_session(user.id)
        session.expires_at = utcnow() - timedelta(seconds=1)
        db_session.commit()
        assert session_service.validate_session(token) is None

    def test_deactivated_user_session_is_revoked(self, db_session, user):
        session, token = session_service.create_session(user.id)
        user.is_active = False
        db_session.commit()

        assert session_service.validate_session(token) is None
        db_session.refresh(session)
        assert session.revoked_reason == "User account deactivated"

    def test_cleanup_removes_only_old_dead_sessions(self, db_session, user):
        old, _ = session_service.create_session(user.id)
        live, _ = session_service.create_session(user.id)
        old.created_at = utcnow() - timedelta(days=40)
        old.expires_at = utcnow() - timedelta(days=39)
        db_session.commit()
        live_id = live.id

        assert session_service.cleanup_expired_sessions() == 1
        assert db_session.query(SessionToken).count() == 1
        assert db_session.query(SessionToken).one().id == live_id
