import hashlib
from datetime import timedelta

import pytest
from sqlalchemy import text

from app import create_app
from config import TestConfig
from models import db
from models.security_event import SecurityEvent
from models.session import ActiveSession
from security import get_security
from security.probe import SchemaProbe
from security.session import hash_token

from conftest import add_user

TOKEN = "header.payload.signature-abc123"


@pytest.fixture
def sessions(security):
    return security.sessions


class TestCreate:
    def test_stores_only_the_token_hash(self, sessions, user, clock):
        session_id = sessions.create_session(user.id, TOKEN, "10.0.0.1", "pytest")

        row = db.session.get(ActiveSession, session_id)
        assert row.token_hash == hashlib.sha256(TOKEN.encode("utf-8")).hexdigest()
        assert TOKEN not in row.token_hash
        assert row.last_activity == clock()
        assert row.expires_at == clock() + timedelta(hours=24)
        assert row.ip_address == "10.0.0.1"

    def test_hash_is_deterministic(self):
        assert hash_token(TOKEN) == hash_token(TOKEN)
        assert hash_token(TOKEN) != hash_token(TOKEN + "x")
        assert len(hash_token(TOKEN)) == 64

    def test_truncates_user_agent(self, sessions, user):
        session_id = sessions.create_session(user.id, TOKEN, "10.0.0.1", "A" * 600)
        assert len(db.session.get(ActiveSession, session_id).user_agent) == 255

    def test_non_string_user_agent_is_stored_as_text(self, sessions, user):
        session_id = sessions.create_session(user.id, TOKEN, "10.0.0.1", 12345)

        assert session_id is not None
        assert db.session.get(ActiveSession, session_id).user_agent == "12345"

    def test_logs_session_created(self, sessions, user):
        session_id = sessions.create_session(user.id, TOKEN)
        (event,) = SecurityEvent.query.filter_by(event_type="session_created").all()
        assert event.user_id == user.id
        assert str(session_id) in event.details


class TestValidate:
    def test_valid_right_after_create(self, sessions, user, clock):
        sessions.create_session(user.id, TOKEN)

        check = sessions.validate_session(TOKEN)

        assert check.valid is True
        assert check.user_id == user.id
        assert check.last_activity == clock()
        assert check.expires_at == clock() + timedelta(hours=24)
        assert check.to_dict()["userId"] == user.id

    def test_unknown_token(self, sessions):
        assert sessions.validate_session("never-issued") is None

    @pytest.mark.parametrize("token", ["", None, 12345])
    def test_malformed_token_is_not_found(self, sessions, token):
        assert sessions.validate_session(token) is None

    def test_activity_is_bumped(self, sessions, user, clock):
        sessions.create_session(user.id, TOKEN)
        clock.advance(minutes=20)

        assert sessions.validate_session(TOKEN).valid is True
        row = ActiveSession.query.filter_by(token_hash=hash_token(TOKEN)).one()
        assert row.last_activity == clock()

    def test_inactivity_timeout(self, sessions, user, clock):
        sessions.create_session(user.id, TOKEN)
        clock.advance(minutes=30)

        check = sessions.validate_session(TOKEN)

        assert check.expired is True
        assert check.valid is False
        assert check.to_dict() == {"expired": True, "reason": "inactivity"}
        assert ActiveSession.query.count() == 0
        assert SecurityEvent.query.filter_by(event_type="session_expired").count() == 1
        # gone for good
        assert sessions.validate_session(TOKEN) is None

    def test_sliding_activity_until_absolute_ceiling(self, sessions, user, clock):
        sessions.create_session(user.id, TOKEN)

        for _ in range(143):
            clock.advance(minutes=10)
            assert sessions.validate_session(TOKEN).valid is True

        clock.advance(minutes=10)
        # 24h reached: silently gone, not the inactivity variant
        assert sessions.validate_session(TOKEN) is None
        assert ActiveSession.query.count() == 0

    def test_absolute_expiry_without_activity_checks(self, sessions, user, clock):
        sessions.create_session(user.id, TOKEN)
        clock.advance(hours=25)

        assert sessions.validate_session(TOKEN) is None
        assert ActiveSession.query.count() == 0


class TestInvalidate:
    def test_logout_is_idempotent(self, sessions, user):
        sessions.create_session(user.id, TOKEN)

        assert sessions.invalidate_session(TOKEN) is True
        assert sessions.invalidate_session(TOKEN) is True
        assert sessions.validate_session(TOKEN) is None
        assert SecurityEvent.query.filter_by(event_type="logout").count() == 1

    def test_invalidate_all_for_one_user(self, sessions, make_user):
        alice = make_user("alice@example.com")
        bob = make_user("bob@example.com")
        for i in range(3):
            sessions.create_session(alice.id, f"alice-{i}")
        sessions.create_session(bob.id, "bob-0")

        assert sessions.invalidate_all_user_sessions(alice.id) == 3

        assert ActiveSession.query.filter_by(user_id=alice.id).count() == 0
        assert sessions.validate_session("bob-0").valid is True
        assert sessions.invalidate_all_user_sessions(alice.id) == 0

    def test_cleanup_removes_only_expired(self, sessions, make_user, clock):
        alice = make_user("alice@example.com")
        sessions.create_session(alice.id, "old-1")
        sessions.create_session(alice.id, "old-2")
        clock.advance(hours=20)
        sessions.create_session(alice.id, "recent")
        clock.advance(hours=5)

        assert sessions.cleanup_expired_sessions() == 2
        assert [s.token_hash for s in ActiveSession.query.all()] == [hash_token("recent")]
        assert sessions.cleanup_expired_sessions() == 0


class TestSessionInfo:
    def test_fresh_session(self, sessions, user, clock):
        sessions.create_session(user.id, TOKEN)

        info = sessions.get_session_info(TOKEN)

        assert info.session_timeout_minutes == 30
        assert info.remaining_inactivity_seconds == 30 * 60
        assert info.will_expire_from_inactivity is False
        assert info.expires_at == clock() + timedelta(hours=24)

    def test_warning_near_timeout(self, sessions, user, clock):
        sessions.create_session(user.id, TOKEN)
        clock.advance(minutes=26)

        info = sessions.get_session_info(TOKEN)

        assert info.remaining_inactivity_seconds == 4 * 60
        assert info.will_expire_from_inactivity is True
        assert info.to_dict()["willExpireFromInactivity"] is True

    def test_does_not_touch_activity(self, sessions, user, clock):
        sessions.create_session(user.id, TOKEN)
        clock.advance(minutes=40)

        info = sessions.get_session_info(TOKEN)

        assert info.remaining_inactivity_seconds == 0
        assert ActiveSession.query.count() == 1

    def test_unknown_token(self, sessions):
        assert sessions.get_session_info("nope") is None


class TestDegradedMode:
    @pytest.fixture
    def degraded(self, clock):
        app = create_app(TestConfig, probe=SchemaProbe(available=False), clock=clock)
        with app.app_context():
            db.create_all()
            yield get_security().sessions
            db.session.remove()
            db.drop_all()

    def test_defaults(self, degraded):
        user = add_user()

        assert degraded.create_session(user.id, TOKEN) is None
        assert degraded.validate_session(TOKEN) is None
        assert degraded.invalidate_session(TOKEN) is True
        assert degraded.invalidate_all_user_sessions(user.id) == 0
        assert degraded.cleanup_expired_sessions() == 0
        assert degraded.get_session_info(TOKEN) is None
        assert ActiveSession.query.count() == 0

    def test_storage_errors_fail_open(self, sessions, user):
        db.session.execute(text("DROP TABLE active_sessions"))
        db.session.commit()

        assert sessions.create_session(user.id, TOKEN) is None
        assert sessions.validate_session(TOKEN) is None
        assert sessions.invalidate_session(TOKEN) is False
        assert sessions.invalidate_all_user_sessions(user.id) == 0
        assert sessions.cleanup_expired_sessions() == 0
        assert sessions.get_session_info(TOKEN) is None
