from models.session import ActiveSession
from models.user import User
from security.password import verify_password

from conftest import account_state


def test_cleanup_sessions(app, security, make_user, clock):
    user = make_user()
    security.sessions.create_session(user.id, "stale")
    clock.advance(hours=30)
    security.sessions.create_session(user.id, "fresh")

    result = app.test_cli_runner().invoke(args=["cleanup-sessions"])

    assert result.exit_code == 0
    assert "Removed 1 expired session(s)" in result.output
    assert ActiveSession.query.count() == 1


def test_unlock_account(app, security, make_user, clock):
    user = make_user()
    for _ in range(5):
        security.lockout.record_failed_login(user.id)

    result = app.test_cli_runner().invoke(args=["unlock-account", "Teacher@Example.com"])

    assert "teacher@example.com unlocked" in result.output
    assert account_state(user.id).locked_until is None
    assert account_state(user.id).failed_login_attempts == 0


def test_unlock_unknown_account(app):
    result = app.test_cli_runner().invoke(args=["unlock-account", "nobody@example.com"])
    assert "User not found" in result.output


def test_create_user(app):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["create-user", "Admin@Example.com", "S3curePassword", "--role", "admin", "--tenant-id", "4"])

    assert result.exit_code == 0
    user = User.query.filter_by(email="admin@example.com").one()
    assert user.role == "admin"
    assert user.tenant_id == 4
    assert verify_password("S3curePassword", user.password_hash)

    again = runner.invoke(args=["create-user", "admin@example.com", "whatever123"])
    assert "User already exists" in again.output


def test_health(client):
    body = client.get("/health").get_json()
    assert body == {"status": "ok", "security_schema": True}
