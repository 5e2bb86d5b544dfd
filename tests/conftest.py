import sys
from datetime import datetime, timedelta
from pathlib import Path

import pytest
from sqlalchemy import select

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app import create_app  # noqa: E402
from config import TestConfig  # noqa: E402
from models import db  # noqa: E402
from models.user import User  # noqa: E402
from security import get_security  # noqa: E402
from security.password import hash_password  # noqa: E402

DEFAULT_PASSWORD = "CorrectHorse1"


class FakeClock:
    """Controllable replacement for datetime.utcnow."""

    def __init__(self, start=None):
        self.now = start or datetime(2026, 3, 2, 9, 0, 0)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def app(clock):
    app = create_app(TestConfig, clock=clock)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def security(app):
    return get_security()


@pytest.fixture
def client(app):
    return app.test_client()


def add_user(email="teacher@example.com", password=DEFAULT_PASSWORD, role="teacher", tenant_id=7):
    user = User(email=email, password_hash=hash_password(password), role=role, tenant_id=tenant_id)
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture
def make_user(app):
    return add_user


@pytest.fixture
def user(make_user):
    return make_user()


def account_state(user_id):
    """Read the security columns straight from the table."""
    return db.session.execute(
        select(
            User.failed_login_attempts,
            User.locked_until,
            User.last_login_at,
            User.last_login_ip,
        ).where(User.id == user_id)
    ).first()
