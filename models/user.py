from datetime import datetime
from sqlalchemy.orm import deferred
from models.db import db


class User(db.Model):
    __tablename__ = "users"
    __mapper_args__ = {"eager_defaults": False}

    id = db.Column(db.Integer, primary_key=True)

    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(30), default="teacher", nullable=False)  # teacher, admin, superadmin

    # tenant (school) the account belongs to; null for platform accounts
    tenant_id = db.Column(db.Integer, nullable=True, index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    # Account security state, added by migration 0002. Deferred and defaulted
    # server-side so loading and creating users still works before it runs.
    failed_login_attempts = deferred(db.Column(db.Integer, server_default="0", nullable=False))
    locked_until = deferred(db.Column(db.DateTime, nullable=True))
    last_login_at = deferred(db.Column(db.DateTime, nullable=True))
    last_login_ip = deferred(db.Column(db.String(64), nullable=True))
