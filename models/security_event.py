from datetime import datetime
from models.db import db


class SecurityEvent(db.Model):
    __tablename__ = "security_events"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, nullable=True, index=True)  # nullable for unknown accounts
    tenant_id = db.Column(db.Integer, nullable=True, index=True)
    event_type = db.Column(db.String(50), nullable=False, index=True)  # e.g. login_failed, account_locked

    ip_address = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)
    details = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)
