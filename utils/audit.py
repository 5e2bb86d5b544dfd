import json
from enum import Enum

from sqlalchemy.exc import SQLAlchemyError

from models import db
from models.security_event import SecurityEvent
from utils.logging import get_logger

logger = get_logger(__name__)

USER_AGENT_MAX_LENGTH = 255
IP_MAX_LENGTH = 64


class SecurityEventType(str, Enum):
    LOGIN_SUCCESS = "login_success"
    LOGIN_FAILED = "login_failed"
    ACCOUNT_LOCKED = "account_locked"
    ACCOUNT_UNLOCKED = "account_unlocked"
    SESSION_CREATED = "session_created"
    SESSION_EXPIRED = "session_expired"
    LOGOUT = "logout"
    SESSIONS_REVOKED = "sessions_revoked"
    SESSIONS_CLEANED = "sessions_cleaned"


def truncate_user_agent(user_agent):
    return str(user_agent)[:USER_AGENT_MAX_LENGTH] if user_agent else None


def truncate_ip(ip):
    return str(ip)[:IP_MAX_LENGTH] if ip else None


class SecurityAuditLog:
    """
    Append-only writer for security events.

    Best effort: a lost audit row is acceptable, a login broken by the audit
    table is not. Callers commit their own work before logging.
    """

    def __init__(self, probe):
        self.probe = probe

    def log_security_event(self, event_type, user_id=None, tenant_id=None, ip=None,
                           user_agent=None, details=None) -> bool:
        event_name = event_type.value if isinstance(event_type, SecurityEventType) else str(event_type)
        try:
            if not self.probe.available:
                return False

            row = SecurityEvent(
                user_id=user_id,
                tenant_id=tenant_id,
                event_type=event_name,
                ip_address=truncate_ip(ip),
                user_agent=truncate_user_agent(user_agent),
                details=json.dumps(details, default=str) if details else None,
            )
            db.session.add(row)
            db.session.commit()
            return True
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception("security_event_write_failed", event_type=event_name, user_id=user_id)
            return False
