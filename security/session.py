import hashlib
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from models import db
from models.session import ActiveSession
from security.errors import fail_open
from utils.audit import SecurityEventType, truncate_ip, truncate_user_agent
from utils.logging import get_logger

logger = get_logger(__name__)

INACTIVITY = "inactivity"


def hash_token(token: str) -> str:
    # SHA-256 is fine for hashing high-entropy bearer tokens
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class SessionCheck:
    valid: bool
    user_id: Optional[int] = None
    last_activity: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    expired: bool = False
    reason: Optional[str] = None

    @classmethod
    def timed_out(cls) -> "SessionCheck":
        return cls(valid=False, expired=True, reason=INACTIVITY)

    def to_dict(self) -> dict:
        if self.expired:
            return {"expired": True, "reason": self.reason}
        return {
            "valid": self.valid,
            "userId": self.user_id,
            "lastActivity": self.last_activity.isoformat(),
            "expiresAt": self.expires_at.isoformat(),
        }


@dataclass(frozen=True)
class SessionInfo:
    last_activity: datetime
    expires_at: datetime
    session_timeout_minutes: int
    remaining_inactivity_seconds: int
    will_expire_from_inactivity: bool
    # not part of the client payload
    user_id: Optional[int] = None
    timed_out: bool = False
    expired: bool = False

    def to_dict(self) -> dict:
        return {
            "lastActivity": self.last_activity.isoformat(),
            "expiresAt": self.expires_at.isoformat(),
            "sessionTimeoutMinutes": self.session_timeout_minutes,
            "remainingInactivitySeconds": self.remaining_inactivity_seconds,
            "willExpireFromInactivity": self.will_expire_from_inactivity,
        }


class SessionStore:
    """
    Server-side sessions keyed by the hash of the bearer token.

    A session is valid while ``now < expires_at`` and it has been used within
    the inactivity timeout. Expiry is never stored; it is computed on read and
    enforced by deleting the row.
    """

    def __init__(self, policy, probe, audit, clock=datetime.utcnow):
        self.policy = policy
        self.probe = probe
        self.audit = audit
        self.clock = clock

    def _find(self, raw_token) -> Optional[ActiveSession]:
        if not isinstance(raw_token, str) or not raw_token:
            return None
        return ActiveSession.query.filter_by(token_hash=hash_token(raw_token)).first()

    @fail_open(None, "session_create_failed")
    def create_session(self, user_id: int, raw_token: str, ip=None, user_agent=None) -> Optional[int]:
        """
        Store a session for ``raw_token`` and return its id.
        Only the hash is stored in DB. Returns None when sessions are not
        tracked (schema not migrated), leaving the caller on token-only auth.
        """
        if not self.probe.available:
            return None
        if not isinstance(raw_token, str) or not raw_token:
            return None

        now = self.clock()
        row = ActiveSession(
            user_id=user_id,
            token_hash=hash_token(raw_token),
            ip_address=truncate_ip(ip),
            user_agent=truncate_user_agent(user_agent),
            created_at=now,
            last_activity=now,
            expires_at=now + self.policy.session_max_age,
        )
        db.session.add(row)
        db.session.commit()
        session_id = row.id

        self.audit.log_security_event(
            SecurityEventType.SESSION_CREATED,
            user_id=user_id,
            ip=ip,
            user_agent=user_agent,
            details={"sessionId": session_id},
        )
        return session_id

    @fail_open(None, "session_validate_failed")
    def validate_session(self, raw_token: str) -> Optional[SessionCheck]:
        """
        Check the session for ``raw_token`` and record activity on it.

        None means "no server-side session" (unknown token, absolute expiry, or
        sessions not tracked); callers fall back to bearer-token validity.
        An inactivity timeout is reported explicitly via ``SessionCheck.timed_out``.
        """
        if not self.probe.available:
            return None

        sess = self._find(raw_token)
        if sess is None:
            return None

        now = self.clock()
        user_id = sess.user_id

        # Absolute expiry
        if now >= sess.expires_at:
            db.session.delete(sess)
            db.session.commit()
            logger.info("session_expired", user_id=user_id, reason="absolute")
            return None

        # Idle timeout
        if now - sess.last_activity >= self.policy.session_timeout:
            db.session.delete(sess)
            db.session.commit()
            logger.info("session_expired", user_id=user_id, reason=INACTIVITY)
            self.audit.log_security_event(
                SecurityEventType.SESSION_EXPIRED,
                user_id=user_id,
                details={"reason": INACTIVITY},
            )
            return SessionCheck.timed_out()

        expires_at = sess.expires_at
        sess.last_activity = now
        db.session.commit()

        return SessionCheck(
            valid=True,
            user_id=user_id,
            last_activity=now,
            expires_at=expires_at,
        )

    @fail_open(False, "session_invalidate_failed")
    def invalidate_session(self, raw_token: str) -> bool:
        if not self.probe.available:
            return True
        if not isinstance(raw_token, str) or not raw_token:
            return True

        sess = self._find(raw_token)
        if sess is None:
            return True

        user_id = sess.user_id
        db.session.delete(sess)
        db.session.commit()

        self.audit.log_security_event(SecurityEventType.LOGOUT, user_id=user_id)
        return True

    @fail_open(0, "session_revoke_all_failed")
    def invalidate_all_user_sessions(self, user_id: int) -> int:
        if not self.probe.available:
            return 0

        count = ActiveSession.query.filter_by(user_id=user_id).delete(synchronize_session=False)
        db.session.commit()

        if count:
            self.audit.log_security_event(
                SecurityEventType.SESSIONS_REVOKED,
                user_id=user_id,
                details={"revokedSessions": count},
            )
        return count

    @fail_open(0, "session_cleanup_failed")
    def cleanup_expired_sessions(self) -> int:
        """Bulk-delete sessions past their absolute expiry. Meant for a periodic job."""
        if not self.probe.available:
            return 0

        count = ActiveSession.query.filter(
            ActiveSession.expires_at < self.clock()
        ).delete(synchronize_session=False)
        db.session.commit()

        if count:
            logger.info("expired_sessions_cleaned", count=count)
            self.audit.log_security_event(
                SecurityEventType.SESSIONS_CLEANED,
                details={"deletedSessions": count},
            )
        return count

    @fail_open(None, "session_info_failed")
    def get_session_info(self, raw_token: str) -> Optional[SessionInfo]:
        """Read-only view for "your session is about to expire" prompts."""
        if not self.probe.available:
            return None

        sess = self._find(raw_token)
        if sess is None:
            return None

        now = self.clock()
        idle = now - sess.last_activity
        remaining = max(self.policy.session_timeout - idle, timedelta(0))

        return SessionInfo(
            last_activity=sess.last_activity,
            expires_at=sess.expires_at,
            session_timeout_minutes=self.policy.session_timeout_minutes,
            remaining_inactivity_seconds=int(remaining.total_seconds()),
            will_expire_from_inactivity=remaining < self.policy.session_warning,
            user_id=sess.user_id,
            timed_out=idle >= self.policy.session_timeout,
            expired=now >= sess.expires_at,
        )
